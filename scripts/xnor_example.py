#!/usr/bin/env python3
"""
Train a tiny network on the XNOR truth table.

Usage:
    python scripts/xnor_example.py [output_dir]

The script will:
1. Train a [2, 4, 1] sigmoid network for 10000 epochs
2. Print the thresholded and raw prediction for each input
3. Save the model as xnor_model.chisei and load it back
4. Print the accuracy of the reloaded model
"""

import os
import sys

from chisei import NeuralNetwork, load_model

INPUTS = [[0, 0], [0, 1], [1, 0], [1, 1]]
TARGETS = [[1], [0], [0], [1]]


def print_predictions(network: NeuralNetwork) -> None:
    for x in INPUTS:
        raw = network.predict(x)[0]
        label = 1.0 if raw >= 0.5 else 0.0
        print(f"Input: {x}\tPrediction: {label}\tRaw: {raw:.6f}")


def main():
    output_dir = sys.argv[1] if len(sys.argv) > 1 else 'data'
    os.makedirs(output_dir, exist_ok=True)

    xnor = NeuralNetwork([2, 4, 1], activation='sigmoid')
    xnor.train(INPUTS, TARGETS, learning_rate=6.0, epochs=10000)
    print_predictions(xnor)

    path = xnor.save_model(os.path.join(output_dir, 'xnor_model'))
    print(f"\nSaved model to {path}")

    loaded = load_model(path, activation='sigmoid')
    accuracy = loaded.compute_accuracy(INPUTS, TARGETS)
    print(f"Network Accuracy: {accuracy:.0%}")
    print_predictions(loaded)


if __name__ == '__main__':
    main()

#!/usr/bin/env python3
"""
Train a digit classifier from MNIST IDX files and save it.

Usage:
    python scripts/train_mnist.py train-images-idx3-ubyte \\
        train-labels-idx1-ubyte --epochs 5 --output models/mnist

Optionally evaluates the trained network on a second image/label pair
(--test-images/--test-labels) before saving.
"""

import argparse
import logging
import sys

from chisei import ChiseiError, config
from chisei.idx_loader import load_mnist, train_from_mnist

logger = logging.getLogger('chisei.scripts.train_mnist')


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('images', help='IDX images file (magic 0x00000803)')
    parser.add_argument('labels', help='IDX labels file (magic 0x00000801)')
    parser.add_argument('--epochs', type=int, default=5)
    parser.add_argument('--learning-rate', type=float, default=0.1)
    parser.add_argument('--max-samples', type=int, default=5000)
    parser.add_argument(
        '--hidden', type=int, nargs='*', default=[256, 128],
        help='hidden layer sizes'
    )
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--test-images')
    parser.add_argument('--test-labels')
    parser.add_argument('--output', default='models/mnist')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    config.configure_logging()
    args = parse_args(argv)

    try:
        network = train_from_mnist(
            args.images,
            args.labels,
            learning_rate=args.learning_rate,
            epochs=args.epochs,
            hidden_layers=args.hidden,
            max_samples=args.max_samples,
            rng=args.seed
        )

        if args.test_images and args.test_labels:
            inputs, targets = load_mnist(args.test_images, args.test_labels)
            accuracy = network.compute_accuracy(inputs, targets)
            logger.info(f"Test accuracy: {accuracy:.2%}")

        path = network.save_model(args.output, include_activation=True)
        logger.info(f"Model written to {path}")

    except ChiseiError as e:
        logger.error(f"Training failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())

"""
chisei package
~~~~~~~~~~~~~~

Fully-connected feedforward neural networks with backpropagation
training and a compact binary model format (``.chisei``).
Contains the network engine, activation functions, metrics, the model
codec, an IDX dataset reader, a SQLite model registry and an HTTP API.
"""

from chisei.activations import Activation
from chisei.codec import load_model, save_model
from chisei.exceptions import (
    ActivationError,
    ChiseiError,
    DimensionMismatchError,
    EmptyDatasetError,
    ModelFormatError,
    ModelIOError,
)
from chisei.metrics import (
    compute_accuracy,
    mean_squared_error,
    output_gradient,
)
from chisei.network import NeuralNetwork

__version__ = "1.0.0"

__all__ = [
    'Activation',
    'ActivationError',
    'ChiseiError',
    'DimensionMismatchError',
    'EmptyDatasetError',
    'ModelFormatError',
    'ModelIOError',
    'NeuralNetwork',
    'compute_accuracy',
    'load_model',
    'mean_squared_error',
    'output_gradient',
    'save_model',
]

"""
metrics.py
~~~~~~~~~~

Loss and accuracy helpers.
"""

import logging
from typing import Sequence

import numpy as np

from chisei.exceptions import DimensionMismatchError, EmptyDatasetError

# Configure module logger
logger = logging.getLogger(__name__)

# Single-output networks are scored by thresholding at this value
BINARY_THRESHOLD = 0.5


def _paired(prediction, target):
    p = np.asarray(prediction, dtype=np.float64).reshape(-1)
    t = np.asarray(target, dtype=np.float64).reshape(-1)
    if p.shape != t.shape:
        raise DimensionMismatchError(
            f"Prediction has length {p.shape[0]}, target has {t.shape[0]}"
        )
    return p, t


def mean_squared_error(
    prediction: Sequence[float],
    target: Sequence[float]
) -> float:
    """
    Mean of squared differences.

    Raises:
        DimensionMismatchError: If the vectors differ in length
        EmptyDatasetError: If the vectors are empty
    """
    p, t = _paired(prediction, target)
    if p.size == 0:
        raise EmptyDatasetError("Cannot compute MSE of empty vectors")
    diff = p - t
    return float(np.dot(diff, diff) / p.size)


def output_gradient(
    prediction: Sequence[float],
    target: Sequence[float]
) -> np.ndarray:
    """Gradient of the summed squared error: 2 * (prediction - target)."""
    p, t = _paired(prediction, target)
    return 2.0 * (p - t)


def is_correct_prediction(
    prediction: Sequence[float],
    target: Sequence[float]
) -> bool:
    """
    Decide whether a prediction matches a target.

    Multi-output vectors are decoded as one-hot: the index of the largest
    prediction must equal the index of the largest target (first maximum
    wins on ties). A single output is thresholded at 0.5 on both sides.
    """
    p, t = _paired(prediction, target)
    if p.size == 0:
        raise EmptyDatasetError("Cannot score empty vectors")
    if p.size == 1:
        return bool((p[0] >= BINARY_THRESHOLD) == (t[0] >= BINARY_THRESHOLD))
    return int(np.argmax(p)) == int(np.argmax(t))


def compute_accuracy(network, inputs, targets) -> float:
    """
    Fraction of samples the network classifies correctly.

    Args:
        network: Anything with a ``predict(vector)`` method
        inputs: Input vectors
        targets: Target vectors, paired with inputs by position

    Returns:
        float: Accuracy in [0.0, 1.0]

    Raises:
        DimensionMismatchError: If inputs and targets differ in count
        EmptyDatasetError: If there are no samples
    """
    if len(inputs) != len(targets):
        raise DimensionMismatchError(
            f"Got {len(inputs)} inputs but {len(targets)} targets"
        )
    if len(inputs) == 0:
        raise EmptyDatasetError("Cannot compute accuracy of zero samples")

    correct = sum(
        1 for x, y in zip(inputs, targets)
        if is_correct_prediction(network.predict(x), y)
    )
    accuracy = correct / len(inputs)
    logger.debug(f"Accuracy {correct}/{len(inputs)} = {accuracy:.2%}")
    return accuracy

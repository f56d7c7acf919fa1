"""
idx_loader.py
~~~~~~~~~~~~~

Reader for the IDX image/label files used by the MNIST dataset.

Both files start with a big-endian 4-byte magic number (0x00000803 for
images, 0x00000801 for labels) followed by big-endian uint32 dimensions
and row-major unsigned byte data. Pixels are scaled to [0, 1] and labels
one-hot encoded before they reach the network.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chisei.exceptions import ModelFormatError, ModelIOError
from chisei.network import NeuralNetwork, RandomSource

# Configure module logger
logger = logging.getLogger(__name__)

IMAGE_MAGIC = 0x00000803
LABEL_MAGIC = 0x00000801
NUM_CLASSES = 10

_HEADER_DTYPE = np.dtype('>u4')


def _read_file(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise ModelIOError(f"Failed to open IDX file {path}: {e}") from e


def _parse(path: str, magic: int, n_dims: int) -> Tuple[Tuple[int, ...], np.ndarray]:
    data = _read_file(path)
    header_size = (1 + n_dims) * _HEADER_DTYPE.itemsize
    if len(data) < header_size:
        raise ModelFormatError(f"{path}: file too short for IDX header")

    header = np.frombuffer(data, dtype=_HEADER_DTYPE, count=1 + n_dims)
    if int(header[0]) != magic:
        raise ModelFormatError(
            f"{path}: invalid IDX magic 0x{int(header[0]):08x}, "
            f"expected 0x{magic:08x}"
        )

    dims = tuple(int(d) for d in header[1:])
    expected = int(np.prod(dims))
    payload = np.frombuffer(data, dtype=np.uint8)[header_size:]
    if payload.size < expected:
        raise ModelFormatError(
            f"{path}: truncated, {payload.size} of {expected} bytes present"
        )
    return dims, payload[:expected]


def read_idx_images(path: str) -> np.ndarray:
    """
    Read an IDX image file.

    Args:
        path: Path to the images file

    Returns:
        np.ndarray: float64 array of shape (count, rows * cols) in [0, 1]
    """
    (count, rows, cols), pixels = _parse(path, IMAGE_MAGIC, 3)
    logger.debug(f"Read {count} images of {rows}x{cols} from {path}")
    return pixels.reshape(count, rows * cols).astype(np.float64) / 255.0


def read_idx_labels(path: str) -> np.ndarray:
    """Read an IDX label file into a uint8 array."""
    (count,), labels = _parse(path, LABEL_MAGIC, 1)
    logger.debug(f"Read {count} labels from {path}")
    return labels.copy()


def one_hot(labels: Sequence[int], num_classes: int = NUM_CLASSES) -> np.ndarray:
    """Encode integer labels as rows of a (len(labels), num_classes) matrix."""
    labels = np.asarray(labels, dtype=np.int64)
    if labels.size and (labels.min() < 0 or labels.max() >= num_classes):
        raise ValueError(
            f"Labels must be in [0, {num_classes}), got range "
            f"[{labels.min()}, {labels.max()}]"
        )
    encoded = np.zeros((labels.size, num_classes), dtype=np.float64)
    encoded[np.arange(labels.size), labels] = 1.0
    return encoded


def load_mnist(
    images_path: str,
    labels_path: str,
    max_samples: Optional[int] = None
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Load an image/label file pair as training vectors.

    Args:
        images_path: IDX images file
        labels_path: IDX labels file
        max_samples: Keep only the first N samples

    Returns:
        tuple: (inputs, targets), lists of normalized pixel vectors and
        one-hot label vectors

    Raises:
        ModelIOError: If either file cannot be read
        ModelFormatError: On bad magic, truncation or count mismatch
    """
    images = read_idx_images(images_path)
    labels = read_idx_labels(labels_path)
    if images.shape[0] != labels.shape[0]:
        raise ModelFormatError(
            f"{images.shape[0]} images but {labels.shape[0]} labels"
        )

    if max_samples is not None:
        images = images[:max_samples]
        labels = labels[:max_samples]

    targets = one_hot(labels)
    logger.info(f"Loaded {images.shape[0]} samples from {images_path}")
    return list(images), list(targets)


def train_from_mnist(
    images_path: str,
    labels_path: str,
    learning_rate: float,
    epochs: int,
    hidden_layers: Sequence[int] = (256, 128),
    max_samples: Optional[int] = 5000,
    rng: RandomSource = None
) -> NeuralNetwork:
    """
    Build a sigmoid network sized for the dataset and train it.

    The topology is ``[rows * cols, *hidden_layers, 10]``.
    """
    inputs, targets = load_mnist(images_path, labels_path, max_samples)
    if not inputs:
        raise ModelFormatError(f"{images_path} contains no images")

    layer_sizes = [inputs[0].shape[0], *hidden_layers, NUM_CLASSES]
    network = NeuralNetwork(layer_sizes, activation='sigmoid', rng=rng)
    network.train(inputs, targets, learning_rate=learning_rate, epochs=epochs)
    return network

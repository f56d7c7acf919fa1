"""
codec.py
~~~~~~~~

Binary ``.chisei`` model format.

Layout (little-endian, no padding)::

    b"CS"                      magic
    uint64                     layer count N
    N x uint64                 layer sizes
    float64[...]               N-1 weight matrices, row-major per source neuron
    float64[...]               N-1 bias vectors
    b"AF" + uint8              optional activation trailer

Files written without the trailer are byte-compatible with models saved
by earlier releases; loading such a file uses the activation the caller
passes in, or sigmoid.
"""

import struct
import logging
from typing import List, Optional, Union

import numpy as np

from chisei.activations import (
    Activation,
    DEFAULT_ACTIVATION,
    activation_from_code,
    get_activation,
)
from chisei.exceptions import ActivationError, ModelFormatError, ModelIOError
from chisei.kernels import DotKernel
from chisei.network import NeuralNetwork

# Configure module logger
logger = logging.getLogger(__name__)

MAGIC = b'CS'
ACTIVATION_TRAILER = b'AF'
FILE_EXTENSION = '.chisei'

_UINT64 = struct.Struct('<Q')
_FLOAT64 = np.dtype('<f8')


def encode(network: NeuralNetwork, include_activation: bool = False) -> bytes:
    """
    Serialize a network to bytes.

    Args:
        network: The network to serialize
        include_activation: Append the activation trailer

    Returns:
        bytes: The encoded model
    """
    sizes = network.layer_sizes
    parts = [
        MAGIC,
        _UINT64.pack(len(sizes)),
        struct.pack(f'<{len(sizes)}Q', *sizes),
    ]
    parts.extend(
        np.ascontiguousarray(w, dtype=_FLOAT64).tobytes() for w in network.weights
    )
    parts.extend(
        np.ascontiguousarray(b, dtype=_FLOAT64).tobytes() for b in network.biases
    )
    if include_activation:
        parts.append(ACTIVATION_TRAILER + bytes([network.activation_spec.code]))
    return b''.join(parts)


class _Reader:
    """Bounds-checked cursor over the encoded bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, size: int, what: str) -> bytes:
        if size > self.remaining:
            raise ModelFormatError(
                f"Truncated model data: {what} needs {size} bytes, "
                f"only {self.remaining} left"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def doubles(self, count: int, what: str) -> np.ndarray:
        raw = self.take(count * _FLOAT64.itemsize, what)
        return np.frombuffer(raw, dtype=_FLOAT64).astype(np.float64)


def _read_header(reader: _Reader) -> List[int]:
    if reader.take(len(MAGIC), 'magic') != MAGIC:
        raise ModelFormatError(
            "Invalid *.chisei file format, missing magic bytes"
        )

    (layer_count,) = _UINT64.unpack(reader.take(_UINT64.size, 'layer count'))
    if layer_count < 2:
        raise ModelFormatError(
            f"Model declares {layer_count} layer(s), at least 2 are required"
        )
    if layer_count * _UINT64.size > reader.remaining:
        raise ModelFormatError(
            f"Truncated model data: {layer_count} layer sizes declared"
        )

    sizes = list(struct.unpack(
        f'<{layer_count}Q',
        reader.take(layer_count * _UINT64.size, 'layer sizes')
    ))
    if any(size == 0 for size in sizes):
        raise ModelFormatError(f"Model declares an empty layer: {sizes}")
    return sizes


def _read_trailer(reader: _Reader) -> Optional[Activation]:
    if reader.remaining == 0:
        return None
    trailer = reader.take(reader.remaining, 'trailer')
    if len(trailer) != 3 or trailer[:2] != ACTIVATION_TRAILER:
        raise ModelFormatError(
            f"Unexpected {len(trailer)} trailing byte(s) after model data"
        )
    try:
        return activation_from_code(trailer[2]).kind
    except ActivationError as e:
        raise ModelFormatError(str(e)) from e


def decode(
    data: bytes,
    activation: Union[Activation, str, None] = None,
    kernel: Optional[DotKernel] = None
) -> NeuralNetwork:
    """
    Rebuild a network from encoded bytes.

    Args:
        data: Encoded model
        activation: Activation to use. Overrides the stored trailer; when
            neither is present sigmoid is used.
        kernel: Optional dot-product kernel for the new network

    Returns:
        NeuralNetwork: The decoded network

    Raises:
        ModelFormatError: On bad magic, truncated data or trailing garbage
    """
    reader = _Reader(bytes(data))
    sizes = _read_header(reader)

    weights: List[np.ndarray] = []
    for layer, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
        weights.append(
            reader.doubles(n_in * n_out, f'weights of layer {layer}')
            .reshape(n_in, n_out)
        )
    biases = [
        reader.doubles(n_out, f'biases of layer {layer}')
        for layer, n_out in enumerate(sizes[1:])
    ]

    stored = _read_trailer(reader)
    if activation is None:
        activation = stored if stored is not None else DEFAULT_ACTIVATION
        if stored is None:
            logger.debug(
                f"No activation stored in model, using {activation.value}"
            )
    elif stored is not None and get_activation(activation).kind != stored:
        logger.warning(
            f"Model was saved with {stored.value} activation but "
            f"{get_activation(activation).kind.value} was requested"
        )

    return NeuralNetwork.from_parameters(
        sizes, weights, biases, activation=activation, kernel=kernel
    )


def model_path(filename: str) -> str:
    """Append the ``.chisei`` extension unless already present."""
    filename = str(filename)
    if not filename.endswith(FILE_EXTENSION):
        filename += FILE_EXTENSION
    return filename


def save_model(
    network: NeuralNetwork,
    filename: str,
    include_activation: bool = False
) -> str:
    """
    Write a network to a ``.chisei`` file.

    Args:
        network: The network to save
        filename: Target path; ``.chisei`` is appended if missing
        include_activation: Store the activation kind in the file

    Returns:
        str: The path actually written

    Raises:
        ModelIOError: If the file cannot be opened or written
    """
    path = model_path(filename)
    payload = encode(network, include_activation=include_activation)
    try:
        with open(path, 'wb') as f:
            f.write(payload)
    except OSError as e:
        raise ModelIOError(
            f"Failed to open {path} for saving the model: {e}"
        ) from e

    logger.info(
        f"Saved network {list(network.layer_sizes)} to {path} "
        f"({len(payload)} bytes)"
    )
    return path


def load_model(
    filename: str,
    activation: Union[Activation, str, None] = None,
    kernel: Optional[DotKernel] = None
) -> NeuralNetwork:
    """
    Read a network from a ``.chisei`` file.

    Raises:
        ModelIOError: If the file cannot be opened
        ModelFormatError: If the contents are not a valid model
    """
    try:
        with open(filename, 'rb') as f:
            data = f.read()
    except OSError as e:
        raise ModelIOError(
            f"Failed to open {filename} for loading model: {e}"
        ) from e

    network = decode(data, activation=activation, kernel=kernel)
    logger.info(f"Loaded network {list(network.layer_sizes)} from {filename}")
    return network


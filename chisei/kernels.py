"""
kernels.py
~~~~~~~~~~

Dot-product strategies used by the forward and backward passes.

Two interchangeable kernels implement the same interface:

- ScalarKernel: plain Python loops, one neuron and one term at a time.
  This is the reference implementation the tests compare against.
- VectorizedKernel: numpy matrix products, evaluating every neuron of a
  layer at once.

``select_kernel`` picks one at startup from CHISEI_KERNEL and from what
numpy reports about its linked linear-algebra backend.
"""

import logging
from typing import Optional

import numpy as np

from chisei import config

# Configure module logger
logger = logging.getLogger(__name__)


class DotKernel:
    """Interface for the two products the network needs."""

    name = 'base'

    def forward(
        self,
        inputs: np.ndarray,
        weights: np.ndarray,
        biases: np.ndarray
    ) -> np.ndarray:
        """
        Pre-activation sums of one layer.

        Args:
            inputs: Source layer output, shape (n_in,)
            weights: Weight matrix, shape (n_in, n_out)
            biases: Bias vector, shape (n_out,)

        Returns:
            np.ndarray: ``biases[j] + sum_i inputs[i] * weights[i, j]``
        """
        raise NotImplementedError

    def backward(self, gradients: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """
        Error signal pulled back through one weight matrix.

        Args:
            gradients: Gradient of the destination layer, shape (n_out,)
            weights: Weight matrix, shape (n_in, n_out)

        Returns:
            np.ndarray: ``sum_k gradients[k] * weights[j, k]`` for each j
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ScalarKernel(DotKernel):
    name = 'scalar'

    def forward(self, inputs, weights, biases):
        n_in, n_out = weights.shape
        sums = np.empty(n_out, dtype=np.float64)
        for j in range(n_out):
            total = float(biases[j])
            for i in range(n_in):
                total += float(inputs[i]) * float(weights[i, j])
            sums[j] = total
        return sums

    def backward(self, gradients, weights):
        n_in, n_out = weights.shape
        result = np.empty(n_in, dtype=np.float64)
        for j in range(n_in):
            total = 0.0
            for k in range(n_out):
                total += float(gradients[k]) * float(weights[j, k])
            result[j] = total
        return result


class VectorizedKernel(DotKernel):
    name = 'vectorized'

    def forward(self, inputs, weights, biases):
        return biases + inputs @ weights

    def backward(self, gradients, weights):
        return weights @ gradients


KERNELS = {
    ScalarKernel.name: ScalarKernel,
    VectorizedKernel.name: VectorizedKernel,
}


def _has_native_blas() -> bool:
    """Check whether numpy reports a compiled BLAS backend."""
    try:
        info = np.show_config(mode='dicts')
    except TypeError:
        # numpy < 1.26 has no dict mode; every wheel ships a BLAS anyway
        return True
    blas = (info or {}).get('Build Dependencies', {}).get('blas', {})
    return bool(blas.get('found', True))


def select_kernel(name: Optional[str] = None) -> DotKernel:
    """
    Choose a dot-product kernel.

    Args:
        name: 'scalar', 'vectorized' or 'auto'. Defaults to the
            CHISEI_KERNEL environment variable.

    Returns:
        DotKernel: A kernel instance

    Raises:
        ValueError: If the name is not a known kernel
    """
    if name is None:
        name = config.get_kernel_name()
    name = name.lower()

    if name == 'auto':
        name = (
            VectorizedKernel.name if _has_native_blas()
            else ScalarKernel.name
        )
        logger.debug(f"Auto-selected '{name}' dot-product kernel")

    if name not in KERNELS:
        raise ValueError(
            f"Unknown kernel '{name}', expected one of "
            f"{sorted(KERNELS) + ['auto']}"
        )
    return KERNELS[name]()

"""
activations.py
~~~~~~~~~~~~~~

Activation functions and their derivatives.

The set of supported activations is closed: every kind is a member of
:class:`Activation` and maps to exactly one :class:`ActivationSpec` in
``ACTIVATIONS``. Derivatives take the activation's *output* as their
argument, which is what the backward pass feeds them.
"""

import enum
from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from chisei.exceptions import ActivationError

ArrayFunction = Callable[[np.ndarray], np.ndarray]


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic function 1 / (1 + e^-x)."""
    # Clip to avoid overflow in exp
    return 1.0 / (1.0 + np.exp(-np.clip(x, -500.0, 500.0)))


def sigmoid_derivative(y: np.ndarray) -> np.ndarray:
    """Derivative of the logistic function given its output y."""
    return y * (1.0 - y)


def relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, 0.0)


def relu_derivative(y: np.ndarray) -> np.ndarray:
    # relu(x) > 0 exactly when x > 0, so the output is enough here.
    # At the x == 0 boundary the subgradient 0 is used.
    return np.where(y > 0.0, 1.0, 0.0)


def tanh(x: np.ndarray) -> np.ndarray:
    return np.tanh(x)


def tanh_derivative(y: np.ndarray) -> np.ndarray:
    """Derivative of tanh given its output y: 1 - y^2."""
    return 1.0 - y * y


class Activation(enum.Enum):
    """Supported activation kinds."""

    SIGMOID = 'sigmoid'
    RELU = 'relu'
    TANH = 'tanh'


@dataclass(frozen=True)
class ActivationSpec:
    """
    Dispatch entry for one activation kind.

    Attributes:
        kind: The activation kind this entry describes
        function: Elementwise forward function
        derivative: Elementwise derivative, evaluated at the forward output
        code: One-byte identifier used in persisted model files
        derivative_from_output: Whether ``derivative`` is expressed in
            terms of the output value. Networks only accept specs where
            this holds.
    """

    kind: Activation
    function: ArrayFunction
    derivative: ArrayFunction
    code: int
    derivative_from_output: bool = True


ACTIVATIONS = {
    Activation.SIGMOID: ActivationSpec(
        Activation.SIGMOID, sigmoid, sigmoid_derivative, code=1
    ),
    Activation.RELU: ActivationSpec(
        Activation.RELU, relu, relu_derivative, code=2
    ),
    Activation.TANH: ActivationSpec(
        Activation.TANH, tanh, tanh_derivative, code=3
    ),
}

DEFAULT_ACTIVATION = Activation.SIGMOID


def get_activation(kind: Union[Activation, str, None]) -> ActivationSpec:
    """
    Resolve an activation kind (enum member or its name) to its spec.

    Args:
        kind: Activation member, its string value (e.g. ``'tanh'``), or
            None for the default (sigmoid)

    Returns:
        ActivationSpec: The dispatch entry

    Raises:
        ActivationError: If the kind is unknown or its derivative is not
            expressed in terms of the activation output
    """
    if kind is None:
        kind = DEFAULT_ACTIVATION
    if isinstance(kind, str):
        try:
            kind = Activation(kind.lower())
        except ValueError:
            raise ActivationError(
                f"Unknown activation '{kind}', expected one of "
                f"{[a.value for a in Activation]}"
            ) from None
    if not isinstance(kind, Activation):
        raise ActivationError(f"Unsupported activation: {kind!r}")

    spec = ACTIVATIONS[kind]
    if not spec.derivative_from_output:
        raise ActivationError(
            f"Activation '{kind.value}' needs the pre-activation sum for its "
            f"derivative, which the backward pass does not keep"
        )
    return spec


def activation_from_code(code: int) -> ActivationSpec:
    """Look up an activation by the byte code stored in model files."""
    for spec in ACTIVATIONS.values():
        if spec.code == code:
            return spec
    raise ActivationError(f"Unknown activation code: {code}")

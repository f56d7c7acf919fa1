"""
network.py
~~~~~~~~~~

Fully-connected feedforward neural network trained with plain online
stochastic gradient descent.

A network with layer sizes ``[n0, n1, ..., nL]`` owns, for each pair of
consecutive layers, a weight matrix of shape ``(n_l, n_{l+1})`` and a bias
vector of length ``n_{l+1}``. ``weights[l][i, j]`` scales the signal from
neuron i of layer l into neuron j of layer l+1.

Example:
    >>> net = NeuralNetwork([2, 4, 1], activation='sigmoid', rng=42)
    >>> net.train(inputs, targets, learning_rate=6.0, epochs=10000)
    >>> net.predict([0.0, 1.0])
"""

import math
import numbers
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from chisei.activations import Activation, ActivationSpec, get_activation
from chisei.exceptions import DimensionMismatchError, EmptyDatasetError
from chisei.kernels import DotKernel, select_kernel
from chisei import metrics

# Configure module logger
logger = logging.getLogger(__name__)

WEIGHT_INIT_STD = 0.1

RandomSource = Union[np.random.Generator, int, None]
EpochCallback = Callable[[Dict[str, Any]], None]


def _validate_layer_sizes(layer_sizes: Sequence[int]) -> List[int]:
    sizes = []
    for size in layer_sizes:
        whole = int(size)
        if whole != size:
            raise ValueError(f"Layer sizes must be whole numbers, got {size!r}")
        sizes.append(whole)
    if len(sizes) < 2:
        raise ValueError(
            f"A network needs at least 2 layers, got {len(sizes)}"
        )
    if any(size < 1 for size in sizes):
        raise ValueError(f"Layer sizes must be positive, got {sizes}")
    return sizes


def _as_vector(values: Sequence[float], expected: int, what: str) -> np.ndarray:
    try:
        vector = np.asarray(values, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as e:
        raise DimensionMismatchError(
            f"{what} is not a flat vector of numbers: {e}"
        ) from e
    if vector.shape[0] != expected:
        raise DimensionMismatchError(
            f"{what} has length {vector.shape[0]}, expected {expected}"
        )
    return vector


class NeuralNetwork:
    """
    Feedforward network with one activation function for all layers.

    Args:
        layer_sizes: Neuron count per layer, input layer first
        activation: Activation kind (enum member or name), sigmoid by default
        rng: numpy Generator or integer seed for the initial parameters.
            None seeds a fresh generator from operating-system entropy.
        kernel: Dot-product kernel; chosen by ``select_kernel()`` if omitted
    """

    def __init__(
        self,
        layer_sizes: Sequence[int],
        activation: Union[Activation, str, None] = None,
        rng: RandomSource = None,
        kernel: Optional[DotKernel] = None
    ):
        self.layer_sizes = tuple(_validate_layer_sizes(layer_sizes))
        self._activation = get_activation(activation)
        self.kernel = kernel if kernel is not None else select_kernel()

        generator = np.random.default_rng(rng)
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for n_in, n_out in zip(self.layer_sizes[:-1], self.layer_sizes[1:]):
            self.weights.append(
                generator.normal(0.0, WEIGHT_INIT_STD, size=(n_in, n_out))
            )
            self.biases.append(
                generator.normal(0.0, WEIGHT_INIT_STD, size=n_out)
            )

        logger.debug(
            f"Initialized network {list(self.layer_sizes)} with "
            f"{self.activation.value} activation and {self.kernel.name} kernel"
        )

    @classmethod
    def from_parameters(
        cls,
        layer_sizes: Sequence[int],
        weights: Sequence[np.ndarray],
        biases: Sequence[np.ndarray],
        activation: Union[Activation, str, None] = None,
        kernel: Optional[DotKernel] = None
    ) -> 'NeuralNetwork':
        """
        Build a network from existing parameters without random init.

        Raises:
            DimensionMismatchError: If any array shape disagrees with
                ``layer_sizes``
        """
        sizes = _validate_layer_sizes(layer_sizes)
        if len(weights) != len(sizes) - 1 or len(biases) != len(sizes) - 1:
            raise DimensionMismatchError(
                f"Topology {sizes} needs {len(sizes) - 1} weight matrices "
                f"and bias vectors, got {len(weights)} and {len(biases)}"
            )

        net = cls.__new__(cls)
        net.layer_sizes = tuple(sizes)
        net._activation = get_activation(activation)
        net.kernel = kernel if kernel is not None else select_kernel()
        net.weights = []
        net.biases = []
        for layer, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
            w = np.array(weights[layer], dtype=np.float64)
            b = np.array(biases[layer], dtype=np.float64).reshape(-1)
            if w.shape != (n_in, n_out) or b.shape != (n_out,):
                raise DimensionMismatchError(
                    f"Layer {layer} expects weights {(n_in, n_out)} and "
                    f"biases {(n_out,)}, got {w.shape} and {b.shape}"
                )
            net.weights.append(w)
            net.biases.append(b)
        return net

    @property
    def activation(self) -> Activation:
        return self._activation.kind

    @property
    def activation_spec(self) -> ActivationSpec:
        return self._activation

    @property
    def input_size(self) -> int:
        return self.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.layer_sizes[-1]

    def copy(self) -> 'NeuralNetwork':
        """Independent copy of the parameters; activation and kernel are shared."""
        return NeuralNetwork.from_parameters(
            self.layer_sizes,
            [w.copy() for w in self.weights],
            [b.copy() for b in self.biases],
            activation=self.activation,
            kernel=self.kernel
        )

    __copy__ = copy

    def __repr__(self) -> str:
        return (
            f"NeuralNetwork({list(self.layer_sizes)}, "
            f"activation='{self.activation.value}')"
        )

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def _feedforward(self, x: np.ndarray) -> List[np.ndarray]:
        """Return every layer's output, the input itself first."""
        outputs = [x]
        f = self._activation.function
        for w, b in zip(self.weights, self.biases):
            x = f(self.kernel.forward(x, w, b))
            outputs.append(x)
        return outputs

    def predict(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Run a forward pass.

        Args:
            inputs: Input vector of length ``layer_sizes[0]``

        Returns:
            np.ndarray: Output layer activations, length ``layer_sizes[-1]``

        Raises:
            DimensionMismatchError: If the input length is wrong
        """
        x = _as_vector(inputs, self.input_size, 'Input vector')
        return self._feedforward(x)[-1]

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _prepare_samples(self, inputs, targets):
        if len(inputs) != len(targets):
            raise DimensionMismatchError(
                f"Got {len(inputs)} inputs but {len(targets)} targets"
            )
        if len(inputs) == 0:
            raise EmptyDatasetError("Training requires at least one sample")

        xs = [
            _as_vector(x, self.input_size, f'Input {i}')
            for i, x in enumerate(inputs)
        ]
        ys = [
            _as_vector(y, self.output_size, f'Target {i}')
            for i, y in enumerate(targets)
        ]
        return xs, ys

    def _train_sample(
        self,
        x: np.ndarray,
        y: np.ndarray,
        learning_rate: float
    ) -> float:
        """Apply one stochastic gradient step and return the sample's MSE."""
        outputs = self._feedforward(x)
        derivative = self._activation.derivative

        # Output layer error signal
        error = outputs[-1] - y
        gradients: List[Optional[np.ndarray]] = [None] * len(self.weights)
        gradients[-1] = error * derivative(outputs[-1])

        # Backpropagate from the last hidden layer towards the input.
        # gradients[l] belongs to the neurons of layer l + 1.
        for layer in range(len(self.weights) - 2, -1, -1):
            pulled = self.kernel.backward(
                gradients[layer + 1], self.weights[layer + 1]
            )
            gradients[layer] = pulled * derivative(outputs[layer + 1])

        for layer, grad in enumerate(gradients):
            self.weights[layer] -= learning_rate * np.outer(outputs[layer], grad)
            self.biases[layer] -= learning_rate * grad

        return float(np.mean(error * error))

    def train(
        self,
        inputs: Sequence[Sequence[float]],
        targets: Sequence[Sequence[float]],
        learning_rate: float = 0.1,
        epochs: int = 10000,
        on_epoch_complete: Optional[EpochCallback] = None
    ) -> None:
        """
        Train with online gradient descent on mean squared error.

        Every epoch visits each sample once, in the given order, and
        updates the parameters after each sample. There is no shuffling
        and no early stopping.

        Args:
            inputs: Input vectors, each of length ``layer_sizes[0]``
            targets: Target vectors, each of length ``layer_sizes[-1]``
            learning_rate: Step size
            epochs: Number of passes over the samples
            on_epoch_complete: Optional callback receiving
                ``{'epoch', 'epochs', 'loss'}`` after every epoch

        Raises:
            DimensionMismatchError: If any vector length is wrong or the
                collections differ in length
            EmptyDatasetError: If there are no samples
            ValueError: If epochs is negative or learning_rate not finite
        """
        if not isinstance(epochs, numbers.Integral) or epochs < 0:
            raise ValueError(f"epochs must be a non-negative integer, got {epochs}")
        if not math.isfinite(learning_rate):
            raise ValueError(f"learning_rate must be finite, got {learning_rate}")

        xs, ys = self._prepare_samples(inputs, targets)
        logger.info(
            f"Training network {list(self.layer_sizes)} on {len(xs)} samples: "
            f"epochs={epochs}, lr={learning_rate}"
        )

        loss = float('nan')
        for epoch in range(epochs):
            total = 0.0
            for x, y in zip(xs, ys):
                total += self._train_sample(x, y, learning_rate)
            loss = total / len(xs)

            logger.debug(f"Epoch {epoch + 1}/{epochs}: loss {loss:.6f}")
            if on_epoch_complete is not None:
                on_epoch_complete({
                    'epoch': epoch + 1,
                    'epochs': epochs,
                    'loss': loss
                })

        logger.info(f"Training finished after {epochs} epoch(s), loss {loss:.6f}")

    # ------------------------------------------------------------------
    # Evaluation and persistence
    # ------------------------------------------------------------------

    def compute_accuracy(
        self,
        inputs: Sequence[Sequence[float]],
        targets: Sequence[Sequence[float]]
    ) -> float:
        """Fraction of samples classified correctly, see metrics.compute_accuracy."""
        return metrics.compute_accuracy(self, inputs, targets)

    def save_model(self, filename: str, include_activation: bool = False) -> str:
        """Write the network to a ``.chisei`` file and return its path."""
        from chisei.codec import save_model
        return save_model(self, filename, include_activation=include_activation)

    @classmethod
    def load_model(
        cls,
        filename: str,
        activation: Union[Activation, str, None] = None
    ) -> 'NeuralNetwork':
        """Read a network from a ``.chisei`` file."""
        from chisei.codec import load_model
        return load_model(filename, activation=activation)

"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for construction, prediction and training.
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from chisei.activations import Activation, sigmoid
from chisei.exceptions import DimensionMismatchError, EmptyDatasetError
from chisei.metrics import mean_squared_error
from chisei.network import NeuralNetwork

XNOR_INPUTS = [[0, 0], [0, 1], [1, 0], [1, 1]]
XNOR_TARGETS = [[1], [0], [0], [1]]


@pytest.fixture
def simple_network():
    """Create a seeded 3-layer network for testing."""
    return NeuralNetwork([3, 4, 2], rng=0)


def assert_parameters_equal(a, b):
    for wa, wb in zip(a.weights, b.weights):
        assert np.array_equal(wa, wb)
    for ba, bb in zip(a.biases, b.biases):
        assert np.array_equal(ba, bb)


@pytest.mark.unit
class TestConstruction:
    """Test topology handling and parameter initialization."""

    def test_parameter_shapes_follow_topology(self):
        net = NeuralNetwork([5, 3, 4, 2], rng=1)

        assert net.layer_sizes == (5, 3, 4, 2)
        assert [w.shape for w in net.weights] == [(5, 3), (3, 4), (4, 2)]
        assert [b.shape for b in net.biases] == [(3,), (4,), (2,)]

    def test_fixed_seed_gives_exact_initial_values(self):
        """Test weights then biases are drawn per layer from N(0, 0.1)."""
        net = NeuralNetwork([2, 3, 1], rng=123)

        rng = np.random.default_rng(123)
        expected_w0 = rng.normal(0.0, 0.1, size=(2, 3))
        expected_b0 = rng.normal(0.0, 0.1, size=3)
        expected_w1 = rng.normal(0.0, 0.1, size=(3, 1))
        expected_b1 = rng.normal(0.0, 0.1, size=1)

        assert np.array_equal(net.weights[0], expected_w0)
        assert np.array_equal(net.biases[0], expected_b0)
        assert np.array_equal(net.weights[1], expected_w1)
        assert np.array_equal(net.biases[1], expected_b1)

    def test_accepts_generator(self):
        a = NeuralNetwork([4, 4], rng=np.random.default_rng(5))
        b = NeuralNetwork([4, 4], rng=5)
        assert_parameters_equal(a, b)

    def test_unseeded_networks_differ(self):
        a = NeuralNetwork([10, 10])
        b = NeuralNetwork([10, 10])
        assert not np.array_equal(a.weights[0], b.weights[0])

    def test_initial_spread(self):
        net = NeuralNetwork([200, 200], rng=3)
        assert abs(net.weights[0].mean()) < 0.01
        assert net.weights[0].std() == pytest.approx(0.1, rel=0.05)

    @pytest.mark.parametrize('layer_sizes', [[], [3], [3, 0], [2, -1, 2], [2.7, 3], [3, 1.5]])
    def test_invalid_topology_raises(self, layer_sizes):
        with pytest.raises(ValueError):
            NeuralNetwork(layer_sizes)

    def test_default_activation_is_sigmoid(self, simple_network):
        assert simple_network.activation is Activation.SIGMOID

    def test_activation_by_name(self):
        assert NeuralNetwork([2, 2], activation='tanh').activation is Activation.TANH

    def test_from_parameters_checks_shapes(self):
        with pytest.raises(DimensionMismatchError):
            NeuralNetwork.from_parameters(
                [2, 3], [np.zeros((3, 2))], [np.zeros(3)]
            )
        with pytest.raises(DimensionMismatchError):
            NeuralNetwork.from_parameters([2, 3, 1], [np.zeros((2, 3))], [np.zeros(3)])


@pytest.mark.unit
class TestCopy:

    def test_copy_is_independent(self, simple_network):
        clone = simple_network.copy()
        assert_parameters_equal(simple_network, clone)

        clone.weights[0][0, 0] += 1.0
        clone.biases[1][0] += 1.0
        assert simple_network.weights[0][0, 0] != clone.weights[0][0, 0]
        assert simple_network.biases[1][0] != clone.biases[1][0]

    def test_copy_shares_activation_and_kernel(self, simple_network):
        clone = simple_network.copy()
        assert clone.activation_spec is simple_network.activation_spec
        assert clone.kernel is simple_network.kernel
        assert clone.layer_sizes == simple_network.layer_sizes


@pytest.mark.unit
class TestPredict:

    @pytest.mark.parametrize('layer_sizes', [
        [1, 1], [3, 2], [4, 8, 3], [2, 5, 5, 1], [6, 3, 9, 2, 7]
    ])
    def test_output_length_matches_last_layer(self, layer_sizes):
        net = NeuralNetwork(layer_sizes, rng=0)
        output = net.predict(np.linspace(0, 1, layer_sizes[0]))

        assert output.shape == (layer_sizes[-1],)
        assert np.all(np.isfinite(output))

    def test_matches_manual_forward_pass(self):
        w0 = np.array([[0.2, -0.5], [0.4, 0.1], [-0.3, 0.8]])
        b0 = np.array([0.1, -0.2])
        w1 = np.array([[0.7], [-0.6]])
        b1 = np.array([0.05])
        net = NeuralNetwork.from_parameters([3, 2, 1], [w0, w1], [b0, b1])

        x = np.array([1.0, 0.5, -1.0])
        hidden = sigmoid(b0 + x @ w0)
        expected = sigmoid(b1 + hidden @ w1)

        assert np.allclose(net.predict(x), expected, rtol=0, atol=1e-12)

    def test_wrong_input_length_raises(self, simple_network):
        with pytest.raises(DimensionMismatchError) as exc_info:
            simple_network.predict([1.0, 2.0])
        assert 'expected 3' in str(exc_info.value)

    @pytest.mark.parametrize('vector', [['a', 'b', 'c'], [0, [1, 2], 3], [[0], [1, 2]]])
    def test_non_numeric_input_raises(self, simple_network, vector):
        with pytest.raises(DimensionMismatchError):
            simple_network.predict(vector)

    def test_predict_does_not_modify_input(self, simple_network):
        x = np.array([0.1, 0.2, 0.3])
        simple_network.predict(x)
        assert x.tolist() == [0.1, 0.2, 0.3]


@pytest.mark.unit
class TestTrain:

    def test_single_step_matches_hand_computed_update(self):
        """Test one SGD step against the backpropagation equations."""
        w0 = np.array([[0.1, -0.2], [0.3, 0.4]])
        b0 = np.array([0.05, -0.05])
        w1 = np.array([[0.6], [-0.1]])
        b1 = np.array([0.2])
        net = NeuralNetwork.from_parameters([2, 2, 1], [w0, w1], [b0, b1])

        x = np.array([1.0, 0.5])
        t = np.array([1.0])
        lr = 0.5

        h = sigmoid(b0 + x @ w0)
        o = sigmoid(b1 + h @ w1)
        grad_out = (o - t) * o * (1 - o)
        grad_hidden = (w1 @ grad_out) * h * (1 - h)

        expected_w1 = w1 - lr * np.outer(h, grad_out)
        expected_b1 = b1 - lr * grad_out
        expected_w0 = w0 - lr * np.outer(x, grad_hidden)
        expected_b0 = b0 - lr * grad_hidden

        net.train([x], [t], learning_rate=lr, epochs=1)

        assert np.allclose(net.weights[1], expected_w1, rtol=0, atol=1e-12)
        assert np.allclose(net.biases[1], expected_b1, rtol=0, atol=1e-12)
        assert np.allclose(net.weights[0], expected_w0, rtol=0, atol=1e-12)
        assert np.allclose(net.biases[0], expected_b0, rtol=0, atol=1e-12)

    def test_sample_order_matters(self):
        """Test that updates are applied per sample, in order."""
        inputs = [[0.0, 1.0], [1.0, 0.0]]
        targets = [[1.0], [0.0]]
        forward = NeuralNetwork([2, 3, 1], rng=4)
        backward = forward.copy()

        forward.train(inputs, targets, learning_rate=1.0, epochs=1)
        backward.train(inputs[::-1], targets[::-1], learning_rate=1.0, epochs=1)

        assert not np.allclose(forward.weights[0], backward.weights[0])

    def test_zero_epochs_leaves_parameters(self, simple_network):
        before = simple_network.copy()
        simple_network.train([[0, 0, 0]], [[1, 0]], epochs=0)
        assert_parameters_equal(before, simple_network)

    def test_reduces_loss_on_identity_mapping(self):
        inputs = [[0.0, 1.0], [1.0, 0.0], [0.2, 0.8], [0.9, 0.1]]
        net = NeuralNetwork([2, 4, 2], rng=2)

        def average_loss():
            return np.mean([
                mean_squared_error(net.predict(x), x) for x in inputs
            ])

        losses = [average_loss()]
        for _ in range(3):
            net.train(inputs, inputs, learning_rate=0.5, epochs=500)
            losses.append(average_loss())

        assert losses[-1] < losses[0] * 0.5
        assert losses[-1] <= losses[1]

    def test_epoch_callback(self, simple_network):
        progress = []
        simple_network.train(
            [[0.1, 0.2, 0.3], [0.3, 0.2, 0.1]],
            [[1, 0], [0, 1]],
            learning_rate=0.1,
            epochs=3,
            on_epoch_complete=progress.append
        )

        assert [p['epoch'] for p in progress] == [1, 2, 3]
        assert all(p['epochs'] == 3 for p in progress)
        assert all(p['loss'] >= 0.0 for p in progress)

    def test_mismatched_sample_counts_raise(self, simple_network):
        with pytest.raises(DimensionMismatchError):
            simple_network.train([[0, 0, 0]], [[1, 0], [0, 1]], epochs=1)

    def test_bad_target_rejected_before_any_update(self, simple_network):
        """Test that validation happens before parameters are touched."""
        before = simple_network.copy()
        with pytest.raises(DimensionMismatchError):
            simple_network.train(
                [[0, 0, 0], [1, 1, 1]],
                [[1, 0], [1, 0, 0]],
                epochs=5
            )
        assert_parameters_equal(before, simple_network)

    def test_empty_samples_raise(self, simple_network):
        with pytest.raises(EmptyDatasetError):
            simple_network.train([], [], epochs=1)

    @pytest.mark.parametrize('epochs', [-1, 1.5])
    def test_invalid_epochs_raise(self, simple_network, epochs):
        with pytest.raises(ValueError):
            simple_network.train([[0, 0, 0]], [[1, 0]], epochs=epochs)

    def test_non_finite_learning_rate_raises(self, simple_network):
        with pytest.raises(ValueError):
            simple_network.train([[0, 0, 0]], [[1, 0]], learning_rate=float('nan'))


@pytest.mark.integration
class TestXnor:
    """The classic XNOR scenario on a [2, 4, 1] sigmoid network."""

    @pytest.mark.parametrize('learning_rate', [6.0, 2.0])
    def test_learns_xnor(self, learning_rate):
        accuracies = []
        for seed in (0, 1, 2):
            net = NeuralNetwork([2, 4, 1], activation='sigmoid', rng=seed)
            net.train(XNOR_INPUTS, XNOR_TARGETS,
                      learning_rate=learning_rate, epochs=10000)
            accuracies.append(net.compute_accuracy(XNOR_INPUTS, XNOR_TARGETS))

        assert min(accuracies) >= 0.75

"""
test_activations.py
~~~~~~~~~~~~~~~~~~~

Unit tests for activation functions and the activation table.
"""

import os
import sys
import dataclasses

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from chisei import activations
from chisei.activations import (
    ACTIVATIONS,
    Activation,
    activation_from_code,
    get_activation,
)
from chisei.exceptions import ActivationError


@pytest.mark.unit
class TestActivationFunctions:
    """Test the forward functions and output-based derivatives."""

    def test_sigmoid_values(self):
        assert activations.sigmoid(np.array(0.0)) == pytest.approx(0.5)
        assert activations.sigmoid(np.array(50.0)) == pytest.approx(1.0)
        assert activations.sigmoid(np.array(-50.0)) == pytest.approx(0.0)

    def test_sigmoid_does_not_overflow(self):
        """Test that very negative inputs give 0 without overflow warnings."""
        with np.errstate(over='raise'):
            result = activations.sigmoid(np.array([-1e4, 1e4]))
        assert np.all(np.isfinite(result))

    @pytest.mark.parametrize('kind', list(Activation))
    def test_derivative_matches_numerical_slope(self, kind):
        """Test that f'(f(x)) equals the finite-difference slope at x."""
        spec = get_activation(kind)
        x = np.array([-1.3, -0.4, 0.7, 2.1])
        h = 1e-6

        numeric = (spec.function(x + h) - spec.function(x - h)) / (2 * h)
        analytic = spec.derivative(spec.function(x))

        assert np.allclose(numeric, analytic, atol=1e-6)

    def test_relu_boundary(self):
        """Test that ReLU uses a zero subgradient at its kink."""
        y = activations.relu(np.array([-2.0, 0.0, 3.0]))
        assert y.tolist() == [0.0, 0.0, 3.0]
        assert activations.relu_derivative(y).tolist() == [0.0, 0.0, 1.0]

    def test_tanh_derivative(self):
        assert activations.tanh_derivative(np.array(0.0)) == pytest.approx(1.0)
        assert activations.tanh_derivative(np.array(0.5)) == pytest.approx(0.75)


@pytest.mark.unit
class TestActivationTable:
    """Test lookup by kind, name and persisted code."""

    def test_default_is_sigmoid(self):
        assert get_activation(None).kind is Activation.SIGMOID

    def test_lookup_by_name(self):
        assert get_activation('tanh').kind is Activation.TANH
        assert get_activation('ReLU').kind is Activation.RELU

    def test_unknown_name_raises(self):
        with pytest.raises(ActivationError) as exc_info:
            get_activation('softplus')
        assert 'softplus' in str(exc_info.value)

    def test_non_activation_raises(self):
        with pytest.raises(ActivationError):
            get_activation(42)

    def test_codes_are_unique(self):
        codes = [spec.code for spec in ACTIVATIONS.values()]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize('kind', list(Activation))
    def test_code_lookup(self, kind):
        code = ACTIVATIONS[kind].code
        assert activation_from_code(code).kind is kind

    def test_unknown_code_raises(self):
        with pytest.raises(ActivationError):
            activation_from_code(255)

    def test_rejects_derivative_needing_raw_input(self, monkeypatch):
        """Test that a spec whose derivative needs the raw sum is refused."""
        spec = dataclasses.replace(
            ACTIVATIONS[Activation.RELU], derivative_from_output=False
        )
        monkeypatch.setitem(ACTIVATIONS, Activation.RELU, spec)

        with pytest.raises(ActivationError) as exc_info:
            get_activation(Activation.RELU)
        assert 'relu' in str(exc_info.value)

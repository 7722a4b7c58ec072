"""
test_activations.py
~~~~~~~~~~~~~~~~~~~

Unit tests for the activation function registry.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from simplenn.activations import (
    Activation,
    available_activations,
    get_activation,
    sigmoid
)


@pytest.mark.unit
class TestActivationLookup:
    """Test resolving activation names."""

    @pytest.mark.parametrize("name", ['None', 'Sigmoid', 'ReLU'])
    def test_known_names_resolve(self, name):
        """Test that every built-in name resolves to itself."""
        assert get_activation(name).name == name

    def test_enum_member_resolves(self):
        """Test that enum members are accepted as names."""
        assert get_activation(Activation.RELU).name == 'ReLU'

    @pytest.mark.parametrize("name", ['Swish', 'relu', 'sigmoid', '', None])
    def test_unknown_name_falls_back_to_sigmoid(self, name):
        """Test that unknown names silently resolve to Sigmoid."""
        assert get_activation(name) is get_activation('Sigmoid')

    def test_available_activations(self):
        """Test that the registry lists all built-in names."""
        assert available_activations() == ['None', 'Sigmoid', 'ReLU']


@pytest.mark.unit
class TestActivationValues:
    """Test activation values and derivatives."""

    def test_identity(self):
        """Test that None is the identity with derivative 1."""
        act = get_activation('None')
        z = np.array([-2.5, 0.0, 3.0])

        assert np.array_equal(act.f(z), z)
        assert np.array_equal(act.df(z), np.ones(3))

    def test_sigmoid_values(self):
        """Test sigmoid at zero and its symmetry."""
        act = get_activation('Sigmoid')

        assert act.f(0.0) == pytest.approx(0.5)
        assert act.df(0.0) == pytest.approx(0.25)
        assert act.f(2.0) + act.f(-2.0) == pytest.approx(1.0)

    def test_sigmoid_derivative_at_pre_activation(self):
        """Test that df is evaluated at z, not at f(z)."""
        act = get_activation('Sigmoid')
        z = 1.3
        s = 1.0 / (1.0 + np.exp(-z))

        assert act.df(z) == pytest.approx(s * (1 - s))

    def test_sigmoid_extreme_inputs(self):
        """Test that sigmoid saturates without producing NaN."""
        values = sigmoid(np.array([-1000.0, 1000.0]))

        assert values[0] == 0.0
        assert values[1] == 1.0
        assert not np.any(np.isnan(get_activation('Sigmoid').df(values)))

    def test_relu_values(self):
        """Test ReLU values on both branches."""
        act = get_activation('ReLU')
        z = np.array([-1.0, 0.0, 2.0])

        assert np.array_equal(act.f(z), [0.0, 0.0, 2.0])

    def test_relu_derivative_at_zero_is_zero(self):
        """Test that z == 0 takes the non-positive branch."""
        act = get_activation('ReLU')

        assert act.df(0.0) == 0.0
        assert act.df(-0.5) == 0.0
        assert act.df(1e-12) == 1.0

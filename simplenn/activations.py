"""
activations.py
~~~~~~~~~~~~~~

Registry of the activation functions a network can use.

Each entry pairs a value function ``f`` with its derivative ``df``. Both
accept a scalar or a numpy array of pre-activations. ``df`` is always
evaluated at the pre-activation ``z``, never at the activated value.

Unknown names do not raise: :func:`get_activation` falls back to Sigmoid.
Callers that mistype a name (``"relu"``, ``"Swish"``) silently get a
Sigmoid network.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Union

import numpy as np

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray]


class Activation(str, Enum):
    """Names of the built-in activation functions."""

    NONE = 'None'
    SIGMOID = 'Sigmoid'
    RELU = 'ReLU'


class ActivationFunction(NamedTuple):
    """A named value/derivative pair."""

    name: str
    f: Callable[[ArrayLike], np.ndarray]
    df: Callable[[ArrayLike], np.ndarray]


def identity(z: ArrayLike) -> np.ndarray:
    return np.asarray(z, dtype=float)


def identity_prime(z: ArrayLike) -> np.ndarray:
    return np.ones_like(np.asarray(z, dtype=float))


def sigmoid(z: ArrayLike) -> np.ndarray:
    """The sigmoid function."""
    # exp overflows to inf for very negative z, which gives exactly 0.0
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-np.asarray(z, dtype=float)))


def sigmoid_prime(z: ArrayLike) -> np.ndarray:
    """Derivative of the sigmoid function."""
    s = sigmoid(z)
    return s * (1 - s)


def relu(z: ArrayLike) -> np.ndarray:
    z = np.asarray(z, dtype=float)
    return np.where(z > 0, z, 0.0)


def relu_prime(z: ArrayLike) -> np.ndarray:
    # z == 0 takes the non-positive branch
    return np.where(np.asarray(z, dtype=float) > 0, 1.0, 0.0)


ACTIVATIONS: Dict[Activation, ActivationFunction] = {
    Activation.NONE: ActivationFunction(
        Activation.NONE.value, identity, identity_prime
    ),
    Activation.SIGMOID: ActivationFunction(
        Activation.SIGMOID.value, sigmoid, sigmoid_prime
    ),
    Activation.RELU: ActivationFunction(
        Activation.RELU.value, relu, relu_prime
    ),
}

DEFAULT_ACTIVATION = Activation.SIGMOID


def get_activation(name) -> ActivationFunction:
    """
    Look up an activation function by name.

    Args:
        name: Activation name ('None', 'Sigmoid', 'ReLU') or an
            :class:`Activation` member. Matching is case-sensitive.

    Returns:
        ActivationFunction: The matching entry, or the Sigmoid entry if
        the name is not registered.

    Example:
        >>> get_activation('ReLU').f(-2.0)
        array(0.)
        >>> get_activation('Swish').name
        'Sigmoid'
    """
    try:
        key = Activation(name)
    except ValueError:
        logger.warning(
            f"Unknown activation {name!r}, falling back to "
            f"{DEFAULT_ACTIVATION.value}"
        )
        key = DEFAULT_ACTIVATION
    return ACTIVATIONS[key]


def available_activations() -> List[str]:
    """Return the names of all registered activation functions."""
    return [activation.value for activation in Activation]

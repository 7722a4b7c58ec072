"""
network.py
~~~~~~~~~~

A fully-connected feedforward neural network trained one sample at a time
with plain gradient descent.

Weights for the transition from layer ``l`` to layer ``l+1`` are stored as a
``(sizes[l+1], sizes[l])`` matrix, so row ``i`` holds the incoming weights of
unit ``i``. Biases are 1-D vectors of length ``sizes[l+1]``. Every non-input
layer uses the same activation function.

Gradients are computed by backpropagation of the cost
``0.5 * sum((output - target) ** 2)``; the loss reported alongside them is
the mean squared error of the same sample.
"""

import logging
import math
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from simplenn.activations import get_activation

logger = logging.getLogger(__name__)

# Initial parameters are integers in [-INIT_RANGE, INIT_RANGE] times INIT_SCALE
INIT_RANGE = 10
INIT_SCALE = 0.1


class NetworkError(ValueError):
    """Base class for errors raised by the network engine."""


class InvalidArchitectureError(NetworkError):
    """Layer sizes are too few or contain a non-positive width."""


class ShapeMismatchError(NetworkError):
    """An input, target or gradient does not match the network's shape."""


class ForwardTrace(NamedTuple):
    """Pre-activations and activations recorded by one forward pass."""

    zs: List[np.ndarray]
    activations: List[np.ndarray]

    @property
    def output(self) -> np.ndarray:
        return self.activations[-1]


class Gradient(NamedTuple):
    """Per-layer gradients for one sample, plus that sample's loss."""

    nabla_w: List[np.ndarray]
    nabla_b: List[np.ndarray]
    loss: float


def _validate_sizes(sizes) -> tuple:
    try:
        sizes = list(sizes)
    except TypeError:
        raise InvalidArchitectureError(
            f"Layer sizes must be a sequence, got {sizes!r}"
        )

    if len(sizes) < 2:
        raise InvalidArchitectureError(
            f"Network needs at least 2 layers, got {len(sizes)}"
        )
    for size in sizes:
        if (isinstance(size, bool)
                or not isinstance(size, (int, np.integer))
                or size <= 0):
            raise InvalidArchitectureError(
                f"Layer sizes must be positive integers, got {sizes}"
            )
    return tuple(int(size) for size in sizes)


def _as_vector(values, expected: int, what: str) -> np.ndarray:
    """Copy ``values`` into a float vector of length ``expected``."""
    try:
        vector = np.array(values, dtype=float)
    except (TypeError, ValueError):
        raise ShapeMismatchError(f"{what} must be a sequence of numbers")

    if vector.ndim != 1 or vector.shape[0] != expected:
        raise ShapeMismatchError(
            f"{what} must have {expected} values, got shape {vector.shape}"
        )
    return vector


def _random_parameters(rng: np.random.Generator, shape) -> np.ndarray:
    steps = rng.integers(-INIT_RANGE, INIT_RANGE, size=shape, endpoint=True)
    return steps * INIT_SCALE


class Network:

    def __init__(
        self,
        sizes: Sequence[int],
        activation_name: str = 'Sigmoid',
        rng: Optional[np.random.Generator] = None
    ):
        """
        Build a network with freshly initialized parameters.

        ``sizes`` lists the number of units in each layer, input first.
        For example ``[2, 3, 1]`` is a network with two inputs, one
        hidden layer of three units and a single output. Every weight and
        bias is drawn independently from {-1.0, -0.9, ..., 0.9, 1.0}.

        ``activation_name`` is kept as given; unknown names resolve to the
        Sigmoid function (see :func:`simplenn.activations.get_activation`).

        Raises:
            InvalidArchitectureError: If fewer than two layers are given
                or any width is not a positive integer.
        """
        self.sizes = _validate_sizes(sizes)
        self.num_layers = len(self.sizes)
        self.activation_name = activation_name
        self.activation = get_activation(activation_name)

        if rng is None:
            rng = np.random.default_rng()

        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for x, y in zip(self.sizes[:-1], self.sizes[1:]):
            self.weights.append(_random_parameters(rng, (y, x)))
            self.biases.append(_random_parameters(rng, (y,)))

        logger.debug(
            f"Constructed network {list(self.sizes)} with activation "
            f"{self.activation.name}"
        )

    def __repr__(self) -> str:
        return (
            f"Network(sizes={list(self.sizes)}, "
            f"activation_name={self.activation_name!r})"
        )

    def forward(self, x) -> ForwardTrace:
        """
        Run ``x`` through the network, recording every layer.

        Raises:
            ShapeMismatchError: If ``x`` does not have ``sizes[0]`` values.
        """
        activation = _as_vector(x, self.sizes[0], 'input')
        activations = [activation]  # list to store all the activations
        zs = []  # list to store all the z vectors
        for w, b in zip(self.weights, self.biases):
            z = np.dot(w, activation) + b
            zs.append(z)
            activation = self.activation.f(z)
            activations.append(activation)
        return ForwardTrace(zs, activations)

    def feedforward(self, x) -> np.ndarray:
        """Return the output of the network if ``x`` is input."""
        return self.forward(x).output

    def backprop(self, x, y) -> Gradient:
        """
        Return a :class:`Gradient` for the single sample ``(x, y)``.

        ``nabla_w`` and ``nabla_b`` are layer-by-layer lists of arrays
        shaped like ``self.weights`` and ``self.biases``. The network is
        not modified.

        Raises:
            ShapeMismatchError: If ``x`` or ``y`` has the wrong width.
        """
        _as_vector(x, self.sizes[0], 'input')
        y = _as_vector(y, self.sizes[-1], 'target')

        trace = self.forward(x)
        zs, activations = trace

        nabla_b = [np.zeros(b.shape) for b in self.biases]
        nabla_w = [np.zeros(w.shape) for w in self.weights]

        # backward pass
        delta = (self.cost_derivative(activations[-1], y)
                 * self.activation.df(zs[-1]))
        nabla_b[-1] = delta
        nabla_w[-1] = np.outer(delta, activations[-2])
        # l = 1 means the last layer of units, l = 2 the second-last, and
        # so on. With no hidden layers the loop body never runs.
        for l in range(2, self.num_layers):
            z = zs[-l]
            delta = (np.dot(self.weights[-l + 1].T, delta)
                     * self.activation.df(z))
            nabla_b[-l] = delta
            nabla_w[-l] = np.outer(delta, activations[-l - 1])

        return Gradient(nabla_w, nabla_b, loss(trace.output, y))

    def apply_gradients(
        self,
        nabla_w: Sequence[np.ndarray],
        nabla_b: Sequence[np.ndarray],
        learning_rate: float = 0.1
    ) -> None:
        """
        Take one gradient descent step in place.

        Any learning rate is accepted, including zero and negative values.
        Shapes are checked for every layer before any parameter changes.

        Raises:
            ShapeMismatchError: If the gradients do not match the
                network's weights and biases.
        """
        if (len(nabla_w) != len(self.weights)
                or len(nabla_b) != len(self.biases)):
            raise ShapeMismatchError(
                f"Expected gradients for {len(self.weights)} layers, got "
                f"{len(nabla_w)} weight and {len(nabla_b)} bias arrays"
            )
        for l, (w, nw, b, nb) in enumerate(
                zip(self.weights, nabla_w, self.biases, nabla_b)):
            if np.shape(nw) != w.shape or np.shape(nb) != b.shape:
                raise ShapeMismatchError(
                    f"Gradient for layer {l} has shapes {np.shape(nw)} and "
                    f"{np.shape(nb)}, expected {w.shape} and {b.shape}"
                )

        if not math.isfinite(learning_rate):
            logger.warning(
                f"Applying gradients with non-finite learning rate "
                f"{learning_rate}"
            )

        for w, nw in zip(self.weights, nabla_w):
            w -= learning_rate * np.asarray(nw, dtype=float)
        for b, nb in zip(self.biases, nabla_b):
            b -= learning_rate * np.asarray(nb, dtype=float)

    def cost_derivative(self, output_activations, y) -> np.ndarray:
        """Return the vector of partial derivatives dC/da for the output."""
        return output_activations - y


def loss(output, target) -> float:
    """
    Mean squared error between ``output`` and ``target``.

    Raises:
        ShapeMismatchError: If the vectors differ in length or are empty.
    """
    output = np.asarray(output, dtype=float)
    target = np.asarray(target, dtype=float)
    if output.shape != target.shape:
        raise ShapeMismatchError(
            f"Output shape {output.shape} does not match target shape "
            f"{target.shape}"
        )
    if output.size == 0:
        raise ShapeMismatchError("Cannot compute loss of empty vectors")
    return float(np.mean((output - target) ** 2))


def construct(
    sizes: Sequence[int],
    activation_name: str = 'Sigmoid',
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Build a new network.

    Example:
        >>> net = construct([2, 3, 1], 'ReLU')
        >>> [w.shape for w in net.weights]
        [(3, 2), (1, 3)]
    """
    return Network(sizes, activation_name, rng=rng)


def forward(net: Network, x) -> ForwardTrace:
    return net.forward(x)


def backprop(net: Network, x, y) -> Gradient:
    return net.backprop(x, y)


def apply_gradients(
    net: Network,
    nabla_w: Sequence[np.ndarray],
    nabla_b: Sequence[np.ndarray],
    learning_rate: float
) -> None:
    net.apply_gradients(nabla_w, nabla_b, learning_rate)

"""
training.py
~~~~~~~~~~~

Single-sample training session built on the network engine.

A session owns one network together with the sample it is trained on, the
learning rate, and the loss history. It supports stepping a fixed number of
iterations and a continuous loop that a server runs in the background and
stops with :meth:`TrainingSession.pause`.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from simplenn.network import Network, construct

logger = logging.getLogger(__name__)

DEFAULT_LAYER_SIZES = [2, 3, 1]
DEFAULT_ACTIVATION = 'Sigmoid'
DEFAULT_LEARNING_RATE = 0.1
LOSS_WINDOW = 200


class TrainingSession:
    """
    Trains a network repeatedly on one (input, target) sample.

    Changing the architecture or activation always builds a new network
    via :meth:`rebuild`; the old one is discarded along with its history.
    """

    def __init__(
        self,
        layer_sizes: Optional[Sequence[int]] = None,
        activation_name: str = DEFAULT_ACTIVATION,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        inputs: Optional[Sequence[float]] = None,
        targets: Optional[Sequence[float]] = None,
        pin_bias_input: bool = False,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            layer_sizes: Units per layer, input first
            activation_name: Activation used by every non-input layer
            learning_rate: Step size for gradient descent
            inputs: Training input (defaults to zeros)
            targets: Training target (defaults to zeros)
            pin_bias_input: Force input 0 to 1.0 so it acts as a bias unit
            rng: Random generator used for parameter initialization

        Raises:
            InvalidArchitectureError: If ``layer_sizes`` is invalid
        """
        self.learning_rate = learning_rate
        self.pin_bias_input = pin_bias_input
        self.rng = rng
        self.running = False
        self.selected_edge: Optional[tuple] = None
        # Incremented by start(); a run loop holding an older token exits
        self._run_token = 0

        self.network: Optional[Network] = None
        self.loss_history: List[float] = []
        self.steps = 0

        self.rebuild(
            layer_sizes if layer_sizes is not None else DEFAULT_LAYER_SIZES,
            activation_name
        )

        self.inputs = (list(inputs) if inputs is not None
                       else [0.0] * self.network.sizes[0])
        self.targets = (list(targets) if targets is not None
                        else [0.0] * self.network.sizes[-1])

    def rebuild(
        self,
        layer_sizes: Optional[Sequence[int]] = None,
        activation_name: Optional[str] = None
    ) -> Network:
        """
        Replace the network with a freshly initialized one.

        Sizes or activation left as ``None`` are taken from the current
        network. The loss history and step count are cleared. If the input
        or output width changes, the matching half of the sample is reset
        to zeros.
        """
        previous = self.network
        if layer_sizes is None:
            layer_sizes = self.network.sizes
        if activation_name is None:
            activation_name = self.network.activation_name

        self.network = construct(layer_sizes, activation_name, rng=self.rng)
        self.loss_history = []
        self.steps = 0
        self.selected_edge = None

        if previous is not None:
            if previous.sizes[0] != self.network.sizes[0]:
                self.inputs = [0.0] * self.network.sizes[0]
            if previous.sizes[-1] != self.network.sizes[-1]:
                self.targets = [0.0] * self.network.sizes[-1]

        logger.info(
            f"Built network {list(self.network.sizes)} with activation "
            f"{self.network.activation.name}"
        )
        return self.network

    def training_input(self) -> List[float]:
        """Return the input vector actually fed to the network."""
        inputs = [float(value) for value in self.inputs]
        if self.pin_bias_input:
            if not inputs:
                inputs = [1.0]
            else:
                inputs[0] = 1.0
        return inputs

    def step(self, iterations: int = 1) -> float:
        """
        Run ``iterations`` rounds of backprop and gradient descent.

        Returns:
            float: Loss of the last round, measured before its update

        Raises:
            ValueError: If ``iterations`` is less than 1
            ShapeMismatchError: If the sample does not fit the network
        """
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")

        x = self.training_input()
        y = self.targets
        last_loss = None
        for _ in range(iterations):
            gradient = self.network.backprop(x, y)
            self.network.apply_gradients(
                gradient.nabla_w, gradient.nabla_b, self.learning_rate
            )
            self.loss_history.append(gradient.loss)
            self.steps += 1
            last_loss = gradient.loss
        return last_loss

    def run(
        self,
        iterations_per_tick: int = 1,
        on_tick: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None,
        max_ticks: Optional[int] = None,
        token: Optional[int] = None
    ) -> int:
        """
        Train continuously until paused.

        Each tick runs :meth:`step` with ``iterations_per_tick``, reports
        :meth:`summary` to ``on_tick`` and then calls ``yield_func``, which
        is where the caller paces the loop or lets other tasks run.

        Args:
            iterations_per_tick: Iterations per tick
            on_tick: Called with the session summary after every tick
            yield_func: Called between ticks
            max_ticks: Stop after this many ticks (None means no limit)
            token: Value returned by :meth:`start`. The loop exits as soon
                as a later :meth:`start` supersedes it. None starts a new
                run.

        Returns:
            int: Number of ticks completed
        """
        if token is None:
            token = self.start()
        ticks = 0
        logger.info(
            f"Training started: {iterations_per_tick} iteration(s) per tick"
        )
        try:
            while self.running and self.is_current(token):
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self.step(iterations_per_tick)
                ticks += 1
                if on_tick is not None:
                    on_tick(self.summary())
                if yield_func is not None:
                    yield_func()
        finally:
            if self.is_current(token):
                self.running = False

        logger.info(f"Training stopped after {ticks} tick(s), {self.steps} step(s)")
        return ticks

    def start(self) -> int:
        """Mark the session as running and return a token for :meth:`run`."""
        self._run_token += 1
        self.running = True
        return self._run_token

    def is_current(self, token: int) -> bool:
        """Return True if ``token`` belongs to the most recent :meth:`start`."""
        return token == self._run_token

    def pause(self) -> None:
        self.running = False

    def inspect_weight(self, layer: int, i: int, j: int) -> Dict[str, Any]:
        """
        Describe the weight from unit ``j`` of ``layer`` to unit ``i`` of
        ``layer + 1``.

        Returns:
            dict: The weight, every incoming weight of unit ``i`` and the
            bias of unit ``i``

        Raises:
            IndexError: If any index is out of range
        """
        weights = self.network.weights
        if not 0 <= layer < len(weights):
            raise IndexError(f"Layer {layer} out of range")
        rows, cols = weights[layer].shape
        if not 0 <= i < rows or not 0 <= j < cols:
            raise IndexError(
                f"Edge ({i}, {j}) out of range for layer {layer} "
                f"with shape {(rows, cols)}"
            )

        self.selected_edge = (layer, i, j)
        return {
            'layer': layer,
            'i': i,
            'j': j,
            'weight': float(weights[layer][i, j]),
            'row_weights': weights[layer][i].tolist(),
            'bias': float(self.network.biases[layer][i])
        }

    def recent_losses(self, window: int = LOSS_WINDOW) -> List[float]:
        if window <= 0:
            return []
        return self.loss_history[-window:]

    @property
    def last_loss(self) -> Optional[float]:
        return self.loss_history[-1] if self.loss_history else None

    def summary(self) -> Dict[str, Any]:
        """Return the session state as a JSON-serializable dict."""
        return {
            'architecture': list(self.network.sizes),
            'activation': self.network.activation_name,
            'learning_rate': self.learning_rate,
            'inputs': self.training_input(),
            'targets': list(self.targets),
            'steps': self.steps,
            'loss': self.last_loss,
            'running': self.running
        }

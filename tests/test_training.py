"""
test_training.py
~~~~~~~~~~~~~~~~

Unit tests for the single-sample training session.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from simplenn.network import InvalidArchitectureError, ShapeMismatchError
from simplenn.training import TrainingSession


@pytest.fixture
def session():
    """Create a [2, 3, 1] session with a fixed sample."""
    return TrainingSession(
        [2, 3, 1],
        'Sigmoid',
        learning_rate=0.5,
        inputs=[1.0, 0.5],
        targets=[0.2],
        rng=np.random.default_rng(99)
    )


@pytest.mark.unit
class TestTrainingSession:
    """Test session construction and stepping."""

    def test_defaults(self):
        """Test the default architecture and zero sample."""
        session = TrainingSession()

        assert session.network.sizes == (2, 3, 1)
        assert session.network.activation_name == 'Sigmoid'
        assert session.learning_rate == 0.1
        assert session.inputs == [0.0, 0.0]
        assert session.targets == [0.0]
        assert session.steps == 0
        assert session.last_loss is None

    def test_invalid_architecture(self):
        """Test that a bad architecture is rejected."""
        with pytest.raises(InvalidArchitectureError):
            TrainingSession([4])

    def test_step_records_history(self, session):
        """Test that each iteration appends one loss."""
        loss = session.step(5)

        assert session.steps == 5
        assert len(session.loss_history) == 5
        assert loss == session.loss_history[-1]
        assert session.last_loss == loss

    def test_step_matches_manual_training(self, session):
        """Test that a step is backprop followed by apply_gradients."""
        twin = TrainingSession(
            [2, 3, 1], 'Sigmoid', rng=np.random.default_rng(99)
        )
        gradient = twin.network.backprop([1.0, 0.5], [0.2])
        twin.network.apply_gradients(
            gradient.nabla_w, gradient.nabla_b, 0.5
        )

        loss = session.step()

        assert loss == gradient.loss
        for w1, w2 in zip(session.network.weights, twin.network.weights):
            assert np.array_equal(w1, w2)

    def test_step_reduces_loss(self, session):
        """Test that training on one sample lowers its loss."""
        session.step(200)

        assert session.loss_history[-1] < session.loss_history[0]

    def test_step_requires_positive_iterations(self, session):
        """Test that zero iterations is rejected."""
        with pytest.raises(ValueError):
            session.step(0)

    def test_step_shape_mismatch_leaves_network(self, session):
        """Test that a bad sample fails before any update."""
        weights = [w.copy() for w in session.network.weights]
        session.targets = [0.2, 0.4]

        with pytest.raises(ShapeMismatchError):
            session.step()

        assert session.steps == 0
        for before, after in zip(weights, session.network.weights):
            assert np.array_equal(before, after)

    def test_pin_bias_input(self, session):
        """Test that input 0 is forced to 1.0 when pinned."""
        session.inputs = [0.3, 0.7]
        session.pin_bias_input = True

        assert session.training_input() == [1.0, 0.7]

        session.inputs = []
        assert session.training_input() == [1.0]

    def test_unpinned_input_is_unchanged(self, session):
        """Test that inputs pass through unchanged by default."""
        session.inputs = [0.3, 0.7]

        assert session.training_input() == [0.3, 0.7]


@pytest.mark.unit
class TestRebuild:
    """Test replacing the network."""

    def test_rebuild_creates_new_network(self, session):
        """Test that rebuild discards the network and its history."""
        old = session.network
        session.step(3)

        session.rebuild()

        assert session.network is not old
        assert session.network.sizes == old.sizes
        assert session.steps == 0
        assert session.loss_history == []

    def test_rebuild_changes_activation(self, session):
        """Test that switching activation builds a fresh network."""
        old = session.network

        session.rebuild(activation_name='ReLU')

        assert session.network is not old
        assert session.network.activation.name == 'ReLU'
        assert old.activation.name == 'Sigmoid'

    def test_rebuild_changes_architecture(self, session):
        """Test rebuilding with new layer sizes."""
        session.rebuild([2, 4, 4, 1])

        assert session.network.sizes == (2, 4, 4, 1)
        assert session.network.activation_name == 'Sigmoid'

    def test_rebuild_invalid_keeps_old_network(self, session):
        """Test that a failed rebuild leaves the session usable."""
        old = session.network

        with pytest.raises(InvalidArchitectureError):
            session.rebuild([2, 0, 1])

        assert session.network is old

    def test_rebuild_resets_sample_on_width_change(self, session):
        """Test that a new input or output width zeroes that half of the sample."""
        session.rebuild([3, 4, 2])

        assert session.inputs == [0.0, 0.0, 0.0]
        assert session.targets == [0.0, 0.0]
        session.step()

    def test_rebuild_keeps_sample_on_same_widths(self, session):
        """Test that the sample survives a rebuild with the same end widths."""
        session.rebuild([2, 5, 5, 1])

        assert session.inputs == [1.0, 0.5]
        assert session.targets == [0.2]


@pytest.mark.unit
class TestRunLoop:
    """Test the continuous training loop."""

    def test_run_stops_at_max_ticks(self, session):
        """Test that run honours max_ticks and reports every tick."""
        summaries = []

        ticks = session.run(2, on_tick=summaries.append, max_ticks=3)

        assert ticks == 3
        assert session.steps == 6
        assert [s['steps'] for s in summaries] == [2, 4, 6]
        assert all(s['running'] for s in summaries)
        assert session.running is False

    def test_pause_from_callback(self, session):
        """Test that pausing stops the loop after the current tick."""
        calls = []

        def on_tick(summary):
            calls.append(summary)
            if len(calls) == 2:
                session.pause()

        ticks = session.run(1, on_tick=on_tick)

        assert ticks == 2
        assert session.steps == 2

    def test_yield_func_called_between_ticks(self, session):
        """Test that the pacing hook runs once per tick."""
        yields = []

        session.run(1, yield_func=lambda: yields.append(True), max_ticks=4)

        assert len(yields) == 4

    def test_run_failure_clears_running(self, session):
        """Test that an error stops the loop and clears the flag."""
        session.targets = [1.0, 2.0]

        with pytest.raises(ShapeMismatchError):
            session.run(1, max_ticks=5)

        assert session.running is False

    def test_restarted_session_supersedes_old_loop(self, session):
        """Test that pause followed by start ends the earlier loop."""
        first = session.start()

        def restart():
            session.pause()
            session.start()

        ticks = session.run(1, yield_func=restart, token=first)

        assert ticks == 1
        assert session.steps == 1
        assert session.running is True
        assert not session.is_current(first)

    def test_stale_token_does_not_train(self, session):
        """Test that a loop started with an old token exits immediately."""
        stale = session.start()
        session.pause()
        session.start()

        ticks = session.run(1, token=stale, max_ticks=3)

        assert ticks == 0
        assert session.steps == 0
        assert session.running is True


@pytest.mark.unit
class TestInspection:
    """Test weight inspection and summaries."""

    def test_inspect_weight(self, session):
        """Test that inspection reports weight, row and bias."""
        details = session.inspect_weight(1, 0, 2)
        net = session.network

        assert details['weight'] == net.weights[1][0, 2]
        assert details['row_weights'] == net.weights[1][0].tolist()
        assert details['bias'] == net.biases[1][0]
        assert session.selected_edge == (1, 0, 2)

    @pytest.mark.parametrize("layer, i, j", [
        (2, 0, 0), (-1, 0, 0), (0, 3, 0), (0, 0, 2), (1, 1, 0)
    ])
    def test_inspect_out_of_range(self, session, layer, i, j):
        """Test that out-of-range indexes raise IndexError."""
        with pytest.raises(IndexError):
            session.inspect_weight(layer, i, j)

    def test_recent_losses_window(self, session):
        """Test that only the most recent losses are returned."""
        session.step(250)

        recent = session.recent_losses()

        assert len(recent) == 200
        assert recent == session.loss_history[-200:]
        assert session.recent_losses(10) == session.loss_history[-10:]

    @pytest.mark.parametrize("window", [0, -5])
    def test_recent_losses_empty_window(self, session, window):
        """Test that a non-positive window returns no losses."""
        session.step(5)

        assert session.recent_losses(window) == []

    def test_summary(self, session):
        """Test the JSON-ready session summary."""
        session.step()

        summary = session.summary()

        assert summary['architecture'] == [2, 3, 1]
        assert summary['activation'] == 'Sigmoid'
        assert summary['learning_rate'] == 0.5
        assert summary['inputs'] == [1.0, 0.5]
        assert summary['targets'] == [0.2]
        assert summary['steps'] == 1
        assert summary['loss'] == session.loss_history[-1]
        assert summary['running'] is False

"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for interactive training.

This module provides endpoints for:
- Creating networks and rebuilding them with a new architecture/activation
- Running forward passes and inspecting individual weights
- Stepping training manually or continuously with real-time updates
- Plotting the recent loss curve

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for the background training loop
- Matplotlib for rendering loss curves
"""

import os
import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Local imports
from simplenn.activations import available_activations
from simplenn.network import NetworkError
from simplenn.training import (
    TrainingSession,
    DEFAULT_LAYER_SIZES,
    DEFAULT_ACTIVATION,
    DEFAULT_LEARNING_RATE
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('simplenn').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# Upper bound on iterations run by a single step or training tick
MAX_ITERATIONS_PER_STEP = int(os.getenv('MAX_ITERATIONS_PER_STEP', 10000))

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Training sessions currently held in memory: {session_id: TrainingSession}
active_sessions: Dict[str, TrainingSession] = {}


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number_list(data: Dict[str, Any], key: str) -> Optional[List[float]]:
    """
    Read an optional list of numbers from a request body.

    Raises:
        ValueError: If the value is present but not a list of numbers
    """
    values = data.get(key)
    if values is None:
        return None
    if not isinstance(values, list) or not all(_is_number(v) for v in values):
        raise ValueError(f'{key} must be a list of numbers')
    return [float(v) for v in values]


def _iterations(data: Dict[str, Any]) -> int:
    iterations = data.get('iterations', 1)
    if (not isinstance(iterations, int) or isinstance(iterations, bool)
            or not 1 <= iterations <= MAX_ITERATIONS_PER_STEP):
        raise ValueError(
            f'iterations must be an integer between 1 and '
            f'{MAX_ITERATIONS_PER_STEP}'
        )
    return iterations


def _session_not_found(session_id: str, action: str):
    logger.warning(f"{action} requested for non-existent network: {session_id}")
    return jsonify({'error': 'Network not found'}), 404


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    running = sum(1 for session in active_sessions.values() if session.running)

    return jsonify({
        'status': 'online',
        'active_networks': len(active_sessions),
        'training_jobs': running
    }), 200


@app.route('/api/activations', methods=['GET'])
def list_activations():
    """List the activation names a network can be built with."""
    return jsonify({
        'activations': available_activations(),
        'default': DEFAULT_ACTIVATION
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new training session with a fresh network.

    Request body (all optional):
        {
            'layer_sizes': [2, 3, 1],
            'activation': 'Sigmoid',
            'learning_rate': 0.1,
            'inputs': [1.0, 0.5],
            'targets': [0.0],
            'pin_bias_input': false
        }

    Returns:
        JSON with network_id and the session summary
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get('layer_sizes', DEFAULT_LAYER_SIZES)
    activation = data.get('activation', DEFAULT_ACTIVATION)
    learning_rate = data.get('learning_rate', DEFAULT_LEARNING_RATE)
    pin_bias_input = data.get('pin_bias_input', False)

    if not _is_number(learning_rate):
        return jsonify({'error': 'learning_rate must be a number'}), 400
    if not isinstance(pin_bias_input, bool):
        return jsonify({'error': 'pin_bias_input must be a boolean'}), 400

    try:
        inputs = _number_list(data, 'inputs')
        targets = _number_list(data, 'targets')
        session = TrainingSession(
            layer_sizes,
            activation,
            learning_rate=learning_rate,
            inputs=inputs,
            targets=targets,
            pin_bias_input=pin_bias_input
        )
    except ValueError as e:
        logger.warning(f"Invalid network requested: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    active_sessions[network_id] = session
    logger.info(
        f"Created network {network_id} with architecture "
        f"{list(session.network.sizes)}, activation {activation}"
    )

    return jsonify({
        'network_id': network_id,
        **session.summary(),
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks held in memory."""
    networks = [
        {'network_id': network_id, **session.summary()}
        for network_id, session in active_sessions.items()
    ]
    logger.debug(f"Listing {len(networks)} networks")
    return jsonify({'networks': networks}), 200


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return a network's summary together with its raw parameters."""
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Details')

    net = session.network
    return jsonify({
        'network_id': network_id,
        **session.summary(),
        'weights': [w.tolist() for w in net.weights],
        'biases': [b.tolist() for b in net.biases],
        'selected_edge': session.selected_edge
    }), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Stop any training and remove the network from memory."""
    session = active_sessions.pop(network_id, None)
    if session is None:
        return _session_not_found(network_id, 'Delete')

    session.pause()
    logger.info(f"Deleted network {network_id}")
    return jsonify({'network_id': network_id, 'deleted': True}), 200


@app.route('/api/networks/<network_id>/reset', methods=['POST'])
def reset_network(network_id: str):
    """
    Replace the network with a freshly initialized one.

    Request body (optional):
        {
            'layer_sizes': [2, 4, 1],
            'activation': 'ReLU',
            'inputs': [1.0, 0.5],
            'targets': [0.0]
        }

    Missing fields keep the current value, except that a sample whose
    width no longer fits the new layer sizes is reset to zeros. Training
    is paused first.
    """
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Reset')

    data = request.get_json(silent=True) or {}
    try:
        inputs = _number_list(data, 'inputs')
        targets = _number_list(data, 'targets')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    session.pause()
    try:
        session.rebuild(data.get('layer_sizes'), data.get('activation'))
    except NetworkError as e:
        logger.warning(f"Invalid reset for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    if inputs is not None:
        session.inputs = inputs
    if targets is not None:
        session.targets = targets

    return jsonify({
        'network_id': network_id,
        **session.summary(),
        'status': 'reset'
    }), 200


@app.route('/api/networks/<network_id>/sample', methods=['PUT'])
def update_sample(network_id: str):
    """
    Change the training sample or learning rate.

    Request body (all optional):
        {'inputs': [1.0, 0.5], 'targets': [1.0], 'learning_rate': 0.5}
    """
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Sample update')

    data = request.get_json(silent=True) or {}
    try:
        inputs = _number_list(data, 'inputs')
        targets = _number_list(data, 'targets')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    learning_rate = data.get('learning_rate')
    if learning_rate is not None and not _is_number(learning_rate):
        return jsonify({'error': 'learning_rate must be a number'}), 400

    if inputs is not None:
        session.inputs = inputs
    if targets is not None:
        session.targets = targets
    if learning_rate is not None:
        session.learning_rate = learning_rate

    return jsonify({'network_id': network_id, **session.summary()}), 200


@app.route('/api/networks/<network_id>/forward', methods=['POST'])
def forward_network(network_id: str):
    """
    Run a forward pass without training.

    Request body (optional):
        {'inputs': [1.0, 0.5]}  # defaults to the session's training input

    Returns:
        JSON with pre-activations 'z' and activations 'a' for every layer
    """
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Forward pass')

    data = request.get_json(silent=True) or {}
    try:
        inputs = _number_list(data, 'inputs')
        if inputs is None:
            inputs = session.training_input()
        trace = session.network.forward(inputs)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'z': [z.tolist() for z in trace.zs],
        'a': [a.tolist() for a in trace.activations],
        'output': trace.output.tolist()
    }), 200


@app.route('/api/networks/<network_id>/step', methods=['POST'])
def step_network(network_id: str):
    """
    Train synchronously for a number of iterations.

    Request body (optional):
        {'iterations': 1}
    """
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Step')

    data = request.get_json(silent=True) or {}
    try:
        iterations = _iterations(data)
        loss = session.step(iterations)
    except ValueError as e:
        logger.warning(f"Step failed for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'loss': loss,
        'steps': session.steps
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training continuously in the background.

    Request body (all optional):
        {
            'iterations': 1,   # iterations per tick
            'delay_ms': 0      # pause between ticks
        }

    Returns:
        JSON with network_id and status
    """
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Training')

    if session.running:
        return jsonify({'error': 'Network is already training'}), 409

    data = request.get_json(silent=True) or {}
    delay_ms = data.get('delay_ms', 0)
    try:
        iterations = _iterations(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    if not _is_number(delay_ms) or delay_ms < 0:
        return jsonify({'error': 'delay_ms must be a non-negative number'}), 400

    # Validate the sample up front so a bad shape is reported to the caller
    try:
        session.network.backprop(session.training_input(), session.targets)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    token = session.start()
    logger.info(
        f"Starting training for network {network_id}: "
        f"iterations={iterations}, delay_ms={delay_ms}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task, network_id, iterations, delay_ms, token
    )

    return jsonify({
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    iterations: int,
    delay_ms: float,
    token: int,
    max_ticks: Optional[int] = None
) -> None:
    """
    Background task that trains a session until it is paused.

    Sends a 'training_update' event after every tick. ``token`` comes from
    ``session.start()``; once a newer training request replaces it, this
    task exits quietly so only one loop drives the session.
    """
    session = active_sessions.get(network_id)
    if session is None:
        logger.warning(f"Training task started for missing network {network_id}")
        return
    if not session.running or not session.is_current(token):
        logger.info(f"Network {network_id} was paused before training began")
        return

    def on_tick(summary: Dict[str, Any]) -> None:
        """Called after each tick to send progress updates."""
        socketio.emit('training_update', {'network_id': network_id, **summary})

    def yield_to_other_tasks() -> None:
        # Let gevent deliver messages and serve requests between ticks
        gevent.sleep(delay_ms / 1000.0)

    try:
        ticks = session.run(
            iterations,
            on_tick=on_tick,
            yield_func=yield_to_other_tasks,
            max_ticks=max_ticks,
            token=token
        )

        if not session.is_current(token):
            logger.debug(f"Superseded training loop for {network_id} exited")
            return

        socketio.emit('training_stopped', {
            'network_id': network_id,
            'ticks': ticks,
            'steps': session.steps,
            'loss': session.last_loss
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for network {network_id}: {e}")

        socketio.emit('training_error', {
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/networks/<network_id>/pause', methods=['POST'])
def pause_network(network_id: str):
    """Stop background training after the current tick."""
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Pause')

    was_running = session.running
    session.pause()
    logger.info(f"Paused network {network_id} (was running: {was_running})")

    return jsonify({
        'network_id': network_id,
        'status': 'paused',
        'was_running': was_running
    }), 200


@app.route('/api/networks/<network_id>/weights/<int:layer>/<int:i>/<int:j>',
           methods=['GET'])
def inspect_weight(network_id: str, layer: int, i: int, j: int):
    """Return one weight, its row of incoming weights, and the unit's bias."""
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Weight inspection')

    try:
        details = session.inspect_weight(layer, i, j)
    except IndexError as e:
        logger.warning(f"Invalid weight inspection for {network_id}: {e}")
        return jsonify({'error': str(e)}), 404

    return jsonify({'network_id': network_id, **details}), 200


@app.route('/api/networks/<network_id>/loss_plot', methods=['GET'])
def get_loss_plot(network_id: str):
    """Render the most recent losses as a PNG image."""
    session = active_sessions.get(network_id)
    if session is None:
        return _session_not_found(network_id, 'Loss plot')

    losses = session.recent_losses()
    try:
        image_data = create_loss_plot(losses)
    except Exception as e:
        logger.exception(f"Error plotting loss for {network_id}: {e}")
        return jsonify({'error': 'Failed to render loss plot'}), 500

    return jsonify({
        'network_id': network_id,
        'loss': session.last_loss,
        'steps': session.steps,
        'points': len(losses),
        'image_data': image_data
    }), 200


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def create_loss_plot(losses: List[float]) -> str:
    """
    Create a base64-encoded PNG image of a loss curve.

    Args:
        losses: Loss values, oldest first

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(4, 2.5))
    if losses:
        plt.plot(losses, color='#60a5fa', linewidth=2)
        plt.title(f"loss: {losses[-1]:.6f}")
    else:
        plt.title("loss: -")
    plt.xlabel('step')
    plt.ylabel('loss')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    # Check if running in cloud environment (Railway, etc.)
    is_cloud = bool(os.environ.get('RAILWAY_STATIC_URL') or os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            logger.info("You can use: pkill -f 'python -m simplenn.api_server'")
            sys.exit(1)
        else:
            raise

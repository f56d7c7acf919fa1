"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API around the network engine.

This module provides endpoints for:
- Creating networks with a chosen topology and activation
- Training networks on JSON-supplied samples
- Predicting and measuring accuracy
- Persisting networks to the model registry and exporting .chisei files

Training runs synchronously inside the request. Every request that
touches a network's parameters holds that network's lock, and the table
of networks in memory is guarded by a lock of its own.
"""

import sys
import math
import uuid
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from chisei import config, model_registry
from chisei.activations import Activation
from chisei.exceptions import ChiseiError
from chisei.network import NeuralNetwork

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_LAYER_SIZES = [784, 30, 10]


def _error(message: str, status: int) -> Tuple[Response, int]:
    return jsonify({'error': message}), status


def _samples(data: Dict[str, Any]) -> Tuple[list, list]:
    inputs = data.get('inputs')
    targets = data.get('targets')
    if not isinstance(inputs, list) or not isinstance(targets, list):
        raise ValueError("'inputs' and 'targets' must be lists of vectors")
    return inputs, targets


def create_app(model_dir: Optional[str] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        model_dir: Registry directory; defaults to CHISEI_MODEL_DIR

    Returns:
        Flask: The configured application
    """
    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": "*"}})

    if model_dir is None:
        model_dir = config.get_model_dir()

    # Networks currently loaded in memory: {network_id: network_info}
    active_networks: Dict[str, Dict[str, Any]] = {}
    networks_lock = threading.Lock()

    def get_network_info(network_id: str) -> Optional[Dict[str, Any]]:
        """Find a network in memory, falling back to the registry."""
        with networks_lock:
            info = active_networks.get(network_id)
        if info is not None:
            return info

        net = model_registry.load_network(network_id, model_dir)
        if net is None:
            return None
        metadata = model_registry.get_network_metadata(network_id, model_dir) or {}
        info = {
            'network': net,
            'lock': threading.Lock(),
            'trained': metadata.get('trained', False),
            'accuracy': metadata.get('accuracy')
        }
        with networks_lock:
            # Another request may have loaded the same network meanwhile
            return active_networks.setdefault(network_id, info)

    @app.errorhandler(ChiseiError)
    def handle_chisei_error(e):
        # Bad vectors, empty sample sets and unknown activations are
        # client errors; anything else is ours.
        if isinstance(e, ValueError):
            logger.warning(f"Rejected request: {e}")
            return _error(str(e), 400)
        logger.exception(f"Request failed: {e}")
        return _error(str(e), 500)

    @app.route('/api/status', methods=['GET'])
    def get_status():
        """Return server status and the number of networks in memory."""
        return jsonify({
            'status': 'online',
            'active_networks': len(active_networks)
        }), 200

    @app.route('/api/networks', methods=['POST'])
    def create_network():
        """
        Create a new network.

        Request body (optional):
            {'layer_sizes': [784, 30, 10], 'activation': 'sigmoid', 'seed': 1}
        """
        data = request.get_json(silent=True) or {}
        layer_sizes = data.get('layer_sizes', DEFAULT_LAYER_SIZES)
        activation = data.get('activation', Activation.SIGMOID.value)
        seed = data.get('seed')

        if not isinstance(layer_sizes, list) or len(layer_sizes) < 2:
            logger.warning(f"Invalid architecture requested: {layer_sizes}")
            return _error('Invalid architecture. Must have at least 2 layers.', 400)

        try:
            net = NeuralNetwork(layer_sizes, activation=activation, rng=seed)
        except (ValueError, TypeError) as e:
            logger.warning(f"Rejected network parameters: {e}")
            return _error(str(e), 400)

        network_id = str(uuid.uuid4())
        with networks_lock:
            active_networks[network_id] = {
                'network': net,
                'lock': threading.Lock(),
                'trained': False,
                'accuracy': None
            }
        logger.info(f"Created network {network_id} with architecture {layer_sizes}")

        return jsonify({
            'network_id': network_id,
            'architecture': list(net.layer_sizes),
            'activation': net.activation.value,
            'status': 'created'
        }), 201

    @app.route('/api/networks', methods=['GET'])
    def list_networks():
        """List networks in memory and in the registry."""
        saved = {
            info['network_id']: info
            for info in model_registry.list_saved_networks(model_dir)
        }
        with networks_lock:
            in_memory = list(active_networks.items())
        loaded_ids = {network_id for network_id, _ in in_memory}
        networks = []
        for network_id, info in in_memory:
            net = info['network']
            networks.append({
                'network_id': network_id,
                'architecture': list(net.layer_sizes),
                'activation': net.activation.value,
                'trained': info['trained'],
                'accuracy': info['accuracy'],
                'status': 'in_memory'
            })
        for network_id, info in saved.items():
            if network_id in loaded_ids:
                continue
            networks.append({
                'network_id': network_id,
                'architecture': info['architecture'],
                'activation': info['activation'],
                'trained': info['trained'],
                'accuracy': info['accuracy'],
                'status': 'saved'
            })
        return jsonify({'networks': networks}), 200

    @app.route('/api/networks/<network_id>/train', methods=['POST'])
    def train_network(network_id: str):
        """
        Train a network on the supplied samples.

        Request body:
            {
                'inputs': [[0, 0], [0, 1]],
                'targets': [[1], [0]],
                'epochs': 1000,
                'learning_rate': 0.1
            }
        """
        info = get_network_info(network_id)
        if info is None:
            logger.warning(f"Training requested for non-existent network: {network_id}")
            return _error('Network not found', 404)

        data = request.get_json(silent=True) or {}
        epochs = data.get('epochs', 1000)
        learning_rate = data.get('learning_rate', 0.1)

        if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 1:
            return _error('epochs must be a positive integer', 400)
        if (isinstance(learning_rate, bool)
                or not isinstance(learning_rate, (int, float))
                or not math.isfinite(learning_rate)
                or learning_rate <= 0):
            return _error('learning_rate must be a positive number', 400)
        try:
            inputs, targets = _samples(data)
        except ValueError as e:
            return _error(str(e), 400)

        losses = []
        with info['lock']:
            net = info['network']
            net.train(
                inputs,
                targets,
                learning_rate=learning_rate,
                epochs=epochs,
                on_epoch_complete=lambda progress: losses.append(progress['loss'])
            )
            accuracy = net.compute_accuracy(inputs, targets)
            info['trained'] = True
            info['accuracy'] = accuracy

        logger.info(f"Training completed for network {network_id}: accuracy {accuracy:.2%}")
        return jsonify({
            'network_id': network_id,
            'epochs': epochs,
            'final_loss': losses[-1],
            'accuracy': accuracy,
            'status': 'trained'
        }), 200

    @app.route('/api/networks/<network_id>/predict', methods=['POST'])
    def predict(network_id: str):
        """Request body: {'input': [0.0, 1.0]}"""
        info = get_network_info(network_id)
        if info is None:
            return _error('Network not found', 404)

        data = request.get_json(silent=True) or {}
        vector = data.get('input')
        if not isinstance(vector, list):
            return _error("'input' must be a list of numbers", 400)

        with info['lock']:
            output = info['network'].predict(vector)
        return jsonify({
            'network_id': network_id,
            'output': output.tolist(),
            'predicted_index': int(output.argmax())
        }), 200

    @app.route('/api/networks/<network_id>/accuracy', methods=['POST'])
    def accuracy(network_id: str):
        """Request body: {'inputs': [...], 'targets': [...]}"""
        info = get_network_info(network_id)
        if info is None:
            return _error('Network not found', 404)

        try:
            inputs, targets = _samples(request.get_json(silent=True) or {})
        except ValueError as e:
            return _error(str(e), 400)
        if not inputs:
            return _error('At least one sample is required', 400)

        with info['lock']:
            result = info['network'].compute_accuracy(inputs, targets)
        return jsonify({'network_id': network_id, 'accuracy': result}), 200

    @app.route('/api/networks/<network_id>/save', methods=['POST'])
    def save(network_id: str):
        """Persist an in-memory network to the registry."""
        with networks_lock:
            info = active_networks.get(network_id)
        if info is None:
            return _error('Network not found', 404)

        with info['lock']:
            saved = model_registry.save_network(
                info['network'],
                network_id,
                model_dir=model_dir,
                trained=info['trained'],
                accuracy=info['accuracy']
            )
        if not saved:
            return _error('Failed to save network', 500)
        return jsonify({'network_id': network_id, 'status': 'saved'}), 200

    @app.route('/api/networks/<network_id>/model', methods=['GET'])
    def download_model(network_id: str):
        """Return the network as a .chisei file."""
        model_data = model_registry.load_model_bytes(network_id, model_dir)
        if model_data is None:
            return _error('Network not saved', 404)

        return Response(
            model_data,
            mimetype='application/octet-stream',
            headers={
                'Content-Disposition':
                    f'attachment; filename={network_id}.chisei'
            }
        )

    @app.route('/api/networks/<network_id>', methods=['DELETE'])
    def delete_network_endpoint(network_id: str):
        """Remove a network from memory and from the registry."""
        with networks_lock:
            deleted_from_memory = active_networks.pop(network_id, None) is not None
        deleted_from_disk = model_registry.delete_network(network_id, model_dir)

        if not deleted_from_memory and not deleted_from_disk:
            logger.warning(f"Delete attempted for non-existent network: {network_id}")
            return _error('Network not found', 404)

        logger.info(
            f"Deleted network {network_id}: memory={deleted_from_memory}, "
            f"disk={deleted_from_disk}"
        )
        return jsonify({'network_id': network_id, 'status': 'deleted'}), 200

    return app


def main() -> None:
    config.configure_logging()
    app = create_app()
    port = config.get_port()

    logger.info(f"Starting server at http://{config.get_host()}:{port}/")
    try:
        app.run(
            host=config.get_host(),
            port=port,
            debug=not config.is_production(),
            use_reloader=False
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()

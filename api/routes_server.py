"""
Flask API routes for the supervised game server.
"""

from flask import jsonify, request, current_app

from api import api_bp
from api.helpers import _error_response, get_supervisor
from models import ServerConfig
from tunnel.exceptions import BlockHostError


@api_bp.route('/server/active', methods=['GET'])
def active_server():
    """Return the running session, or null when idle."""
    session = get_supervisor().query()
    return jsonify({
        'success': True,
        'session': session.to_dict() if session else None
    })


@api_bp.route('/server/start', methods=['POST'])
def start_server():
    """
    Start a game server and its tunnel.

    Expects a ServerConfig JSON body. Blocks until the tunnel reports its
    public address.

    Returns:
        JSON with the new session
    """
    try:
        server = ServerConfig.from_dict(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({
            'success': False,
            'error': str(e),
            'retryable': False,
        }), 400

    try:
        current_app.logger.info(f"Starting server {server.id} with {server.provider} tunnel")
        session = get_supervisor().start(server)
        return jsonify({
            'success': True,
            'session': session.to_dict()
        })
    except (BlockHostError, OSError) as e:
        return _error_response(e, f"Starting server {server.id}")


@api_bp.route('/server/stop', methods=['POST'])
def stop_server():
    """Stop the running server and its tunnel."""
    try:
        get_supervisor().stop()
        return jsonify({
            'success': True,
            'message': 'Server stopped'
        })
    except BlockHostError as e:
        return _error_response(e, "Stopping server")

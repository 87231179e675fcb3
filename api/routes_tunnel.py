"""
Flask API routes for tunnel binary management.

Provides endpoints for checking and installing tunnel provider binaries.
"""

from flask import jsonify, current_app

from api import api_bp
from api.helpers import _error_response, get_tunnel_manager
from tunnel.exceptions import BlockHostError


@api_bp.route('/tunnel/<provider>/status', methods=['GET'])
def tunnel_status(provider):
    """
    Report whether a provider is supported and installed.

    Verification cleans up any half-installed binary as a side effect.

    Returns:
        JSON with provider, platform, supported, installed, executable path
    """
    try:
        manager = get_tunnel_manager(provider)
        return jsonify({
            'success': True,
            'status': manager.get_status()
        })
    except BlockHostError as e:
        return _error_response(e, "Tunnel status")


@api_bp.route('/tunnel/<provider>/install', methods=['POST'])
def install_tunnel(provider):
    """
    Install a provider binary if it is not installed yet.

    Steps:
    1. Verify the current install (cleaning up anything inconsistent)
    2. Download and unpack the release artifact if needed
    3. Verify again

    Returns:
        JSON with success status and provider status
    """
    try:
        manager = get_tunnel_manager(provider)
        current_app.logger.info(f"Ensuring {manager.provider} binary is installed")
        manager.ensure_binary()
        return jsonify({
            'success': True,
            'message': f'{manager.provider} is installed',
            'status': manager.get_status()
        })
    except BlockHostError as e:
        return _error_response(e, f"Installing {provider}")
    except OSError as e:
        current_app.logger.error(f"Filesystem error installing {provider}: {e}")
        return jsonify({
            'success': False,
            'error': 'Could not write the tunnel binary',
            'guidance': 'Check file permissions in the BlockHost data directory.',
            'retryable': True,
        }), 500

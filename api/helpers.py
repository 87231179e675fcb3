"""Shared helpers for API endpoints (error responses, app-scoped services)."""

from flask import current_app, jsonify

from tunnel.error_messages import error_key_for, format_error_response
from tunnel.exceptions import (
    ConfigurationError,
    NetworkError,
    ProcessManagementError,
    StateConflictError,
    TunnelCreationError,
    UnsupportedPlatformError,
    ValidationError,
)

# most specific class first
_HTTP_STATUS = [
    (UnsupportedPlatformError, 501),
    (ConfigurationError, 400),
    (StateConflictError, 409),
    (NetworkError, 502),
    (TunnelCreationError, 502),
    (ValidationError, 422),
    (ProcessManagementError, 500),
]


def http_status_for(exc):
    for exc_type, status in _HTTP_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def _error_response(exc, context):
    """Log exc and turn it into the JSON error body + status."""
    current_app.logger.error(f"{context} failed: {exc}")
    # nothing secret goes into exception messages, so the text is safe to return
    body, status = format_error_response(error_key_for(exc), str(exc), http_status_for(exc))
    return jsonify(body), status


def get_supervisor():
    return current_app.extensions['blockhost.supervisor']


def get_tunnel_manager(provider):
    return current_app.extensions['blockhost.tunnel_manager_factory'](provider)

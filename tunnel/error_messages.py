"""
User-friendly error messages for tunnel and server operations.

Maps exceptions to actionable messages with troubleshooting guidance.
"""

from .exceptions import (
    BinaryDownloadError,
    ConfigurationError,
    NetworkError,
    NoActiveServerError,
    ProcessManagementError,
    SecretFieldMissingError,
    SecretFormatError,
    SecretNotFoundError,
    ServerAlreadyRunningError,
    StateConflictError,
    TunnelCreationError,
    UnsupportedPlatformError,
    ValidationError,
)


ERROR_MESSAGES = {
    'unsupported_platform': {
        'message': 'This tunnel provider is not supported on your platform',
        'guidance': 'Switch to another tunnel provider or turn off the tunnel option. Retrying will not help.'
    },
    'invalid_configuration': {
        'message': 'The request could not be completed with the current configuration',
        'guidance': 'Check the server settings and the selected tunnel provider.'
    },
    'secret_not_found': {
        'message': 'Tunnel account credentials were not found',
        'guidance': 'Run the playit agent once and link it to your account so it writes playit.toml.'
    },
    'secret_field_missing': {
        'message': 'Tunnel account credentials are incomplete',
        'guidance': 'playit.toml has no secret_key. Re-link the agent to your playit account.'
    },
    'secret_malformed': {
        'message': 'Tunnel account credentials are malformed',
        'guidance': 'The secret_key line in playit.toml could not be read. Re-link the agent to your playit account.'
    },
    'binary_download_failed': {
        'message': 'Failed to download the tunnel binary',
        'guidance': 'Check your internet connection and try again.'
    },
    'network_error': {
        'message': 'Network connection error',
        'guidance': 'Check your internet connection and firewall settings, then try again.'
    },
    'artifact_invalid': {
        'message': 'The downloaded tunnel binary is not usable',
        'guidance': 'The download may have been replaced by an error page. Try again later.'
    },
    'tunnel_not_found': {
        'message': 'The tunnel provider reported no active tunnel',
        'guidance': 'Make sure your provider account has a tunnel configured, then start the server again.'
    },
    'server_already_running': {
        'message': 'A server is already running',
        'guidance': 'Stop the running server before starting another one.'
    },
    'no_active_server': {
        'message': 'No active server',
        'guidance': 'There is nothing to stop.'
    },
    'state_conflict': {
        'message': 'The server is busy',
        'guidance': 'Wait for the current operation to finish and try again.'
    },
    'process_start_failed': {
        'message': 'Could not start process',
        'guidance': 'Check that Java is installed and the tunnel binary has execute permissions.'
    },
}

# most specific class first
_ERROR_KEYS = [
    (UnsupportedPlatformError, 'unsupported_platform'),
    (SecretNotFoundError, 'secret_not_found'),
    (SecretFieldMissingError, 'secret_field_missing'),
    (SecretFormatError, 'secret_malformed'),
    (ConfigurationError, 'invalid_configuration'),
    (BinaryDownloadError, 'binary_download_failed'),
    (NetworkError, 'network_error'),
    (ValidationError, 'artifact_invalid'),
    (TunnelCreationError, 'tunnel_not_found'),
    (ServerAlreadyRunningError, 'server_already_running'),
    (NoActiveServerError, 'no_active_server'),
    (StateConflictError, 'state_conflict'),
    (ProcessManagementError, 'process_start_failed'),
]


def error_key_for(exc):
    """Return the ERROR_MESSAGES key for an exception, or None if unknown."""
    for exc_type, key in _ERROR_KEYS:
        if isinstance(exc, exc_type):
            return key
    return None


_UNKNOWN_ERROR = {
    'message': 'An unexpected error occurred',
    'guidance': 'Try again in a few minutes. If the problem continues, check the logs.'
}

# no retry helps when the platform itself is the problem
_NOT_RETRYABLE = {'unsupported_platform'}


def format_error_response(error_key, detail=None, http_status=500):
    """
    Build the JSON error body for an API response.

    Args:
        error_key: Key from ERROR_MESSAGES, or None for an unclassified error
        detail: Exception text, returned as `detail` for local troubleshooting
        http_status: HTTP status code

    Returns:
        Tuple of (response_dict, status_code)
    """
    info = ERROR_MESSAGES.get(error_key, _UNKNOWN_ERROR)
    body = {
        'success': False,
        'error': info['message'],
        'guidance': info['guidance'],
        'retryable': error_key not in _NOT_RETRYABLE,
    }
    if detail:
        body['detail'] = detail
    return body, http_status

"""
Custom exceptions for tunnel and server supervision operations.
"""


class BlockHostError(Exception):
    """Base exception for all BlockHost errors."""
    pass


class ConfigurationError(BlockHostError):
    """Raised when the host or the caller's configuration cannot be used."""
    pass


class UnsupportedPlatformError(ConfigurationError):
    """Raised when an operation has no implementation for this OS/architecture."""
    pass


class SecretNotFoundError(ConfigurationError):
    """Raised when the provider credential file does not exist."""
    pass


class SecretFieldMissingError(ConfigurationError):
    """Raised when the credential file has no line for the requested field."""
    pass


class NetworkError(BlockHostError):
    """Raised when a remote call fails or answers with a non-success status."""
    pass


class BinaryDownloadError(NetworkError):
    """Raised when a tunnel binary download fails."""
    pass


class ValidationError(BlockHostError):
    """Raised when downloaded or parsed data has the wrong shape."""
    pass


class ArtifactValidationError(ValidationError):
    """Raised when a downloaded artifact is undersized or not a usable archive."""
    pass


class SecretFormatError(ValidationError):
    """Raised when the credential line is present but malformed."""
    pass


class StateConflictError(BlockHostError):
    """Raised when the requested transition is invalid for the current session."""
    pass


class ServerAlreadyRunningError(StateConflictError):
    """Raised when a server start is requested while a session is active."""
    pass


class NoActiveServerError(StateConflictError):
    """Raised when a stop is requested with no active session."""
    pass


class ProcessManagementError(BlockHostError):
    """Raised when a child process cannot be spawned or exits prematurely."""
    pass


class TunnelCreationError(BlockHostError):
    """Raised when a provider answers but reports no usable tunnel."""
    pass

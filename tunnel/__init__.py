"""
Tunnel provider integration for BlockHost.

This package installs, verifies and launches the ngrok and playit agents that
expose a locally bound game server to the internet.
"""

from .binary import BinaryLocation, HostPlatform, ProviderSpec, PROVIDERS, get_provider, get_host_platform
from .installer import Installer
from .verifier import InstallState, Verifier
from .launcher import AccountApiLauncher, LocalApiLauncher, TunnelLauncher
from .secrets import SecretResolver
from .manager import TunnelManager, get_tunnel_manager
from .exceptions import (
    BlockHostError,
    ConfigurationError,
    UnsupportedPlatformError,
    NetworkError,
    ValidationError,
    StateConflictError,
    ProcessManagementError,
)

__all__ = [
    'BinaryLocation',
    'HostPlatform',
    'ProviderSpec',
    'PROVIDERS',
    'get_provider',
    'get_host_platform',
    'Installer',
    'InstallState',
    'Verifier',
    'TunnelLauncher',
    'LocalApiLauncher',
    'AccountApiLauncher',
    'SecretResolver',
    'TunnelManager',
    'get_tunnel_manager',
    'BlockHostError',
    'ConfigurationError',
    'UnsupportedPlatformError',
    'NetworkError',
    'ValidationError',
    'StateConflictError',
    'ProcessManagementError',
]

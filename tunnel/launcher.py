"""
Tunnel process launch and public address discovery.
"""

import logging
import os
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

import requests

import config
from .binary import BinaryLocation, HostPlatform, LaunchKind, ProviderSpec, get_host_platform
from .exceptions import (
    BlockHostError,
    ConfigurationError,
    NetworkError,
    ProcessManagementError,
    TunnelCreationError,
    ValidationError,
)
from .secrets import SecretResolver

log = logging.getLogger(__name__)

LOG_FILENAME = "tunnel.log"


class TunnelLauncher(ABC):
    """Starts a verified provider binary and recovers its public address."""

    def __init__(self, spec: ProviderSpec, host: Optional[HostPlatform] = None, request_timeout: Optional[int] = None):
        self.spec = spec
        self.host = host or get_host_platform()
        self.request_timeout = request_timeout if request_timeout is not None else config.REQUEST_TIMEOUT

    def preflight(self, location: BinaryLocation, port: Optional[int] = None):
        """Fail fast, before anything is spawned, on problems with no retry path."""
        self.spec.require_supported(self.host)

    @abstractmethod
    def spawn(self, location: BinaryLocation, port: Optional[int] = None) -> subprocess.Popen:
        """Start the provider binary; the child is not waited on."""

    @abstractmethod
    def resolve_public_address(self, location: BinaryLocation, process: Optional[subprocess.Popen] = None) -> str:
        """Return the public address the started tunnel is reachable at."""

    def start(self, location: BinaryLocation, port: Optional[int] = None) -> Tuple[subprocess.Popen, str]:
        """
        Spawn the tunnel and wait for its public address.

        The child is terminated if no address can be resolved.

        Returns:
            (process handle, public address)
        """
        self.preflight(location, port)
        process = self.spawn(location, port)
        try:
            address = self.resolve_public_address(location, process)
        except Exception:
            terminate_process(process)
            raise
        return process, address

    def _popen(self, args, location: BinaryLocation, env=None) -> subprocess.Popen:
        """
        Spawn args with stdout/stderr appended to the provider log file.

        Raises:
            ProcessManagementError: If the binary is missing or cannot be started
        """
        if not location.executable_path.exists():
            raise ProcessManagementError(f"{self.spec.name} binary not found at {location.executable_path}")

        log_path = location.base_directory / LOG_FILENAME
        try:
            with open(log_path, 'a') as log_file:
                process = subprocess.Popen(
                    [str(location.executable_path), *args],
                    cwd=str(location.base_directory),
                    env=env,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=not self.host.is_windows,
                )
        except OSError as e:
            raise ProcessManagementError(f"Failed to start {self.spec.name}: {e}") from e

        log.info(f"Started {self.spec.name} (PID: {process.pid}), logging to {log_path}")
        return process


class LocalApiLauncher(TunnelLauncher):
    """Providers that report their tunnels on a loopback control API (ngrok)."""

    def __init__(
        self,
        spec: ProviderSpec,
        host: Optional[HostPlatform] = None,
        api_url: Optional[str] = None,
        request_timeout: Optional[int] = None,
        poll_timeout: Optional[float] = None,
        backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
    ):
        super().__init__(spec, host, request_timeout)
        self.api_url = api_url or config.NGROK_API_URL
        self.poll_timeout = poll_timeout if poll_timeout is not None else config.CONTROL_API_TIMEOUT
        self.backoff = backoff if backoff is not None else config.CONTROL_API_BACKOFF
        self.max_backoff = max_backoff if max_backoff is not None else config.CONTROL_API_MAX_BACKOFF

    def preflight(self, location: BinaryLocation, port: Optional[int] = None):
        super().preflight(location, port)
        if port is None:
            raise ConfigurationError(f"{self.spec.name} needs a local port to forward")

    def spawn(self, location: BinaryLocation, port: Optional[int] = None) -> subprocess.Popen:
        if port is None:
            raise ConfigurationError(f"{self.spec.name} needs a local port to forward")
        return self._popen(['tcp', str(port), '--log=stdout'], location)

    def resolve_public_address(self, location: BinaryLocation, process: Optional[subprocess.Popen] = None) -> str:
        """
        Poll the control API until it lists a tunnel.

        Backs off from `backoff` seconds, doubling up to `max_backoff`, and
        gives up after `poll_timeout`.

        Raises:
            ProcessManagementError: The child exited while we were waiting
            NetworkError: The control API never answered
            TunnelCreationError: The control API answered but listed no tunnel
            ValidationError: The control API answered with something other than JSON
        """
        deadline = time.monotonic() + self.poll_timeout
        delay = self.backoff
        last_error: BlockHostError = NetworkError(f"Failed to connect to {self.spec.name} API")

        while True:
            if process is not None and process.poll() is not None:
                raise ProcessManagementError(
                    f"{self.spec.name} exited with code {process.returncode} before reporting a tunnel. "
                    f"Last log lines: {read_log_tail(location.base_directory / LOG_FILENAME)}"
                )

            try:
                url = self._fetch_public_url()
                if url:
                    log.info(f"{self.spec.name} tunnel is up at {url}")
                    return url
                last_error = TunnelCreationError(f"No {self.spec.name} tunnel found")
            except NetworkError as e:
                last_error = e

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise last_error

            log.debug(f"Waiting {min(delay, remaining):.2f}s for {self.spec.name} API: {last_error}")
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_backoff)

    def _fetch_public_url(self) -> Optional[str]:
        try:
            response = requests.get(self.api_url, timeout=self.request_timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to connect to {self.spec.name} API: {e}") from e

        if response.status_code != 200:
            raise NetworkError(f"{self.spec.name} API returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ValidationError(f"Failed to parse {self.spec.name} API response") from e

        if not isinstance(payload, dict):
            raise ValidationError(f"Unexpected {self.spec.name} API response")

        tunnels = payload.get('tunnels') or []
        if not isinstance(tunnels, list):
            raise ValidationError(f"Unexpected {self.spec.name} API response: tunnels is not a list")
        if not tunnels or not isinstance(tunnels[0], dict):
            return None
        return tunnels[0].get('public_url') or None


class AccountApiLauncher(TunnelLauncher):
    """Providers bound to an account whose API knows the assigned domain (playit)."""

    def __init__(
        self,
        spec: ProviderSpec,
        host: Optional[HostPlatform] = None,
        api_url: Optional[str] = None,
        secret_resolver: Optional[SecretResolver] = None,
        request_timeout: Optional[int] = None,
    ):
        super().__init__(spec, host, request_timeout)
        self.api_url = (api_url or config.PLAYIT_API_URL).rstrip('/')
        self.secret_resolver = secret_resolver or SecretResolver(host=self.host)

    def preflight(self, location: BinaryLocation, port: Optional[int] = None):
        super().preflight(location, port)
        # surfaces missing or malformed credentials before anything is spawned
        self.secret_resolver.read_secret()

    def spawn(self, location: BinaryLocation, port: Optional[int] = None) -> subprocess.Popen:
        self.spec.require_supported(self.host)
        env = dict(os.environ)
        env['RUST_LOG'] = 'info'
        return self._popen(['--stdout', 'start'], location, env=env)

    def resolve_public_address(self, location: BinaryLocation, process: Optional[subprocess.Popen] = None) -> str:
        """
        Ask the account API for the domain assigned to the first tunnel.

        Raises:
            UnsupportedPlatformError: Provider has no support for this OS
            SecretNotFoundError / SecretFieldMissingError / SecretFormatError: Credential problems
            NetworkError: The account API call failed
            TunnelCreationError: The account has no tunnel
        """
        self.spec.require_supported(self.host)
        secret = self.secret_resolver.read_secret()

        try:
            response = requests.post(
                f"{self.api_url}/agents/rundata",
                json={},
                headers={'Authorization': f'Agent-Key {secret}'},
                timeout=self.request_timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Playit API error: {e}") from e

        if response.status_code >= 400:
            raise NetworkError(f"Playit API error: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ValidationError("Failed to parse Playit API response") from e

        if not isinstance(payload, dict):
            raise ValidationError("Unexpected Playit API response")

        if payload.get('status', 'success') != 'success':
            raise NetworkError(f"Playit API error: {payload.get('data')}")

        data = payload.get('data', payload)
        tunnels = data.get('tunnels') if isinstance(data, dict) else None
        if tunnels is not None and not isinstance(tunnels, list):
            raise ValidationError("Unexpected Playit API response: tunnels is not a list")
        if tunnels and isinstance(tunnels[0], dict) and tunnels[0].get('assigned_domain'):
            return tunnels[0]['assigned_domain']

        raise TunnelCreationError("No Playit tunnel found")


def build_launcher(spec: ProviderSpec, host: Optional[HostPlatform] = None) -> TunnelLauncher:
    """Return the launcher matching the provider's launch shape."""
    if spec.launch is LaunchKind.LOCAL_API:
        return LocalApiLauncher(spec, host)
    return AccountApiLauncher(spec, host)


def terminate_process(process: subprocess.Popen, timeout: float = 5) -> bool:
    """
    Terminate process, force-killing it if it ignores SIGTERM for timeout seconds.

    Returns:
        True if the process exited gracefully, False if a kill was needed or failed
    """
    if process.poll() is not None:
        return True

    try:
        process.terminate()
        process.wait(timeout=timeout)
        return True
    except subprocess.TimeoutExpired:
        log.warning(f"Process {process.pid} did not exit after {timeout} seconds, force-killing")
    except OSError as e:
        log.warning(f"Failed to send termination signal to {process.pid}: {e}")

    try:
        process.kill()
        process.wait(timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        log.error(f"Failed to force-kill process {process.pid}: {e}")
    return False


def read_log_tail(log_path: Path, lines: int = 10) -> str:
    """Return the last lines of a process log for error context."""
    try:
        with open(log_path, 'r', errors='replace') as f:
            return ''.join(f.readlines()[-lines:])
    except OSError:
        return "Could not read log file"

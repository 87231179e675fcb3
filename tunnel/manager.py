"""
Per-provider tunnel lifecycle - install guard, verification, launch.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

import config
from .binary import BinaryLocation, HostPlatform, get_host_platform, get_provider
from .exceptions import BinaryDownloadError
from .installer import Installer
from .launcher import TunnelLauncher, build_launcher
from .verifier import Verifier

log = logging.getLogger(__name__)


class TunnelManager:
    """
    Owns one provider's binary and serializes install against verify.

    The marker file only protects against crashes; this lock is what keeps
    a verification pass from deleting an install that is still running.
    """

    def __init__(
        self,
        provider: str,
        base_directory=None,
        host: Optional[HostPlatform] = None,
        installer: Optional[Installer] = None,
        verifier: Optional[Verifier] = None,
        launcher: Optional[TunnelLauncher] = None,
    ):
        """
        Initialize tunnel manager.

        Args:
            provider: Provider name ('ngrok' or 'playit')
            base_directory: Directory holding the binary (defaults to the configured tunnels dir)
            host: Platform override, mainly for tests
            installer / verifier / launcher: Collaborator overrides
        """
        self.spec = get_provider(provider)
        self.host = host or get_host_platform()
        base = Path(base_directory) if base_directory else Path(config.get_tunnel_dir(self.spec.name))
        self.location = BinaryLocation.for_provider(self.spec, base, self.host)

        self.installer = installer or Installer(self.spec, self.host)
        self.verifier = verifier or Verifier(self.spec, self.host)
        self.launcher = launcher or build_launcher(self.spec, self.host)

        self._install_lock = threading.Lock()

    @property
    def provider(self) -> str:
        return self.spec.name

    def is_installed(self) -> bool:
        """Verify the binary, cleaning up any inconsistent install."""
        with self._install_lock:
            return self.verifier.is_installed(self.location)

    def install(self):
        """Run the install transaction; errors propagate unchanged."""
        with self._install_lock:
            self.installer.install(self.location)

    def ensure_binary(self):
        """
        Make sure a usable binary is in place, installing it if needed.

        Raises:
            UnsupportedPlatformError: Provider does not run on this platform
            BinaryDownloadError: Install finished but the binary still fails verification
            (plus anything Installer.install raises)
        """
        with self._install_lock:
            if self.verifier.is_installed(self.location):
                return

            self.spec.require_supported(self.host)
            log.info(f"{self.provider} not installed, downloading")
            self.installer.install(self.location)

            if not self.verifier.is_installed(self.location):
                raise BinaryDownloadError(f"{self.provider} failed verification after install")

    def preflight(self, port: Optional[int] = None):
        self.launcher.preflight(self.location, port)

    def spawn(self, port: Optional[int] = None) -> subprocess.Popen:
        return self.launcher.spawn(self.location, port)

    def resolve_public_address(self, process: Optional[subprocess.Popen] = None) -> str:
        return self.launcher.resolve_public_address(self.location, process)

    def start_tunnel(self, port: Optional[int] = None) -> Tuple[subprocess.Popen, str]:
        """
        Start the tunnel on an already verified binary.

        Returns:
            (process handle, public address)
        """
        return self.launcher.start(self.location, port)

    def get_status(self) -> dict:
        """Report support and install state for this provider."""
        reason = self.spec.unsupported_reason(self.host)
        return {
            'provider': self.provider,
            'platform': str(self.host),
            'supported': reason is None,
            'reason': reason,
            'installed': self.is_installed() if reason is None else False,
            'executable_path': str(self.location.executable_path),
        }


_managers: Dict[str, TunnelManager] = {}
_managers_lock = threading.Lock()


def get_tunnel_manager(provider: Optional[str] = None) -> TunnelManager:
    """Get the singleton TunnelManager for provider (defaults to the configured one)."""
    name = get_provider(provider or config.TUNNEL_PROVIDER).name
    with _managers_lock:
        if name not in _managers:
            _managers[name] = TunnelManager(name)
        return _managers[name]

"""
Install verification and cleanup.
"""

import logging
import shutil
import subprocess
from enum import Enum
from typing import Optional

import config
from .binary import BinaryLocation, CleanupStrategy, HostPlatform, ProviderSpec, get_host_platform

log = logging.getLogger(__name__)


class InstallState(str, Enum):
    """Derived judgment of a provider install; never stored."""
    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    CORRUPT = "corrupt"


class Verifier:
    """Decides whether a provider binary is usable and removes it when it is not."""

    def __init__(self, spec: ProviderSpec, host: Optional[HostPlatform] = None, probe_timeout: Optional[int] = None):
        self.spec = spec
        self.host = host or get_host_platform()
        self.probe_timeout = probe_timeout if probe_timeout is not None else config.PROBE_TIMEOUT

    def inspect(self, location: BinaryLocation) -> InstallState:
        """
        Judge the install without touching the disk.

        A standing marker outranks everything else: the executable next to it
        is never trusted, even if it runs.
        """
        if location.installing_marker_path.exists():
            return InstallState.INSTALLING

        exe = location.executable_path
        if not exe.is_file():
            return InstallState.NOT_INSTALLED

        if exe.stat().st_size == 0 or not self.probe(location):
            return InstallState.CORRUPT

        return InstallState.INSTALLED

    def is_installed(self, location: BinaryLocation) -> bool:
        """
        Return True if the binary is present and passes its capability probe.

        Anything else triggers cleanup, so a half-installed binary is never
        left for a later caller. Must not run concurrently with an install of
        the same location.
        """
        if not self.spec.is_supported(self.host):
            return False

        state = self.inspect(location)
        if state is InstallState.INSTALLED:
            return True

        log.info(f"{self.spec.name} at {location.base_directory} is {state.value}, cleaning up")
        self.cleanup(location)
        return False

    def probe(self, location: BinaryLocation) -> bool:
        """Run the binary with its version flag and report exit success."""
        try:
            result = subprocess.run(
                [str(location.executable_path), *self.spec.probe_args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.probe_timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.debug(f"Capability probe of {location.executable_path} failed: {e}")
            return False
        return result.returncode == 0

    def cleanup(self, location: BinaryLocation):
        """Destroy marker and partial artifacts; errors are logged, never raised."""
        if self.spec.cleanup is CleanupStrategy.NUKE:
            base = location.base_directory
            if base.is_dir() and any(base.iterdir()):
                shutil.rmtree(base, ignore_errors=True)
                if base.exists():
                    log.warning(f"Could not fully remove {base}")
            return

        for path in (location.executable_path, location.staging_archive_path, location.installing_marker_path):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning(f"Could not remove {path}: {e}")

"""
Tunnel binary resolution - executable names, download URLs and sentinel paths.
"""

import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from .exceptions import ConfigurationError, UnsupportedPlatformError


NGROK_DOWNLOAD_BASE = "https://bin.equinox.io/c/bNyj1mQVY4c"
PLAYIT_DOWNLOAD_BASE = "https://github.com/playit-cloud/playit-agent/releases/latest/download"

PLAYIT_MACOS_MESSAGE = (
    "Playit tunnel is not supported on macOS. Consider changing the provider "
    "or turn off Tunnel option and try again."
)

INSTALLING_MARKER = ".installing"


class Distribution(str, Enum):
    """How a provider ships its binary."""
    ARCHIVE = "archive"
    EXECUTABLE = "executable"


class CleanupStrategy(str, Enum):
    """What the verifier destroys when it finds an inconsistent install."""
    SELECTIVE = "selective"
    NUKE = "nuke"


class LaunchKind(str, Enum):
    """How the public address of a started tunnel is recovered."""
    LOCAL_API = "local_api"
    ACCOUNT_API = "account_api"


@dataclass(frozen=True)
class HostPlatform:
    """Normalised (os, arch) pair of the machine we run on."""
    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


def detect_platform() -> HostPlatform:
    """
    Detect OS and architecture.

    Unknown values are kept as reported so capability lookups can name them
    in their error message.

    Returns:
        HostPlatform (e.g. linux/amd64, windows/amd64, darwin/arm64)
    """
    system = platform.system().lower()
    machine = platform.machine().lower()

    # map OS names
    os_map = {
        'linux': 'linux',
        'darwin': 'darwin',
        'windows': 'windows'
    }

    # map architecture names
    arch_map = {
        'x86_64': 'amd64',
        'amd64': 'amd64',
        'aarch64': 'arm64',
        'arm64': 'arm64',
        'armv7l': 'arm'
    }

    return HostPlatform(os=os_map.get(system, system), arch=arch_map.get(machine, machine))


_host: Optional[HostPlatform] = None


def get_host_platform() -> HostPlatform:
    """Get the host platform, detected once per process."""
    global _host
    if _host is None:
        _host = detect_platform()
    return _host


@dataclass(frozen=True)
class ProviderSpec:
    """Capability table entry for one tunnel provider."""
    name: str
    binary_name: str
    distribution: Distribution
    probe_args: Tuple[str, ...]
    cleanup: CleanupStrategy
    launch: LaunchKind
    downloads: Dict[Tuple[str, str], str] = field(default_factory=dict)
    # os -> reason; the provider cannot work at all on these
    unsupported_os: Dict[str, str] = field(default_factory=dict)

    def unsupported_reason(self, host: HostPlatform) -> Optional[str]:
        """Return why this provider cannot run on host, or None if it can."""
        if host.os in self.unsupported_os:
            return self.unsupported_os[host.os]
        if (host.os, host.arch) not in self.downloads:
            return f"{self.name} has no release for platform {host}"
        return None

    def is_supported(self, host: HostPlatform) -> bool:
        return self.unsupported_reason(host) is None

    def require_supported(self, host: HostPlatform):
        reason = self.unsupported_reason(host)
        if reason:
            raise UnsupportedPlatformError(reason)

    def download_url(self, host: HostPlatform) -> str:
        """
        Select the release artifact for host.

        Raises:
            UnsupportedPlatformError: If no artifact exists for (os, arch)
        """
        self.require_supported(host)
        return self.downloads[(host.os, host.arch)]

    def executable_name(self, host: HostPlatform) -> str:
        if host.is_windows:
            return f"{self.binary_name}.exe"
        return self.binary_name


NGROK = ProviderSpec(
    name="ngrok",
    binary_name="ngrok",
    distribution=Distribution.ARCHIVE,
    probe_args=("version",),
    cleanup=CleanupStrategy.SELECTIVE,
    launch=LaunchKind.LOCAL_API,
    downloads={
        ("windows", "amd64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-windows-amd64.zip",
        ("windows", "arm64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-windows-arm64.zip",
        ("darwin", "amd64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-darwin-amd64.zip",
        ("darwin", "arm64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-darwin-arm64.zip",
        ("linux", "amd64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-linux-amd64.zip",
        ("linux", "arm64"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-linux-arm64.zip",
        ("linux", "arm"): f"{NGROK_DOWNLOAD_BASE}/ngrok-v3-stable-linux-arm.zip",
    },
)

PLAYIT = ProviderSpec(
    name="playit",
    binary_name="playit",
    distribution=Distribution.EXECUTABLE,
    probe_args=("--version",),
    cleanup=CleanupStrategy.NUKE,
    launch=LaunchKind.ACCOUNT_API,
    downloads={
        ("windows", "amd64"): f"{PLAYIT_DOWNLOAD_BASE}/playit-windows-x86_64.exe",
        ("linux", "amd64"): f"{PLAYIT_DOWNLOAD_BASE}/playit-linux-amd64",
        ("linux", "arm64"): f"{PLAYIT_DOWNLOAD_BASE}/playit-linux-aarch64",
    },
    unsupported_os={"darwin": PLAYIT_MACOS_MESSAGE},
)

PROVIDERS = {spec.name: spec for spec in (NGROK, PLAYIT)}


def get_provider(name: str) -> ProviderSpec:
    """
    Look up a provider by name.

    Raises:
        ConfigurationError: If the name is not a known provider
    """
    spec = PROVIDERS.get((name or "").strip().lower())
    if spec is None:
        raise ConfigurationError(
            f"Unknown tunnel provider {name!r} (expected one of: {', '.join(sorted(PROVIDERS))})"
        )
    return spec


@dataclass(frozen=True)
class BinaryLocation:
    """On-disk layout of one provider install."""
    base_directory: Path
    executable_path: Path
    staging_archive_path: Path
    installing_marker_path: Path

    @classmethod
    def for_provider(cls, spec: ProviderSpec, base_directory, host: HostPlatform) -> 'BinaryLocation':
        """
        Derive the layout for spec under base_directory.

        Pure path construction; nothing is created on disk.
        """
        base = Path(base_directory)
        executable = base / spec.executable_name(host)

        if spec.distribution is Distribution.ARCHIVE:
            staging = base / f"{spec.name}.zip"
        else:
            staging = base / f"{executable.name}.tmp"

        return cls(
            base_directory=base,
            executable_path=executable,
            staging_archive_path=staging,
            installing_marker_path=base / INSTALLING_MARKER,
        )

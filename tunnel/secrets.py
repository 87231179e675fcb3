"""
Provider credential lookup.

The playit agent stores its secret in a small TOML file in a platform
specific app-data folder. Only one field is needed, so the file is scanned
line by line for `secret_key = "..."` rather than parsed as a whole.
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .binary import HostPlatform, PLAYIT_MACOS_MESSAGE, get_host_platform
from .exceptions import (
    SecretFieldMissingError,
    SecretFormatError,
    SecretNotFoundError,
    UnsupportedPlatformError,
)

log = logging.getLogger(__name__)


class SecretResolver:
    """Locates and reads a provider secret; never caches it."""

    def __init__(
        self,
        app_dir: str = "playit_gg",
        filename: str = "playit.toml",
        field: str = "secret_key",
        host: Optional[HostPlatform] = None,
        environ: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ):
        """
        Initialize resolver.

        Args:
            app_dir: Provider folder inside the platform app-data directory
            filename: Credential file name
            field: Key whose value is the secret
            host: Platform whose path convention applies (defaults to the detected host)
            environ: Environment used for app-data lookups (defaults to os.environ)
            home: Home directory override
        """
        self.app_dir = app_dir
        self.filename = filename
        self.field = field
        self.host = host or get_host_platform()
        self.environ = environ if environ is not None else os.environ
        self.home = Path(home) if home is not None else None

    def config_path(self) -> Path:
        """
        Return the credential file path for this platform.

        On Windows the first existing candidate wins (LOCALAPPDATA, then the
        older APPDATA location); if neither exists the LOCALAPPDATA path is
        returned so the caller reports a missing file.

        Raises:
            UnsupportedPlatformError: No known convention for this OS
            SecretNotFoundError: The app-data location cannot be determined
        """
        if self.host.os == "windows":
            candidates = [
                Path(self.environ[var]) / self.app_dir / self.filename
                for var in ("LOCALAPPDATA", "APPDATA")
                if self.environ.get(var)
            ]
            if not candidates:
                raise SecretNotFoundError("Neither LOCALAPPDATA nor APPDATA is set")
            for candidate in candidates:
                if candidate.exists():
                    return candidate
            return candidates[0]

        if self.host.os == "linux":
            home = self.home or self._home_from_env()
            return home / ".local" / "share" / self.app_dir / self.filename

        if self.host.os == "darwin":
            raise UnsupportedPlatformError(PLAYIT_MACOS_MESSAGE)

        raise UnsupportedPlatformError(f"No credential location known for platform {self.host}")

    def read_secret(self) -> str:
        """
        Read the secret from the credential file.

        Raises:
            UnsupportedPlatformError: No known convention for this OS
            SecretNotFoundError: Credential file is missing or unreadable
            SecretFieldMissingError: No line for the field
            SecretFormatError: Field present but empty or not `key = "value"`
        """
        path = self.config_path()
        try:
            content = path.read_text(encoding='utf-8')
        except FileNotFoundError as e:
            raise SecretNotFoundError(f"Credential file not found: {path}") from e
        except OSError as e:
            raise SecretNotFoundError(f"Failed to read credential file {path}: {e}") from e

        secret = parse_secret(content, self.field)
        log.debug(f"Read {self.field} from {path}")
        return secret

    def _home_from_env(self) -> Path:
        home = self.environ.get("HOME")
        if home:
            return Path(home)
        return Path.home()


def parse_secret(content: str, field: str) -> str:
    """
    Extract the value of `field = "value"` from content.

    The first line whose key is field decides; comments and other keys are
    skipped.
    """
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith('#'):
            continue

        key, sep, value = line.partition('=')
        if key.strip() != field:
            continue

        if not sep:
            raise SecretFormatError(f"Invalid {field} format")

        secret = value.strip().strip('"').strip("'").strip()
        if not secret:
            raise SecretFormatError(f"Invalid {field} format")
        return secret

    raise SecretFieldMissingError(f"{field} not found in credential file")

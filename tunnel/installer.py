"""
Transactional tunnel binary install.

The installing marker is written before anything else and removed only after
the binary is in place. A failed install deliberately leaves the marker
behind: the verifier treats a standing marker as disqualifying and cleans up
on its next pass.
"""

import logging
import os
import shutil
import stat
import zipfile
from pathlib import Path
from typing import Optional

import requests

import config
from .binary import BinaryLocation, Distribution, HostPlatform, ProviderSpec, get_host_platform
from .exceptions import ArtifactValidationError, BinaryDownloadError

log = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class Installer:
    """Downloads, unpacks and marks a provider binary executable."""

    def __init__(
        self,
        spec: ProviderSpec,
        host: Optional[HostPlatform] = None,
        download_timeout: Optional[int] = None,
        min_executable_bytes: Optional[int] = None,
    ):
        """
        Initialize installer.

        Args:
            spec: Provider capability entry
            host: Platform to install for (defaults to the detected host)
            download_timeout: Seconds allowed for the artifact download
            min_executable_bytes: Smallest single-file download accepted as a binary
        """
        self.spec = spec
        self.host = host or get_host_platform()
        self.download_timeout = download_timeout if download_timeout is not None else config.DOWNLOAD_TIMEOUT
        self.min_executable_bytes = (
            min_executable_bytes if min_executable_bytes is not None else config.MIN_EXECUTABLE_BYTES
        )

    def install(self, location: BinaryLocation):
        """
        Install the provider binary into location.

        Raises:
            UnsupportedPlatformError: No artifact exists for this platform
            BinaryDownloadError: Network failure or non-success HTTP status
            ArtifactValidationError: Undersized download or unusable archive
            OSError: Filesystem failure while writing the artifact
        """
        # resolve the URL first so an unsupported platform never leaves a marker behind
        url = self.spec.download_url(self.host)

        location.base_directory.mkdir(parents=True, exist_ok=True)

        # transaction begin
        location.installing_marker_path.write_bytes(b"")
        log.info(f"Installing {self.spec.name} into {location.base_directory} from {url}")

        if self.spec.distribution is Distribution.ARCHIVE:
            self._download(url, location.staging_archive_path)
            self._extract_archive(location.staging_archive_path, location.base_directory)
        else:
            size = self._download(url, location.staging_archive_path)
            if size < self.min_executable_bytes:
                raise ArtifactValidationError(
                    f"Downloaded {self.spec.name} binary is suspiciously small ({size} bytes)"
                )
            os.replace(location.staging_archive_path, location.executable_path)

        self._set_executable_permissions(location.executable_path)

        # transaction commit
        _remove_quietly(location.installing_marker_path)
        _remove_quietly(location.staging_archive_path)
        log.info(f"Installed {self.spec.name} at {location.executable_path}")

    def _download(self, url: str, dest: Path) -> int:
        """
        Stream url into dest.

        Returns:
            Number of bytes written
        """
        try:
            response = requests.get(url, stream=True, timeout=self.download_timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise BinaryDownloadError(f"Failed to download {self.spec.name}: {e}") from e

        try:
            if response.status_code >= 400:
                raise BinaryDownloadError(
                    f"Failed to download {self.spec.name}: HTTP {response.status_code}"
                )

            written = 0
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
            return written

        except requests.RequestException as e:
            raise BinaryDownloadError(f"Download of {self.spec.name} was interrupted: {e}") from e
        finally:
            response.close()

    def _extract_archive(self, archive_path: Path, base_directory: Path):
        """
        Extract every entry of archive_path under base_directory.

        Directory structure is preserved. Entries that would land outside
        base_directory are rejected.
        """
        root = base_directory.resolve()

        try:
            with zipfile.ZipFile(archive_path) as archive:
                for info in archive.infolist():
                    target = (root / info.filename).resolve()
                    if target != root and root not in target.parents:
                        raise ArtifactValidationError(
                            f"Archive entry {info.filename!r} escapes {base_directory}"
                        )

                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue

                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, open(target, 'wb') as out:
                        shutil.copyfileobj(src, out)
        except zipfile.BadZipFile as e:
            raise ArtifactValidationError(f"Downloaded {self.spec.name} archive is corrupt: {e}") from e

    def _set_executable_permissions(self, binary_path: Path) -> bool:
        """
        Add owner, group and other execute bits on Unix systems.

        Best-effort: failure is logged and the install carries on, the
        verifier's probe decides whether the binary is usable.

        Returns:
            True on success, False otherwise
        """
        if self.host.is_windows:
            return True

        try:
            current = os.stat(binary_path).st_mode
            os.chmod(binary_path, current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            return True
        except OSError as e:
            log.warning(f"Could not set executable permissions on {binary_path}: {e}")
            return False


def _remove_quietly(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning(f"Could not remove {path}: {e}")

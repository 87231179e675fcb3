"""Tests for the per-provider tunnel manager."""

from __future__ import annotations

import threading
import time

import pytest

from tunnel import manager as manager_module
from tunnel.exceptions import BinaryDownloadError, UnsupportedPlatformError
from tunnel.manager import TunnelManager, get_tunnel_manager


class FakeVerifier:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = 0

    def is_installed(self, location):
        self.calls += 1
        return self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]


class FakeInstaller:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def install(self, location):
        self.calls += 1
        if self.error:
            raise self.error


class BlockingInstaller:
    """Holds the install open until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.finished_at = None

    def install(self, location):
        self.entered.set()
        self.release.wait(5)
        self.finished_at = time.monotonic()


class TimedVerifier:
    def __init__(self):
        self.called_at = None

    def is_installed(self, location):
        self.called_at = time.monotonic()
        return True


def make_manager(tmp_path, host, provider="ngrok", installer=None, verifier=None):
    return TunnelManager(
        provider,
        base_directory=tmp_path / provider,
        host=host,
        installer=installer or FakeInstaller(),
        verifier=verifier or FakeVerifier(True),
        launcher=object(),
    )


class TestEnsureBinary:
    """Verify-then-install guard."""

    def test_already_installed(self, tmp_path, linux_host):
        installer = FakeInstaller()
        manager = make_manager(tmp_path, linux_host, installer=installer, verifier=FakeVerifier(True))

        manager.ensure_binary()

        assert installer.calls == 0

    def test_installs_when_missing(self, tmp_path, linux_host):
        installer = FakeInstaller()
        verifier = FakeVerifier(False, True)
        manager = make_manager(tmp_path, linux_host, installer=installer, verifier=verifier)

        manager.ensure_binary()

        assert installer.calls == 1
        assert verifier.calls == 2

    def test_still_broken_after_install(self, tmp_path, linux_host):
        manager = make_manager(tmp_path, linux_host, verifier=FakeVerifier(False))

        with pytest.raises(BinaryDownloadError, match="failed verification after install"):
            manager.ensure_binary()

    def test_install_errors_propagate(self, tmp_path, linux_host):
        manager = make_manager(
            tmp_path, linux_host,
            installer=FakeInstaller(BinaryDownloadError("HTTP 503")),
            verifier=FakeVerifier(False),
        )

        with pytest.raises(BinaryDownloadError, match="503"):
            manager.ensure_binary()

    def test_unsupported_platform_never_installs(self, tmp_path, darwin_host):
        installer = FakeInstaller()
        manager = make_manager(tmp_path, darwin_host, provider="playit", installer=installer, verifier=FakeVerifier(False))

        with pytest.raises(UnsupportedPlatformError):
            manager.ensure_binary()

        assert installer.calls == 0


class TestInstallLock:
    """Install and verify never overlap within one manager."""

    def test_verify_waits_for_running_install(self, tmp_path, linux_host):
        installer = BlockingInstaller()
        verifier = TimedVerifier()
        manager = make_manager(tmp_path, linux_host, installer=installer, verifier=verifier)

        install_thread = threading.Thread(target=manager.install)
        install_thread.start()
        assert installer.entered.wait(5)

        verify_thread = threading.Thread(target=manager.is_installed)
        verify_thread.start()
        time.sleep(0.1)
        assert verifier.called_at is None

        installer.release.set()
        install_thread.join(5)
        verify_thread.join(5)

        assert verifier.called_at is not None
        assert verifier.called_at >= installer.finished_at


class TestStatus:
    """Status reporting."""

    def test_supported(self, tmp_path, linux_host):
        status = make_manager(tmp_path, linux_host).get_status()

        assert status == {
            'provider': 'ngrok',
            'platform': 'linux-amd64',
            'supported': True,
            'reason': None,
            'installed': True,
            'executable_path': str(tmp_path / "ngrok" / "ngrok"),
        }

    def test_unsupported_skips_verification(self, tmp_path, darwin_host):
        verifier = FakeVerifier(True)
        status = make_manager(tmp_path, darwin_host, provider="playit", verifier=verifier).get_status()

        assert status['supported'] is False
        assert status['installed'] is False
        assert "macOS" in status['reason']
        assert verifier.calls == 0


class TestGetTunnelManager:
    """Singleton lookup."""

    def test_one_manager_per_provider(self, monkeypatch, tmp_path):
        monkeypatch.setattr(manager_module, "_managers", {})
        monkeypatch.setattr(manager_module.config, "DATA_DIR", str(tmp_path))

        ngrok = get_tunnel_manager("ngrok")

        assert get_tunnel_manager("NGROK") is ngrok
        assert get_tunnel_manager("playit") is not ngrok
        assert ngrok.location.base_directory == tmp_path / "tunnels" / "ngrok"

    def test_defaults_to_configured_provider(self, monkeypatch, tmp_path):
        monkeypatch.setattr(manager_module, "_managers", {})
        monkeypatch.setattr(manager_module.config, "DATA_DIR", str(tmp_path))
        monkeypatch.setattr(manager_module.config, "TUNNEL_PROVIDER", "playit")

        assert get_tunnel_manager().provider == "playit"

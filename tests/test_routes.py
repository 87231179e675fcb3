"""Tests for the JSON API."""

from __future__ import annotations

import pytest

from app import create_app
from models import ActiveServerSession
from tunnel.binary import get_provider
from tunnel.exceptions import (
    BinaryDownloadError,
    NoActiveServerError,
    SecretNotFoundError,
    ServerAlreadyRunningError,
    TunnelCreationError,
    UnsupportedPlatformError,
)

SERVER = {
    "id": "survival",
    "name": "Survival",
    "version": "1.20.4",
    "path": "/srv/minecraft/survival",
    "ram_gb": 4,
}


class FakeSupervisor:
    def __init__(self):
        self.session = None
        self.error = None
        self.started = []

    def query(self):
        return self.session

    def start(self, server):
        if self.error:
            raise self.error
        self.started.append(server)
        self.session = ActiveServerSession(
            server_id=server.id, server_pid=100, tunnel_pid=101,
            public_address="tcp://0.tcp.ngrok.io:12345", provider=server.provider,
        )
        return self.session

    def stop(self):
        if self.session is None:
            raise NoActiveServerError("No active server")
        self.session = None

    def check_processes(self):
        return True


class FakeTunnelManager:
    def __init__(self, provider, error=None):
        self.provider = provider
        self.error = error
        self.installed = False

    def ensure_binary(self):
        if self.error:
            raise self.error
        self.installed = True

    def get_status(self):
        return {
            'provider': self.provider,
            'platform': 'linux-amd64',
            'supported': True,
            'reason': None,
            'installed': self.installed,
            'executable_path': f'/data/tunnels/{self.provider}/{self.provider}',
        }


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def managers():
    return {}


@pytest.fixture
def client(supervisor, managers):
    def factory(provider):
        name = get_provider(provider).name
        return managers.setdefault(name, FakeTunnelManager(name))

    app = create_app(supervisor=supervisor, tunnel_manager_factory=factory)
    app.config['TESTING'] = True
    return app.test_client()


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'


class TestTunnelRoutes:
    """Provider status and install."""

    def test_status(self, client):
        response = client.get('/api/tunnel/ngrok/status')

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['status']['provider'] == 'ngrok'
        assert body['status']['installed'] is False

    def test_unknown_provider(self, client):
        response = client.get('/api/tunnel/frp/status')

        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_install(self, client):
        response = client.post('/api/tunnel/playit/install')

        assert response.status_code == 200
        assert response.get_json()['status']['installed'] is True

    def test_install_unsupported_is_not_retryable(self, client, managers):
        managers['playit'] = FakeTunnelManager('playit', UnsupportedPlatformError("Playit tunnel is not supported on macOS."))

        response = client.post('/api/tunnel/playit/install')

        assert response.status_code == 501
        body = response.get_json()
        assert body['retryable'] is False
        assert 'not supported on your platform' in body['error']
        assert 'macOS' in body['detail']

    def test_install_download_failure_is_retryable(self, client, managers):
        managers['ngrok'] = FakeTunnelManager('ngrok', BinaryDownloadError("Download failed: HTTP 503"))

        response = client.post('/api/tunnel/ngrok/install')

        assert response.status_code == 502
        body = response.get_json()
        assert body['retryable'] is True
        assert body['error'] == 'Failed to download the tunnel binary'

    def test_install_filesystem_error(self, client, managers):
        managers['ngrok'] = FakeTunnelManager('ngrok', PermissionError("read-only file system"))

        response = client.post('/api/tunnel/ngrok/install')

        assert response.status_code == 500
        assert response.get_json()['retryable'] is True


class TestServerRoutes:
    """Start, stop and query."""

    def test_active_when_idle(self, client):
        body = client.get('/api/server/active').get_json()

        assert body == {'success': True, 'session': None}

    def test_start(self, client, supervisor):
        response = client.post('/api/server/start', json=SERVER)

        assert response.status_code == 200
        session = response.get_json()['session']
        assert session['server_id'] == 'survival'
        assert session['public_address'] == 'tcp://0.tcp.ngrok.io:12345'
        assert session['pending'] is False
        assert supervisor.started[0].ram_gb == 4

        active = client.get('/api/server/active').get_json()
        assert active['session']['server_pid'] == 100

    def test_start_with_invalid_body(self, client, supervisor):
        response = client.post('/api/server/start', json={"id": "survival"})

        assert response.status_code == 400
        assert 'missing' in response.get_json()['error']
        assert supervisor.started == []

    def test_start_with_non_string_provider(self, client, supervisor):
        response = client.post('/api/server/start', json={**SERVER, "tunnel_provider": 5})

        assert response.status_code == 400
        assert response.get_json()['retryable'] is False
        assert supervisor.started == []

    def test_start_without_body(self, client):
        response = client.post('/api/server/start', data="not json", content_type="text/plain")

        assert response.status_code == 400

    @pytest.mark.parametrize("error, status, message", [
        (ServerAlreadyRunningError("A server is already running"), 409, 'A server is already running'),
        (TunnelCreationError("No ngrok tunnel found"), 502, 'The tunnel provider reported no active tunnel'),
        (SecretNotFoundError("Credential file not found"), 400, 'Tunnel account credentials were not found'),
    ])
    def test_start_errors(self, client, supervisor, error, status, message):
        supervisor.error = error

        response = client.post('/api/server/start', json=SERVER)

        assert response.status_code == status
        body = response.get_json()
        assert body['success'] is False
        assert body['error'] == message

    def test_stop(self, client):
        client.post('/api/server/start', json=SERVER)

        response = client.post('/api/server/stop')

        assert response.status_code == 200
        assert client.get('/api/server/active').get_json()['session'] is None

    def test_stop_when_idle(self, client):
        response = client.post('/api/server/stop')

        assert response.status_code == 409
        assert response.get_json()['detail'] == 'No active server'

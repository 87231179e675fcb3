"""
ServerSupervisor - owns the single game server + tunnel session.

All reads and writes of the session slot go through one lock. The only I/O
done while holding it is process spawn; binary installs and public address
resolution happen outside so concurrent queries are never blocked for long.
"""

import logging
import subprocess
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import psutil

import config
from models import ActiveServerSession, ServerConfig
from tunnel.exceptions import (
    ConfigurationError,
    NoActiveServerError,
    ProcessManagementError,
    ServerAlreadyRunningError,
    StateConflictError,
)
from tunnel.launcher import terminate_process
from tunnel.manager import TunnelManager, get_tunnel_manager

log = logging.getLogger(__name__)

CONSOLE_LOG = "console.log"


class ServerSupervisor:

    def __init__(
        self,
        tunnel_manager_factory: Callable[[str], TunnelManager] = get_tunnel_manager,
        java_bin: Optional[str] = None,
        reap_timeout: float = 10,
    ):
        self.tunnel_manager_factory = tunnel_manager_factory
        self.java_bin = java_bin or config.JAVA_BIN
        self.reap_timeout = reap_timeout

        self._lock = threading.Lock()
        self._session: Optional[ActiveServerSession] = None

    def query(self) -> Optional[ActiveServerSession]:
        """Return a copy of the current session, or None when idle."""
        with self._lock:
            return replace(self._session) if self._session else None

    def start(self, server: ServerConfig) -> ActiveServerSession:
        """
        Start the game server and its tunnel.

        The session is stored as soon as both processes are spawned, with a
        pending public address; it is reconciled once the tunnel reports one.

        Raises:
            ServerAlreadyRunningError: A session is already active
            StateConflictError: The session was stopped while its address was resolving
            (plus any tunnel install/launch error)
        """
        with self._lock:
            self._require_idle()

        manager = self.tunnel_manager_factory(server.provider)
        manager.ensure_binary()
        manager.preflight(server.port)

        with self._lock:
            self._require_idle()

            server_process = self._spawn_server(server)
            try:
                tunnel_process = manager.spawn(server.port)
            except Exception:
                self._reap_async(server_process)
                raise

            session = ActiveServerSession(
                server_id=server.id,
                server_pid=server_process.pid,
                tunnel_pid=tunnel_process.pid,
                provider=manager.provider,
                _server_process=server_process,
                _tunnel_process=tunnel_process,
            )
            self._session = session

        log.info(
            f"Started server {server.id} (PID {server_process.pid}) with "
            f"{manager.provider} tunnel (PID {tunnel_process.pid})"
        )

        try:
            address = manager.resolve_public_address(tunnel_process)
        except Exception as e:
            log.error(f"Could not resolve public address for server {server.id}: {e}")
            with self._lock:
                if self._session is session:
                    self._session = None
            self._signal(session)
            raise

        with self._lock:
            if self._session is session:
                session.public_address = address
                log.info(f"Server {server.id} is reachable at {address}")
                return replace(session)

        raise StateConflictError(f"Server {server.id} was stopped before its tunnel came up")

    def stop(self):
        """
        Stop the active session.

        Both processes are signalled and reaped in the background; this call
        does not wait for them to exit.

        Raises:
            NoActiveServerError: Nothing is running
        """
        with self._lock:
            session = self._session
            if session is None:
                raise NoActiveServerError("No active server")
            self._session = None

        log.info(f"Stopping server {session.server_id}")
        self._signal(session)

    def check_processes(self) -> bool:
        """
        Tear the session down if either process has exited.

        Game server and tunnel live and die together. Polling also reaps
        exited children.

        Returns:
            True if idle or both processes are alive, False if the session was cleared
        """
        with self._lock:
            session = self._session
            if session is None:
                return True

            server_alive = _is_alive(session._server_process)
            tunnel_alive = _is_alive(session._tunnel_process)
            if server_alive and tunnel_alive:
                return True

            self._session = None

        dead = "server" if not server_alive else "tunnel"
        log.warning(f"The {dead} process of server {session.server_id} exited, stopping the session")
        self._signal(session)
        return False

    def _require_idle(self):
        if self._session is not None:
            raise ServerAlreadyRunningError("A server is already running")

    def _spawn_server(self, server: ServerConfig) -> subprocess.Popen:
        path = Path(server.path)
        if not path.is_dir():
            raise ConfigurationError(f"Server folder not found: {path}")

        args = [
            self.java_bin,
            f"-Xmx{server.ram_gb}G",
            f"-Xms{server.ram_gb}G",
            "-jar",
            server.jar,
            "nogui",
        ]
        try:
            with open(path / CONSOLE_LOG, 'a') as console:
                return subprocess.Popen(
                    args,
                    cwd=str(path),
                    stdout=console,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as e:
            raise ProcessManagementError(f"Failed to start server {server.id}: {e}") from e

    def _signal(self, session: ActiveServerSession):
        """Best-effort SIGTERM to both recorded processes."""
        for pid, process in (
            (session.server_pid, session._server_process),
            (session.tunnel_pid, session._tunnel_process),
        ):
            # an already reaped handle means the pid may belong to someone else now
            if process is not None and process.poll() is not None:
                continue
            try:
                psutil.Process(pid).terminate()
            except psutil.NoSuchProcess:
                log.debug(f"Process {pid} already gone")
            except psutil.Error as e:
                log.warning(f"Failed to signal process {pid}: {e}")

            if process is not None:
                self._reap_async(process)

    def _reap_async(self, process: subprocess.Popen):
        threading.Thread(
            target=terminate_process,
            args=(process, self.reap_timeout),
            daemon=True,
        ).start()


def _is_alive(process: subprocess.Popen) -> bool:
    # poll also reaps an exited child
    return process.poll() is None


# Singleton
_supervisor: Optional[ServerSupervisor] = None


def get_supervisor() -> ServerSupervisor:
    """Get the singleton ServerSupervisor."""
    global _supervisor
    if _supervisor is None:
        _supervisor = ServerSupervisor()
    return _supervisor

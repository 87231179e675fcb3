"""
Server configuration and session data structures.
"""

import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

import config

PENDING_ADDRESS = "pending..."


@dataclass
class ServerConfig:
    """A game server the user created; read from the server folder, not owned here."""

    id: str
    name: str
    version: str
    path: str
    ram_gb: int = 2
    loader: str = "vanilla"
    created_at: int = 0
    port: int = 25565
    jar: str = "server.jar"
    tunnel_provider: Optional[str] = None

    @property
    def provider(self) -> str:
        return (self.tunnel_provider or config.TUNNEL_PROVIDER).lower()

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'ServerConfig':
        """
        Deserialize from dictionary.

        Unknown keys are ignored; missing required keys raise ValueError.
        """
        if not isinstance(data, dict):
            raise ValueError("Server config must be an object")

        missing = [k for k in ('id', 'name', 'version', 'path') if not data.get(k)]
        if missing:
            raise ValueError(f"Server config is missing: {', '.join(missing)}")

        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}

        for key in ('id', 'name', 'version', 'path', 'loader', 'jar', 'tunnel_provider'):
            if values.get(key) is not None and not isinstance(values[key], str):
                raise ValueError(f"Server config field {key} must be a string")

        for key in ('ram_gb', 'port', 'created_at'):
            if key in values:
                try:
                    values[key] = int(values[key])
                except (TypeError, ValueError):
                    raise ValueError(f"Server config field {key} must be an integer")

        if values.get('ram_gb', 2) < 1:
            raise ValueError("Server config field ram_gb must be at least 1")

        return cls(**values)


@dataclass
class ActiveServerSession:
    """The running game server + tunnel pair; at most one exists."""

    server_id: str
    server_pid: int
    tunnel_pid: int
    public_address: str = PENDING_ADDRESS
    provider: str = ""
    started_at: float = field(default_factory=time.time)

    # Process handles (not serialized)
    _server_process: Optional[object] = field(default=None, repr=False, compare=False)
    _tunnel_process: Optional[object] = field(default=None, repr=False, compare=False)

    @property
    def is_pending(self) -> bool:
        return self.public_address == PENDING_ADDRESS

    def to_dict(self) -> dict:
        return {
            'server_id': self.server_id,
            'server_pid': self.server_pid,
            'tunnel_pid': self.tunnel_pid,
            'public_address': self.public_address,
            'provider': self.provider,
            'pending': self.is_pending,
            'started_at': datetime.fromtimestamp(self.started_at).isoformat(),
        }

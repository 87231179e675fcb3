"""
Centralized configuration for BlockHost.
Override via environment variables for non-default installs and tests.
"""
import os
import sys


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _default_data_dir():
    # Windows -> %APPDATA%\BlockHost, macOS -> ~/Library/Application Support/BlockHost,
    # Linux -> $XDG_DATA_HOME/BlockHost (~/.local/share/BlockHost)
    home = os.path.expanduser("~")
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
    elif sys.platform == "darwin":
        base = os.path.join(home, "Library", "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(home, ".local", "share")
    return os.path.join(base, "BlockHost")


# Data directory: servers and tunnel binaries live under here.
DATA_DIR = os.environ.get("BLOCKHOST_DATA_DIR") or _default_data_dir()

# Tunnel provider used when a server config does not name one (ngrok or playit).
TUNNEL_PROVIDER = os.environ.get("BLOCKHOST_TUNNEL_PROVIDER", "ngrok").strip().lower()

# ngrok exposes its control API on loopback once the agent is up.
NGROK_API_URL = os.environ.get("BLOCKHOST_NGROK_API_URL", "http://127.0.0.1:4040/api/tunnels")

# playit account API; the agent secret is read from the local playit.toml.
PLAYIT_API_URL = os.environ.get("BLOCKHOST_PLAYIT_API_URL", "https://api.playit.gg").rstrip("/")

# Timeouts in seconds.
DOWNLOAD_TIMEOUT = _env_int("BLOCKHOST_DOWNLOAD_TIMEOUT", 300)
REQUEST_TIMEOUT = _env_int("BLOCKHOST_REQUEST_TIMEOUT", 10)
PROBE_TIMEOUT = _env_int("BLOCKHOST_PROBE_TIMEOUT", 15)

# Control API poll: start at CONTROL_API_BACKOFF, double up to CONTROL_API_MAX_BACKOFF,
# give up after CONTROL_API_TIMEOUT.
CONTROL_API_TIMEOUT = _env_float("BLOCKHOST_CONTROL_API_TIMEOUT", 20.0)
CONTROL_API_BACKOFF = _env_float("BLOCKHOST_CONTROL_API_BACKOFF", 0.5)
CONTROL_API_MAX_BACKOFF = _env_float("BLOCKHOST_CONTROL_API_MAX_BACKOFF", 2.0)

# Single-file downloads smaller than this are treated as error pages, not binaries.
MIN_EXECUTABLE_BYTES = _env_int("BLOCKHOST_MIN_EXECUTABLE_BYTES", 500_000)

JAVA_BIN = os.environ.get("BLOCKHOST_JAVA_BIN", "java")

# Seconds between health checks of the supervised server/tunnel pair.
HEALTH_CHECK_INTERVAL = _env_int("BLOCKHOST_HEALTH_INTERVAL", 5)

LOG_LEVEL = os.environ.get("BLOCKHOST_LOG_LEVEL", "INFO").upper()


def get_servers_dir():
    return os.path.join(DATA_DIR, "servers")


def get_tunnels_dir():
    return os.path.join(DATA_DIR, "tunnels")


def get_tunnel_dir(provider):
    return os.path.join(get_tunnels_dir(), provider)

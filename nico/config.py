"""Application-wide configuration constants."""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "nico"
DEVICE_NAME_PREFIX = "Nico-"
FALLBACK_IP = "192.168.1.100"  # used when no interface address can be resolved

# --- Networking ---
API_HOST = os.environ.get("NICO_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("NICO_API_PORT", "8765"))
LOCAL_HOST = os.environ.get("NICO_HOST")  # None -> resolve from the routing table

MESSAGE_PORT = int(os.environ.get("NICO_MESSAGE_PORT", "8888"))  # TCP
DISCOVERY_PORT = int(os.environ.get("NICO_DISCOVERY_PORT", "8889"))  # UDP

CONNECT_TIMEOUT = 3.0  # seconds, outbound message connections
PROBE_TIMEOUT = 1.0  # seconds, directed discovery probes
MAX_CONCURRENT_PROBES = 256
SHUTDOWN_GRACE = 1.0  # seconds to wait for in-flight connections on stop

DATAGRAM_SIZE = 1024
MAX_FRAME_SIZE = 65536  # longest accepted line on a message connection

# --- Storage ---
CONFIG_DIR = Path(os.environ.get("NICO_DATA_DIR", str(Path.home() / ".nico")))
DATABASE_PATH = CONFIG_DIR / "messages.db"
PREFERENCES_PATH = CONFIG_DIR / "preferences.json"

from pathlib import Path
import os

# Server state directory (bind-mounted from host or a named volume). The mods
# folder and the config folder live next to it.
STATE_DIR = Path(os.environ.get("HYTALE_STATE_DIR", "/data/.state"))
DATA_ROOT = STATE_DIR.parent

MODS_DIR = Path(os.environ.get("MODS_DIR", str(DATA_ROOT / "mods")))
CONFIG_DIR = Path(os.environ.get("HYOS_CONFIG_DIR", str(DATA_ROOT / "config")))

# Be resilient: if creating the default paths fails (e.g., running locally without
# permissions to create /data), fall back to workspace-local directories.
try:
	MODS_DIR.mkdir(parents=True, exist_ok=True)
except Exception as e:
	fallback = Path(os.environ.get("MODS_FALLBACK_DIR", "/tmp/hytale-data/mods"))
	try:
		fallback.mkdir(parents=True, exist_ok=True)
		print(f"WARN: Could not create {MODS_DIR} ({e}); falling back to {fallback}")
		MODS_DIR = fallback
	except Exception as e2:
		# Last resort: don't crash import, the mod manager creates the folder lazily
		print(f"ERROR: Failed to create mods dir at {MODS_DIR} and fallback: {e2}")

try:
	CONFIG_DIR.mkdir(parents=True, exist_ok=True)
except Exception as e:
	fallback = Path(os.environ.get("CONFIG_FALLBACK_DIR", str(Path.cwd() / "config_data")))
	try:
		fallback.mkdir(parents=True, exist_ok=True)
		print(f"WARN: Could not create {CONFIG_DIR} ({e}); falling back to {fallback}")
		CONFIG_DIR = fallback
	except Exception as e2:
		print(f"ERROR: Failed to create config dir at {CONFIG_DIR} and fallback: {e2}")

# Game server REST API (the server-side API plugin)
SERVER_HOST = os.environ.get("SERVER_HOST", "localhost")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "8080"))
API_CLIENT_ID = os.environ.get("API_CLIENT_ID", "hyos-manager")
API_CLIENT_SECRET = os.environ.get("API_CLIENT_SECRET", "")

# Outbound provider calls are bounded per provider
PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "15"))

MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Branding / application identity
APP_NAME = os.environ.get("APP_NAME", "HyOS Server Manager")
APP_VERSION = os.environ.get("APP_VERSION", "0.1.0")
USER_AGENT = f"HyOS-Server-Manager/{APP_VERSION} (Python)"

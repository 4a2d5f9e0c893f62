"""
This module contains the configuration defaults for the AppHost launcher.
It defines paths, the bundled helper to launch, supervisor tuning and logging
destinations. Values can be overridden through environment variables or a
`.env` file in the working directory.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


def _parse_env_pairs(raw: str) -> dict:
    """Parses 'KEY=VALUE,KEY2=VALUE2' into a dictionary. Malformed pairs are skipped."""
    pairs = {}
    for item in raw.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key:
            pairs[key] = value
    return pairs


#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
BUNDLE_DIR = pathlib.Path(os.getenv("APPHOST_BUNDLE_DIR", str(BASE_DIR / "bin")))
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("APPHOST_OVERRIDES", str(BASE_DIR / "overrides.json")))

#* --- Bundled Helper ---
HELPER_NAME = os.getenv("APPHOST_HELPER", "helper")
# The helper always runs with backtraces enabled; extra pairs come from APPHOST_HELPER_ENV.
HELPER_ENVIRONMENT = {"RUST_BACKTRACE": "1", **_parse_env_pairs(os.getenv("APPHOST_HELPER_ENV", ""))}
PROCESS_TITLE = "AppHost - Launcher"

#* --- Supervisor Settings ---
READ_CHUNK_SIZE = int(os.getenv("APPHOST_READ_CHUNK_SIZE", "65536"))
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("APPHOST_GRACE_PERIOD", "10"))  # seconds before force-killing
STRICT_DELIVERY = _env_flag("APPHOST_STRICT_DELIVERY", "False")

#* --- Logging ---
# System log (syslog on Unix). An empty address means "auto-detect".
SYSLOG_ENABLED = _env_flag("SYSLOG_ENABLED", "False")
SYSLOG_ADDRESS = os.getenv("SYSLOG_ADDRESS", "")

# Grafana Loki (for observability)
LOKI_ENABLED = _env_flag("LOKI_ENABLED", "False")
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
LOG_BUFFER_FLUSH_INTERVAL = 10
LOG_BATCH_SIZE = 200

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "BUNDLE_DIR", "HELPER_NAME",
    "READ_CHUNK_SIZE", "GRACEFUL_SHUTDOWN_TIMEOUT", "STRICT_DELIVERY",
    "SYSLOG_ENABLED", "LOKI_ENABLED", "LOG_BUFFER_FLUSH_INTERVAL", "LOG_BATCH_SIZE",
}

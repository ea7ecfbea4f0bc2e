"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from pathlib import Path


# ─── Paths ───────────────────────────────────────────────────────
# One config, one credential folder and one activity log per user.
_FOLDER_NAME = "AutoClock"


def _default_base_dir():
    override = os.environ.get("AUTOCLOCK_HOME")
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / _FOLDER_NAME
    return Path.home() / ".autoclock"


BASE_DIR = _default_base_dir()

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "agent.log"
CREDENTIALS_DIR = BASE_DIR / "credentials"
ACTIVITY_DIR = BASE_DIR / "activity"

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOG_MAX_BYTES = 1_000_000


# ─── Safe print (no crash when --noconsole) ──────────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("autoclock")


def setup_logging(level=logging.INFO, log_file=None):
    """Attach the file + console handlers. Called once by the runner."""
    log_file = Path(log_file) if log_file else LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)

    try:
        if log_file.exists() and log_file.stat().st_size > _LOG_MAX_BYTES:
            log_file.write_text("")
    except OSError:
        pass

    log.setLevel(level)
    if log.handlers:
        return log

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    log.addHandler(console_handler)
    return log


# ─── Config Management ──────────────────────────────────────────

def load_config(path=None):
    """Load config from disk, with environment overrides. Returns dict or None."""
    path = Path(path) if path else CONFIG_FILE
    config = None
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
    if not isinstance(config, dict):
        config = None
    return apply_env_overrides(config)


def apply_env_overrides(config):
    overrides = {
        "apiBaseUrl": os.environ.get("AUTOCLOCK_API_URL"),
        "authBaseUrl": os.environ.get("AUTOCLOCK_AUTH_URL"),
        "clientId": os.environ.get("AUTOCLOCK_CLIENT_ID"),
    }
    overrides = {k: v for k, v in overrides.items() if v}
    if not overrides:
        return config
    merged = dict(config or {})
    merged.update(overrides)
    return merged


def save_config(config, path=None):
    """Save config dict to disk."""
    path = Path(path) if path else CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)

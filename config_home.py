# config_home.py: DevPilot home directory and well-known paths
from __future__ import annotations

import os
from pathlib import Path
from loguru import logger

# ---------- App home ----------

def _resolve_home() -> Path:
    env = os.getenv("DEVPILOT_HOME", "").strip()
    base = Path(os.path.expanduser(env)) if env else (Path.home() / ".devpilot")
    try:
        base.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        logger.error("Failed to create DevPilot home at '{}': {}", str(base), e)
        base = Path.cwd() / ".devpilot"
        base.mkdir(parents=True, exist_ok=True)
    return base

APP_DIR: Path = _resolve_home()
LOGS_DIR: Path = APP_DIR / "logs"
try:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
except Exception as e:
    logger.warning("Could not create '{}': {}", str(LOGS_DIR), e)

# Single-file, app-scoped artifacts
ENV_PATH: Path = APP_DIR / ".env"
CONFIG_JSON_PATH: Path = APP_DIR / "config.json"
LOG_FILE_PATH: Path = LOGS_DIR / "devpilot.log"

__all__ = [
    "APP_DIR",
    "LOGS_DIR",
    "ENV_PATH",
    "CONFIG_JSON_PATH",
    "LOG_FILE_PATH",
]

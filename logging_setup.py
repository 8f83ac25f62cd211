# logging_setup.py
from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Optional, Union
from loguru import logger

# -----------------------------
# Globals
# -----------------------------
_SINK_IDS: list[int] = []
_LAST_CFG = {
    "console": False,
    "console_level": "WARNING",
    "log_file": None,
    "rotation": "5 MB",
    "retention": 10,  # keep last 10 files by default
    "enqueue": False,
    "backtrace": False,
    "diagnose": False,
}
_DEFAULT_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "{level:<7} | "
    "{name}:{line} | "
    "{message}"
)

_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


# -----------------------------
# Helpers
# -----------------------------
def _resolve_level(level: Optional[str]) -> str:
    """Normalize level: prefer explicit arg, else env DEVPILOT_LOG_LEVEL, else INFO."""
    val = (level or os.getenv("DEVPILOT_LOG_LEVEL") or "INFO").strip().upper()
    if val not in _VALID_LEVELS:
        aliases = {"WARN": "WARNING"}
        val = aliases.get(val, val)
    return val if val in _VALID_LEVELS else "INFO"


def _normalize_retention(value: Union[int, str]) -> Union[int, str]:
    """
    Accept:
      - int  → number of files
      - "10 files" → coerced to 10
      - duration strings (e.g., "7 days") → passed through to Loguru
    """
    if isinstance(value, str):
        m = re.match(r"^(\d+)\s*files?$", value.strip().lower())
        if m:
            return int(m.group(1))
    return value


def _coerce_log_file(path_like: Optional[Union[str, Path]]) -> str:
    """Default to ~/.devpilot/logs/devpilot.log; a directory gets 'devpilot.log' inside."""
    if path_like is None:
        from config_home import LOG_FILE_PATH
        log_path = LOG_FILE_PATH
    else:
        log_path = Path(path_like)
        if log_path.suffix == "":
            log_path = log_path / "devpilot.log"

    log_path.parent.mkdir(parents=True, exist_ok=True)
    return str(log_path)


def _remove_existing_sinks():
    global _SINK_IDS
    try:
        for sid in _SINK_IDS:
            logger.remove(sid)
    finally:
        _SINK_IDS = []


def _reconfigure(level: str):
    """(Re)create console & file sinks based on _LAST_CFG."""
    global _SINK_IDS
    _remove_existing_sinks()

    # stderr also carries the chat, so outside verbose mode it only gets warnings
    console_level = level if _LAST_CFG.get("console") else _LAST_CFG.get("console_level", "WARNING")
    _SINK_IDS.append(
        logger.add(
            sys.stderr,
            level=console_level,
            format=_DEFAULT_FMT,
            enqueue=_LAST_CFG.get("enqueue", False),
            backtrace=_LAST_CFG.get("backtrace", False),
            diagnose=_LAST_CFG.get("diagnose", False),
        )
    )

    _SINK_IDS.append(
        logger.add(
            _coerce_log_file(_LAST_CFG.get("log_file")),
            level=level,
            format=_DEFAULT_FMT,
            rotation=_LAST_CFG.get("rotation", "5 MB"),
            retention=_normalize_retention(_LAST_CFG.get("retention", 10)),
            encoding="utf-8",
            enqueue=_LAST_CFG.get("enqueue", False),
            backtrace=_LAST_CFG.get("backtrace", False),
            diagnose=_LAST_CFG.get("diagnose", False),
        )
    )


# -----------------------------
# Public API
# -----------------------------
def configure_logging(
    level: Optional[str] = None,
    *,
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    rotation: str = "5 MB",
    retention: Union[int, str] = 10,
    enqueue: bool = False,
    backtrace: bool = False,
    diagnose: bool = False,
) -> None:
    """
    Configure Loguru once at app start.

    Args:
        level: "DEBUG"/"INFO"/"WARNING"/... (env fallback: DEVPILOT_LOG_LEVEL)
        verbose: mirror the full log on stderr at DEBUG (otherwise warnings only)
        log_file: file path or directory (directory -> writes 'devpilot.log' inside)
        rotation: Loguru rotation policy (e.g., "5 MB", "1 day")
        retention: number of files (int) or duration string (e.g., "7 days")
        enqueue: use multiprocessing-safe queue
        backtrace/diagnose: enable Loguru's rich tracebacks (dev only)
    """
    global _SINK_IDS
    # Loguru ships with a DEBUG stderr handler; drop it so our sinks are the only ones
    logger.remove()
    _SINK_IDS = []
    _LAST_CFG.update(
        dict(
            console=verbose,
            log_file=log_file,
            rotation=rotation,
            retention=retention,
            enqueue=enqueue,
            backtrace=backtrace,
            diagnose=diagnose,
        )
    )
    _reconfigure("DEBUG" if verbose else _resolve_level(level))


def current_config() -> dict:
    """Peek at the active base config (without dynamic sink IDs)."""
    return {
        **_LAST_CFG,
        "level": _resolve_level(None),
        "sinks": len(_SINK_IDS),
        "log_file": _coerce_log_file(_LAST_CFG.get("log_file")),
    }

# models.py
import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Dict, Any

from loguru import logger

from errors import FatalStartupError

DEFAULT_MODEL = "models/gemini-2.0-flash-lite"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
API_KEY_ENV = "GEMINI_API_KEY"

# env var → (field, type)
_ENV_OVERRIDES = {
    "DEVPILOT_MODEL": ("model", str),
    "DEVPILOT_MAX_TOKENS": ("max_tokens", int),
    "DEVPILOT_BASE_URL": ("base_url", str),
}


@dataclass(frozen=True)
class ModelConfig:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    verbose: bool = False
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 120.0
    stream_timeout: float = 60.0
    stream: bool = False
    window_size: int = 11
    max_tool_attempts: int = 3
    greeting: str = "hi"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in d if k not in known)
        if unknown:
            logger.warning("ModelConfig.from_dict: ignoring unknown key(s) {}", unknown)
        try:
            m = cls(
                api_key=d.get("api_key"),
                model=d.get("model") or DEFAULT_MODEL,
                max_tokens=int(d.get("max_tokens", 4096)),
                verbose=bool(d.get("verbose", False)),
                base_url=(d.get("base_url") or DEFAULT_BASE_URL).rstrip("/"),
                request_timeout=float(d.get("request_timeout", 120.0)),
                stream_timeout=float(d.get("stream_timeout", 60.0)),
                stream=bool(d.get("stream", False)),
                window_size=int(d.get("window_size", 11)),
                max_tool_attempts=int(d.get("max_tool_attempts", 3)),
                greeting=str(d.get("greeting", "hi")),
            )
        except (TypeError, ValueError) as e:
            raise FatalStartupError(f"Invalid configuration value: {e}") from e
        logger.debug(
            "ModelConfig.from_dict → model='{}', max_tokens={}, base_url='{}', stream={}",
            m.model, m.max_tokens, m.base_url, m.stream,
        )
        return m

    @classmethod
    def load(cls, path: Optional[Path] = None, required: bool = False) -> "ModelConfig":
        """
        Read the JSON config file (if any) and apply environment overrides.
        `required=True` means the caller named the file explicitly, so it must exist.
        """
        data: Dict[str, Any] = {}
        if path is not None:
            cfg_path = Path(path)
            if cfg_path.exists():
                logger.info("Loading config from '{}'", str(cfg_path.resolve()))
                try:
                    data = json.loads(cfg_path.read_text(encoding="utf-8"))
                except json.JSONDecodeError as e:
                    logger.error("Failed to parse config JSON '{}': {}", str(cfg_path), e)
                    raise FatalStartupError(f"Invalid JSON in config file {cfg_path}: {e}") from e
                if not isinstance(data, dict):
                    raise FatalStartupError(f"Config file {cfg_path} must contain a JSON object")
            elif required:
                logger.error("Config not found at path='{}'", str(cfg_path.resolve()))
                raise FatalStartupError(f"Config not found at: {cfg_path.resolve()}")
            else:
                logger.debug("No config file at '{}'; using defaults", str(cfg_path))

        data = dict(data)
        if os.getenv(API_KEY_ENV):
            data["api_key"] = os.getenv(API_KEY_ENV)
        for env_key, (name, typ) in _ENV_OVERRIDES.items():
            val = os.getenv(env_key)
            if val:
                try:
                    data[name] = typ(val)
                except ValueError:
                    logger.warning("Ignoring {}={!r}: expected {}", env_key, val, typ.__name__)
        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> "ModelConfig":
        """Apply CLI flags; `None` means "flag not given"."""
        given = {k: v for k, v in overrides.items() if v is not None}
        if given:
            logger.debug("ModelConfig.with_overrides → {}", sorted(given))
        return replace(self, **given)

    def require_api_key(self) -> str:
        if not self.api_key:
            raise FatalStartupError(
                f"Gemini API key is required. Set it via --api-key flag or {API_KEY_ENV} environment variable."
            )
        return self.api_key

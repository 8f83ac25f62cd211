# =========================
# tools/registry.py
# =========================
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from errors import DuplicateToolError, ToolExecutionError, ToolNotFoundError
from logging_decorators import log_call
from tools.tool_schema import dropped_keys, normalize_args


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    fn: Callable[..., str] = field(repr=False)

    def declaration(self) -> Dict[str, Any]:
        """Gemini functionDeclaration; the schema is advertised verbatim."""
        return {"name": self.name, "description": self.description, "parameters": self.input_schema}


def resolve_path(root: Path, path: Optional[str]) -> Path:
    """Resolve a model-supplied path against the working root (absolute paths pass through)."""
    p = Path(path or ".").expanduser()
    return p if p.is_absolute() else (root / p)


def _as_tool_error(name: str, e: Exception) -> ToolExecutionError:
    if isinstance(e, ToolExecutionError):
        return e
    target = getattr(e, "filename", None) or ""
    if isinstance(e, PermissionError):
        return ToolExecutionError(f"Permission denied: {target or e}")
    if isinstance(e, NotADirectoryError):
        return ToolExecutionError(f"Path component is not a directory: {target or e}")
    if isinstance(e, IsADirectoryError):
        return ToolExecutionError(f"Path is a directory, not a file: {target or e}")
    if isinstance(e, FileNotFoundError):
        return ToolExecutionError(f"File not found: {target or e}")
    if isinstance(e, TypeError):
        # bad keyword for the tool function; the model can fix its arguments
        return ToolExecutionError(f"Invalid arguments for {name}: {e}")
    return ToolExecutionError(f"{type(e).__name__}: {e}")


class ToolRegistry:
    """
    Fixed, ordered set of tools for one session.
    The public surface:
      - list_tools() -> [Tool]       (registration order)
      - find(name) -> Tool           (ToolNotFoundError if absent)
      - invoke(name, args) -> str    (ToolExecutionError on failure)
      - function_declarations()      (Gemini `tools` payload)
    """
    def __init__(self, tools: Iterable[Tool], root: Optional[Path] = None):
        self.root = Path(root or Path.cwd()).resolve()
        registered: Dict[str, Tool] = {}
        for tool in tools:
            if tool.name in registered:
                logger.error("ToolRegistry: duplicate tool name '{}'", tool.name)
                raise DuplicateToolError(tool.name)
            registered[tool.name] = tool
            logger.debug("Registered tool '{}'", tool.name)
        self._tools: Mapping[str, Tool] = MappingProxyType(registered)
        self._invokers: Mapping[str, Callable[..., str]] = MappingProxyType(
            {name: log_call(name, slow_ms=1000)(t.fn) for name, t in registered.items()}
        )
        logger.info("ToolRegistry ready with {} tool(s) → root='{}'", len(self._tools), str(self.root))

    @classmethod
    def builtin(cls, root: Optional[Path] = None) -> "ToolRegistry":
        from tools import bash, code_search, file_editor, file_explorer, file_reader

        base = Path(root or Path.cwd()).resolve()
        return cls(
            [
                file_reader.tool(base),
                file_explorer.tool(base),
                bash.tool(base),
                file_editor.tool(base),
                code_search.tool(base),
            ],
            root=base,
        )

    # ---------------- lookup ----------------

    @property
    def tools(self) -> Mapping[str, Tool]:
        return self._tools

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def find(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ---------------- dispatch ----------------

    def invoke(self, name: str, args: Optional[Dict[str, Any]] = None) -> str:
        tool = self.find(name)
        extra = dropped_keys(args, tool.input_schema) if isinstance(args, dict) else []
        if extra:
            logger.debug("invoke '{}': dropping undeclared argument(s) {}", name, extra)
        ok, fixed, err = normalize_args(name, args, tool.input_schema)
        if not ok:
            raise ToolExecutionError(err or f"Invalid arguments for {name}")
        try:
            result = self._invokers[name](**fixed)
        except Exception as e:
            raise _as_tool_error(name, e) from e
        if not isinstance(result, str):
            result = json.dumps(result, indent=2, default=str)
        return result

    def function_declarations(self) -> List[Dict[str, Any]]:
        return [t.declaration() for t in self._tools.values()]

# tools/file_explorer.py
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from errors import ToolExecutionError
from tools.registry import Tool, resolve_path

SCHEMA = {
    "type": "object",
    "properties": {
        "path": {
            "type": "string",
            "description": "The relative path to list files from. Defaults to current directory if not provided.",
        },
        "recursive": {"type": "boolean", "description": "Whether to list files recursively. Defaults to false."},
        "max_depth": {"type": "integer", "description": "Maximum depth for recursive listing. Defaults to 2."},
    },
}


def _mtime(p: Path) -> str:
    return datetime.fromtimestamp(p.stat().st_mtime, tz=timezone.utc).isoformat()


def _rel(root: Path, p: Path) -> str:
    try:
        return str(p.relative_to(root))
    except ValueError:
        return str(p)


def list_files(root: Path, path: Optional[str] = None, recursive: bool = False, max_depth: int = 2) -> str:
    """
    JSON listing of `path`: directories first, then files, each group alphabetical.
    Hidden entries are skipped unless the requested path itself contains a dot.
    """
    target = resolve_path(root, path)
    if not target.exists():
        raise ToolExecutionError(f"Path not found: {path or '.'}")

    if not target.is_dir():
        return json.dumps([{
            "name": target.name,
            "type": "file",
            "path": _rel(root, target),
            "size": target.stat().st_size,
            "modified": _mtime(target),
        }], indent=2)

    show_hidden = "." in (path or "")
    items: List[Dict[str, Any]] = []

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.name.startswith(".") and not show_hidden:
                    continue
                full = Path(entry.path)
                try:
                    is_dir = entry.is_dir()
                    item: Dict[str, Any] = {
                        "name": entry.name,
                        "type": "directory" if is_dir else "file",
                        "path": _rel(root, full),
                        "modified": _mtime(full),
                    }
                    if entry.is_file():
                        item["size"] = entry.stat().st_size
                except OSError:
                    # unreadable entry (broken symlink, permission); skip it
                    continue
                items.append(item)
                if recursive and is_dir and depth < max_depth:
                    walk(full, depth + 1)

    walk(target, 0)
    items.sort(key=lambda it: (it["type"] != "directory", it["name"].lower()))
    logger.info("list_files: path='{}' recursive={} → {} item(s)", path or ".", recursive, len(items))
    return json.dumps(items, indent=2)


def tool(root: Path) -> Tool:
    def _list_files(path: Optional[str] = None, recursive: bool = False, max_depth: int = 2) -> str:
        return list_files(root, path=path, recursive=bool(recursive), max_depth=max_depth or 2)

    return Tool(
        name="list_files",
        description="List files and directories in a given path. Use this to explore the project structure.",
        input_schema=SCHEMA,
        fn=_list_files,
    )

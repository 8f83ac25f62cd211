# tools/file_reader.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from errors import ToolExecutionError
from tools.registry import Tool, resolve_path

SCHEMA = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "The relative path to the file to read"},
        "start_line": {"type": "integer", "description": "Optional: Start reading from this line number (1-indexed)"},
        "end_line": {"type": "integer", "description": "Optional: Stop reading at this line number (1-indexed)"},
    },
    "required": ["path"],
}


def read_file(root: Path, path: str, start_line: Optional[int] = None, end_line: Optional[int] = None) -> str:
    p = resolve_path(root, path)
    if not p.exists():
        raise ToolExecutionError(f"File not found: {path}")
    if not p.is_file():
        raise ToolExecutionError(f"Path is not a file: {path}")

    text = p.read_text(encoding="utf-8", errors="replace")
    if not start_line and not end_line:
        logger.info("read_file: '{}' chars={}", path, len(text))
        return text

    lines = text.split("\n")
    start = (start_line or 1) - 1
    end = end_line or len(lines)
    if start < 0 or start >= len(lines) or end < start or end > len(lines):
        raise ToolExecutionError(
            f"Invalid line range: {start_line}-{end_line} for file with {len(lines)} lines"
        )
    logger.info("read_file: '{}' lines {}-{}", path, start + 1, end)
    return "\n".join(lines[start:end])


def tool(root: Path) -> Tool:
    def _read_file(path: str, start_line: Optional[int] = None, end_line: Optional[int] = None) -> str:
        return read_file(root, path, start_line=start_line, end_line=end_line)

    return Tool(
        name="read_file",
        description="Read the contents of a file. Use this when you need to see what's inside a file.",
        input_schema=SCHEMA,
        fn=_read_file,
    )

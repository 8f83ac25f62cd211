# tools/code_search.py
from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from errors import ToolExecutionError
from tools.registry import Tool, resolve_path

SEARCH_TIMEOUT_S = 30
_SKIP_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__", "dist", "build"}
_RG_LINE = re.compile(r"^(.+?):(\d+):(.*)$")

SCHEMA = {
    "type": "object",
    "properties": {
        "pattern": {"type": "string", "description": "The search pattern or regex to look for"},
        "path": {
            "type": "string",
            "description": "Optional path to search in (file or directory). Defaults to current directory.",
        },
        "file_type": {
            "type": "string",
            "description": 'Optional file extension to limit search (e.g., "js", "ts", "py", "go")',
        },
        "case_sensitive": {
            "type": "boolean",
            "description": "Whether the search should be case sensitive. Defaults to false.",
        },
        "max_results": {"type": "integer", "description": "Maximum number of results to return. Defaults to 50."},
    },
    "required": ["pattern"],
}

Hit = Tuple[str, int, str]


def _rel(root: Path, p: Path) -> str:
    try:
        return str(p.resolve().relative_to(root))
    except ValueError:
        return str(p)


def _search_rg(rg: str, root: Path, pattern: str, target: Path, file_type: Optional[str], case_sensitive: bool) -> List[Hit]:
    cmd = [rg, "--line-number", "--with-filename", "--color=never", "--no-heading"]
    if not case_sensitive:
        cmd.append("--ignore-case")
    if file_type:
        cmd += ["--type", file_type]
    cmd += ["--regexp", pattern, str(target)]
    try:
        proc = subprocess.run(cmd, cwd=root, capture_output=True, text=True, timeout=SEARCH_TIMEOUT_S)
    except subprocess.TimeoutExpired as e:
        raise ToolExecutionError(f"Search timed out after {SEARCH_TIMEOUT_S} seconds: {pattern}") from e
    # rg: 0 = matches, 1 = no matches, 2 = error
    if proc.returncode == 1:
        return []
    if proc.returncode != 0:
        raise ToolExecutionError(f"Search failed: {proc.stderr.strip() or 'exit code ' + str(proc.returncode)}")

    hits: List[Hit] = []
    for line in proc.stdout.splitlines():
        m = _RG_LINE.match(line)
        if m:
            hits.append((_rel(root, Path(m.group(1))), int(m.group(2)), m.group(3).strip()))
    return hits


def _search_python(root: Path, pattern: str, target: Path, file_type: Optional[str], case_sensitive: bool) -> List[Hit]:
    try:
        rx = re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise ToolExecutionError(f"Search failed: invalid pattern {pattern!r}: {e}") from e
    suffix = f".{file_type.lstrip('.')}" if file_type else None

    if target.is_file():
        files = [target]
    else:
        files = sorted(
            p for p in target.rglob("*")
            if p.is_file() and not any(part in _SKIP_DIRS for part in p.relative_to(target).parts)
        )
    hits: List[Hit] = []
    for path in files:
        if suffix and path.suffix != suffix:
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        for i, line in enumerate(text.splitlines(), 1):
            if rx.search(line):
                hits.append((_rel(root, path), i, line.strip()))
    return hits


def code_search(
    root: Path,
    pattern: str,
    path: Optional[str] = None,
    file_type: Optional[str] = None,
    case_sensitive: bool = False,
    max_results: int = 50,
) -> str:
    if not pattern or not pattern.strip():
        raise ToolExecutionError("Search pattern cannot be empty", retryable=False)
    target = resolve_path(root, path)
    if not target.exists():
        raise ToolExecutionError(f"Path not found: {path}")

    rg = shutil.which("rg")
    if rg:
        hits = _search_rg(rg, root, pattern, target, file_type, case_sensitive)
    else:
        logger.debug("code_search: ripgrep not installed; scanning files in Python")
        hits = _search_python(root, pattern, target, file_type, case_sensitive)

    logger.info("code_search: '{}' hits={} path='{}' engine={}", pattern, len(hits), path or ".", "rg" if rg else "python")
    if not hits:
        return f"No matches found for pattern: {pattern}"

    out = [f"Found {len(hits)} matches for pattern: {pattern}", ""]
    for file, line, text in hits[:max_results]:
        out.append(f"{file}:{line}")
        out.append(f"  {text}")
        out.append("")
    if len(hits) > max_results:
        out.append(f"... and {len(hits) - max_results} more matches")
    return "\n".join(out).strip()


def tool(root: Path) -> Tool:
    def _code_search(
        pattern: str,
        path: Optional[str] = None,
        file_type: Optional[str] = None,
        case_sensitive: bool = False,
        max_results: int = 50,
    ) -> str:
        return code_search(
            root, pattern, path=path, file_type=file_type,
            case_sensitive=bool(case_sensitive), max_results=max_results or 50,
        )

    return Tool(
        name="code_search",
        description=(
            "Search for code patterns in the project using ripgrep. "
            "Supports regex patterns, file type filtering, and case sensitivity."
        ),
        input_schema=SCHEMA,
        fn=_code_search,
    )

# tools/file_editor.py
from __future__ import annotations

from pathlib import Path

from loguru import logger

from errors import ToolExecutionError
from tools.registry import Tool, resolve_path

SCHEMA = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "The relative path to the file to edit"},
        "old_string": {
            "type": "string",
            "description": "The text to search for and replace. Must match exactly and uniquely.",
        },
        "new_string": {"type": "string", "description": "The text to replace old_string with"},
        "create_dirs": {
            "type": "boolean",
            "description": "Whether to create parent directories if they don't exist. Defaults to true.",
        },
    },
    "required": ["path", "old_string", "new_string"],
}


def edit_file(root: Path, path: str, old_string: str, new_string: str, create_dirs: bool = True) -> str:
    """
    Search-and-replace a unique snippet, or create a new file when `old_string` is empty.
    """
    if not path or not path.strip():
        raise ToolExecutionError("File path is required and cannot be empty", retryable=False)

    p = resolve_path(root, path)
    if create_dirs and not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)

    if p.is_dir():
        raise ToolExecutionError(f"Cannot edit directory as file: {path}")

    if not p.exists():
        if old_string != "":
            raise ToolExecutionError(f"File not found: {path}. For new files, old_string must be empty")
        p.write_text(new_string, encoding="utf-8")
        logger.info("edit_file: created '{}' chars={}", path, len(new_string))
        return f'Successfully created file "{path}" ({len(new_string)} characters, {p.stat().st_size} bytes)'

    if old_string == "":
        raise ToolExecutionError(
            "Cannot replace empty string in existing file. Specify the exact text to replace."
        )

    content = p.read_text(encoding="utf-8")
    count = content.count(old_string)
    if count == 0:
        raise ToolExecutionError(
            f'The text "{old_string}" was not found in the file. '
            "Please check the exact text and try reading the file first to see its contents."
        )
    if count > 1:
        lines = [str(i) for i, line in enumerate(content.split("\n"), 1) if old_string in line]
        where = ", ".join(f"line {n}" for n in lines) if lines else "multiple lines"
        raise ToolExecutionError(
            f'The text "{old_string}" appears {count} times in the file at {where}. '
            "Please provide more context (include surrounding lines) to make the replacement unique."
        )

    new_content = content.replace(old_string, new_string, 1)
    p.write_text(new_content, encoding="utf-8")
    logger.info("edit_file: edited '{}' ({} → {} chars)", path, len(content), len(new_content))
    return f'Successfully edited file "{path}" ({len(new_content)} characters, {p.stat().st_size} bytes)'


def tool(root: Path) -> Tool:
    def _edit_file(path: str, old_string: str, new_string: str, create_dirs: bool = True) -> str:
        return edit_file(root, path, old_string, new_string, create_dirs=create_dirs)

    return Tool(
        name="edit_file",
        description=(
            "Make edits to text files using search and replace operations. Supports creating new files "
            "and modifying existing ones. For new files, use empty old_string. For existing files, "
            "old_string must be unique and non-empty."
        ),
        input_schema=SCHEMA,
        fn=_edit_file,
    )

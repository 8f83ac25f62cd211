# tools/bash.py
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger

from errors import ToolExecutionError
from tools.registry import Tool, resolve_path

DEFAULT_TIMEOUT_MS = 300_000
# grace period between SIGTERM and SIGKILL for a timed-out command
_TERMINATE_GRACE_S = 5

_DANGEROUS = (
    "rm -rf /",
    "rm -rf /*",
    "dd if=",
    "mkfs",
    "fdisk",
    "format",
    "del /",
    "deltree",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "init 0",
    "init 6",
)

SCHEMA = {
    "type": "object",
    "properties": {
        "command": {"type": "string", "description": "The bash command to execute"},
        "cwd": {
            "type": "string",
            "description": "Optional working directory for the command. Defaults to current directory.",
        },
        "timeout": {
            "type": "number",
            "description": "Optional timeout in milliseconds. Defaults to 300000 (5 minutes).",
        },
        "background": {
            "type": "boolean",
            "description": "Whether to run the command in background. Defaults to false.",
        },
        "non_interactive": {
            "type": "boolean",
            "description": "Whether to run in non-interactive mode (auto-answer prompts). Defaults to true.",
        },
    },
    "required": ["command"],
}


def check_command(command: str) -> None:
    """Reject empty and obviously destructive commands before anything runs."""
    if not command or not command.strip():
        raise ToolExecutionError("Command cannot be empty", retryable=False)
    normalized = command.lower().strip()
    for dangerous in _DANGEROUS:
        if dangerous in normalized:
            raise ToolExecutionError(
                f"Command contains potentially dangerous operation: {dangerous}", retryable=False
            )
    if "rm -rf" in normalized and ("~" in normalized or "/home" in normalized):
        raise ToolExecutionError(
            "Command contains potentially destructive rm -rf operation on user directories", retryable=False
        )


def make_non_interactive(command: str) -> str:
    """Add the flags that stop common installers from prompting."""
    cmd = command.strip()
    has_yes = "--yes" in cmd or "-y" in cmd

    if any(k in cmd for k in ("npx create-next-app", "npm create next-app", "npx create-react-app",
                              "npm install", "npm i", "yarn create", "yarn add")):
        return cmd if has_yes else f"{cmd} --yes"
    if "git clone" in cmd and "--quiet" not in cmd:
        return f"{cmd} --quiet"
    if "apt install" in cmd or "apt-get install" in cmd:
        return cmd if "-y" in cmd else f"{cmd} -y"
    if "brew install" in cmd:
        return f"HOMEBREW_NO_INSTALL_CLEANUP=1 {cmd}"
    return cmd


def _env() -> dict:
    env = dict(os.environ)
    env.update({"DEBIAN_FRONTEND": "noninteractive", "CI": "true", "FORCE_COLOR": "0"})
    return env


def _format_output(stdout: str, stderr: str) -> str:
    parts = []
    if stdout:
        parts.append(f"STDOUT:\n{stdout}")
    if stderr:
        parts.append(f"STDERR:\n{stderr}")
    return "\n".join(parts) or "Command executed successfully (no output)"


def run_command(
    root: Path,
    command: str,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    background: bool = False,
    non_interactive: bool = True,
) -> str:
    check_command(command)
    final = make_non_interactive(command) if non_interactive else command
    workdir = resolve_path(root, cwd) if cwd else root
    if not workdir.is_dir():
        raise ToolExecutionError(f"Working directory not found or not a directory: {cwd}")
    timeout_ms = int(timeout or DEFAULT_TIMEOUT_MS)

    info = f"Executing: {final}"
    if final != command:
        info += f"\n   (Modified from: {command})"
    if cwd:
        info += f"\n   Working directory: {workdir}"

    if background:
        # detached from our session; nobody waits on it afterwards
        child = subprocess.Popen(
            ["bash", "-c", final], cwd=workdir, env=_env(),
            stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        logger.info("bash: started background pid={} → {}", child.pid, final)
        return f"{info}\n\nResult: Command started in background with PID: {child.pid}"

    try:
        child = subprocess.Popen(
            ["bash", "-c", final], cwd=workdir, env=_env(),
            stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
        )
    except FileNotFoundError as e:
        raise ToolExecutionError("Command not found: bash") from e

    try:
        stdout, stderr = child.communicate(timeout=timeout_ms / 1000.0)
    except subprocess.TimeoutExpired:
        child.terminate()
        try:
            child.communicate(timeout=_TERMINATE_GRACE_S)
        except subprocess.TimeoutExpired:
            child.kill()
            child.communicate()
        logger.warning("bash: timed out after {}ms → {}", timeout_ms, final)
        raise ToolExecutionError(f"Command timed out after {timeout_ms}ms: {final}")

    output = _format_output(stdout, stderr)
    logger.info("bash: exit={} stdout_len={} stderr_len={}", child.returncode, len(stdout), len(stderr))
    if child.returncode == 127 and "command not found" in stderr:
        raise ToolExecutionError(f"Command not found: {final.split(' ')[0]}\n{stderr.strip()}")
    if child.returncode != 0:
        return f"{info}\n\nCommand failed with exit code {child.returncode}\n\nOutput:\n{output}"
    return f"{info}\n\nResult:\n{output}"


def tool(root: Path) -> Tool:
    def _bash(
        command: str,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        background: bool = False,
        non_interactive: bool = True,
    ) -> str:
        return run_command(
            root, command, cwd=cwd, timeout=timeout,
            background=bool(background), non_interactive=non_interactive is not False,
        )

    return Tool(
        name="bash",
        description=(
            "Execute bash commands and return their output. Use this for running shell commands, "
            "installing packages, or performing system operations."
        ),
        input_schema=SCHEMA,
        fn=_bash,
    )

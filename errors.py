# errors.py
from __future__ import annotations

from typing import Optional


class DevPilotError(Exception):
    """Base class for every error raised on purpose by devpilot."""


class TransportError(DevPilotError):
    """Model endpoint failure: network error, HTTP error or malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ToolExecutionError(DevPilotError):
    """
    A tool could not complete. `retryable=False` tells the agent loop that
    trying the same call again cannot succeed (e.g. a blocked command).
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class ToolNotFoundError(ToolExecutionError):
    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class DuplicateToolError(DevPilotError, ValueError):
    def __init__(self, name: str):
        super().__init__(f"Duplicate tool name: {name}")
        self.name = name


class InputError(DevPilotError):
    """Interactive input that cannot be turned into a user message."""


class FatalStartupError(DevPilotError):
    """Configuration problem detected before the conversation starts."""

# messages.py
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
ROLES = (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM)

# system message + the 10 most recent messages
DEFAULT_WINDOW_SIZE = 11


def new_tool_call_id() -> str:
    """Millisecond timestamp plus 48 random bits, e.g. `call_1718000000000_9f2c1a7b3e04`."""
    return f"call_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, name: str, arguments: Optional[Dict[str, Any]] = None) -> "ToolCall":
        return cls(id=new_tool_call_id(), name=name, arguments=dict(arguments or {}))


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class Message:
    role: str
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        # accept lists from callers but store tuples so the message stays immutable
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls or ()))
        object.__setattr__(self, "tool_results", tuple(self.tool_results or ()))

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=ROLE_SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ROLE_USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: Sequence[ToolCall] = (),
        tool_results: Sequence[ToolResult] = (),
    ) -> "Message":
        return cls(role=ROLE_ASSISTANT, content=content, tool_calls=tuple(tool_calls), tool_results=tuple(tool_results))


@dataclass
class ToolExecution:
    """One entry of the agent's tool-execution trace."""
    tool_call: ToolCall
    attempts: int = 0
    result: Optional[ToolResult] = None
    hints: List[str] = field(default_factory=list)
    corrections: List[ToolCall] = field(default_factory=list)


def bounded_window(transcript: Sequence[Message], max_messages: int = DEFAULT_WINDOW_SIZE) -> List[Message]:
    """
    The part of the transcript actually sent to the model.
    Longer transcripts keep transcript[0] (the system message) plus the most
    recent `max_messages - 1` messages; everything in between is dropped.
    """
    if len(transcript) <= max_messages:
        return list(transcript)
    return [transcript[0], *transcript[len(transcript) - (max_messages - 1):]]


class Conversation:
    """
    Append-only message transcript. transcript[0] is always the system message;
    `clear()` is the only operation that removes messages.
    """

    def __init__(self, system_prompt: str):
        self._system_prompt = system_prompt
        self._messages: List[Message] = [Message.system(system_prompt)]

    def append(self, message: Message) -> None:
        if message.role == ROLE_SYSTEM:
            raise ValueError("The system message is fixed at the start of the conversation")
        self._check_results_have_calls(message)
        self._messages.append(message)
        logger.debug(
            "Conversation.append → role={} content_len={} tool_calls={} tool_results={} (total={})",
            message.role, len(message.content), len(message.tool_calls), len(message.tool_results), len(self._messages),
        )

    def window(self, max_messages: int = DEFAULT_WINDOW_SIZE) -> List[Message]:
        return bounded_window(self._messages, max_messages)

    def clear(self) -> None:
        self._messages = [Message.system(self._system_prompt)]
        logger.info("Conversation cleared")

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def system_message(self) -> Message:
        return self._messages[0]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index):
        return self._messages[index]

    def _check_results_have_calls(self, message: Message) -> None:
        if not message.tool_results:
            return
        issued = {tc.id for m in self._messages for tc in m.tool_calls}
        orphans = [r.tool_call_id for r in message.tool_results if r.tool_call_id not in issued]
        if orphans:
            raise ValueError(f"Tool results reference unknown tool call id(s): {', '.join(orphans)}")

# agent.py
from __future__ import annotations

import json
import sys
import threading
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from errors import ToolExecutionError, TransportError
from messages import Conversation, Message, ToolCall, ToolExecution, ToolResult
from models import ModelConfig
from tools.registry import ToolRegistry

BASE_SYSTEM_PROMPT = """You are DevPilot, an expert coding assistant and software engineering companion.

## Working style
- ALWAYS use tools to gather information before making changes.
- Start by exploring the project structure with list_files, then read the relevant files before editing them.
- Search for existing patterns with code_search before adding new functionality.
- Validate what you changed by running commands and checking their output.
- Never assume file contents or project layout; look first.

## Editing rules
- edit_file replaces exactly one occurrence of old_string. Include enough surrounding context to make it unique.
- To create a new file, call edit_file with an empty old_string.
- Keep changes focused and explain briefly what you did and why."""

CANCELLED_RESULT = "Cancelled before execution"

# (tool or None for any tool, needles, hint); first match wins, so narrower needles come first
_HINTS: Tuple[Tuple[Optional[str], Tuple[str, ...], str], ...] = (
    ("code_search", ("no matches found",),
     "No matches found for the search pattern. Try a different pattern or check the file type."),
    ("edit_file", ("was not found in the file", "old_str not found"),
     "The text to replace was not found. Check the exact text and try reading the file first."),
    ("edit_file", ("appears", "found multiple times"),
     "The text appears multiple times. Provide more context to make it unique."),
    (None, ("command not found",),
     "The command is not available. Check if the required tool is installed."),
    (None, ("file not found", "no such file", "not found"),
     "The file path may be incorrect. Try using list_files first to see available files."),
    (None, ("permission denied", "access denied"),
     "Permission denied. Check file permissions or try a different path."),
    (None, ("not a directory",),
     "The specified path is not a directory. Use list_files to check the path type."),
)


def error_hint(error: str, tool_name: str) -> Optional[str]:
    """Suggestion for the model after a failed tool call, or None when nothing applies."""
    text = (error or "").lower()
    for scope, needles, hint in _HINTS:
        if scope is not None and scope != tool_name:
            continue
        if any(n in text for n in needles):
            return hint
    return None


class TurnState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class Agent:
    """
    Tool-calling conversation loop.

    One user turn: append the user message, send the bounded window, append the
    reply; while the reply carries tool calls, execute them in order (with
    retries and self-correction hints), append the results and ask again.
    """

    def __init__(
        self,
        adapter,
        registry: ToolRegistry,
        config: Optional[ModelConfig] = None,
        echo: Callable[[str], None] = print,
        on_text: Optional[Callable[[str], None]] = None,
    ):
        self.adapter = adapter
        self.registry = registry
        self.config = config or getattr(adapter, "config", None) or ModelConfig()
        self.echo = echo
        # streamed text deltas, written without newlines
        self.on_text = on_text or _write_stdout
        self.state = TurnState.DONE
        self._trace: List[ToolExecution] = []
        self._conversation = Conversation(self.system_prompt())
        logger.info(
            "Agent.__init__ → model='{}' tools={} stream={} window={} max_attempts={}",
            self.config.model, self.registry.names(), self.config.stream,
            self.config.window_size, self.config.max_tool_attempts,
        )

    # --------------------------- Prompt ---------------------------

    def system_prompt(self) -> str:
        names = ", ".join(self.registry.names())
        prompt = f"{BASE_SYSTEM_PROMPT}\n\n## Available Tools\nYou have access to the following tools: {names}"
        logger.debug("system_prompt built (len={})", len(prompt))
        return prompt

    # --------------------------- Public API ---------------------------

    @property
    def conversation(self) -> List[Message]:
        return self._conversation.messages

    @property
    def trace(self) -> List[ToolExecution]:
        return list(self._trace)

    def clear_conversation(self) -> None:
        self._conversation.clear()
        self._trace.clear()

    def send_message(self, text: str) -> Message:
        """Single round trip: append the user text and the model's reply; tool calls are not executed."""
        self._conversation.append(Message.user(text))
        reply = self._call_model()
        self._conversation.append(reply)
        return reply

    def process_message(self, text: str, cancel: Optional[threading.Event] = None) -> Optional[Message]:
        """
        Run one full user turn and return the final assistant message
        (None when the turn was cancelled). Exceptions propagate to the caller;
        whatever was appended before the failure stays in the transcript.
        """
        logger.info("Agent.process_message → '{}...'", (text or "")[:200])
        self._conversation.append(Message.user(text))
        hop = 0
        try:
            while True:
                if self._cancelled(cancel):
                    return None
                hop += 1
                self.state = TurnState.AWAITING_MODEL
                reply = self._call_model()
                self._conversation.append(reply)
                if reply.content and not self.config.stream:
                    self.echo(f"DevPilot: {reply.content}")

                if not reply.has_tool_calls:
                    logger.info("process_message ✓ done after {} model call(s)", hop)
                    return reply

                self.state = TurnState.EXECUTING_TOOLS
                logger.debug("hop {}: executing {} tool call(s)", hop, len(reply.tool_calls))
                results = self._execute_all(reply.tool_calls, cancel)
                self._conversation.append(Message.assistant(content="", tool_results=results))
                if self._cancelled(cancel):
                    return None
        finally:
            self.state = TurnState.DONE

    # --------------------------- Model calls ---------------------------

    def _call_model(self, transcript: Optional[Sequence[Message]] = None) -> Message:
        window = list(transcript) if transcript is not None else self._conversation.window(self.config.window_size)
        tools = self.registry.list_tools()
        if not self.config.stream:
            return self.adapter.send(window, tools)

        emit = self.on_text
        shown = 0
        last: Optional[Message] = None
        for partial in self.adapter.send_stream(window, tools):
            last = partial
            if len(partial.content) > shown:
                if shown == 0:
                    emit("DevPilot: ")
                emit(partial.content[shown:])
                shown = len(partial.content)
        if shown:
            emit("\n")
        return last if last is not None else Message.assistant()

    # --------------------------- Tool execution ---------------------------

    def _execute_all(self, calls: Sequence[ToolCall], cancel: Optional[threading.Event]) -> List[ToolResult]:
        """One result per call, in call order; calls skipped after a cancel get an error result."""
        results: List[ToolResult] = []
        for tc in calls:
            if self._cancelled(cancel):
                results.append(ToolResult(tool_call_id=tc.id, content=CANCELLED_RESULT, is_error=True))
                continue
            results.append(self._execute_tool_call(tc))
        return results

    def _execute_tool_call(self, tc: ToolCall) -> ToolResult:
        record = ToolExecution(tool_call=tc)
        self._trace.append(record)
        max_attempts = max(1, int(self.config.max_tool_attempts))
        attempts = 0
        last_error: Optional[ToolExecutionError] = None

        self.echo(f"\n🔧 Tool: {tc.name}")
        self.echo(f"Args: {json.dumps(tc.arguments, indent=2, default=str)}")

        while attempts < max_attempts:
            attempts += 1
            record.attempts = attempts
            try:
                content = self.registry.invoke(tc.name, tc.arguments)
            except ToolExecutionError as e:
                last_error = e
                logger.warning("✗ tool '{}' attempt {}/{} failed: {}", tc.name, attempts, max_attempts, e.message)
                if not e.retryable:
                    logger.info("tool '{}' error is not retryable; giving up", tc.name)
                    break
                if attempts < max_attempts:
                    self._self_correct(tc, e, record)
                continue

            result = ToolResult(tool_call_id=tc.id, content=content)
            record.result = result
            logger.info("✓ tool '{}' succeeded on attempt {}", tc.name, attempts)
            self.echo(f"Result: {content}")
            return result

        noun = "attempt" if attempts == 1 else "attempts"
        message = last_error.message if last_error else "unknown error"
        result = ToolResult(tool_call_id=tc.id, content=f"Error after {attempts} {noun}: {message}", is_error=True)
        record.result = result
        logger.info("tool '{}' failed after {} {}: {}", tc.name, attempts, noun, message)
        self.echo(f"❌ Tool Error (final): {message}")
        return result

    def _self_correct(self, tc: ToolCall, error: ToolExecutionError, record: ToolExecution) -> None:
        """
        Tell the model what went wrong and ask once for a corrected call.
        Suggested calls are shown and traced only; the original call is retried as is.
        """
        hint = error_hint(error.message, tc.name)
        if hint is None:
            return
        record.hints.append(hint)
        self._conversation.append(Message.assistant(content=f"Tool execution failed: {error.message}. {hint}"))
        logger.debug("self-correction hint for '{}': {}", tc.name, hint)

        try:
            correction = self.adapter.send(self._conversation.messages, self.registry.list_tools())
        except TransportError as e:
            logger.warning("self-correction request for '{}' failed: {}", tc.name, e)
            return
        for suggested in correction.tool_calls:
            record.corrections.append(suggested)
            self.echo(f"🔄 Retrying with correction: {json.dumps(suggested.arguments, default=str)}")
            logger.info("correction suggested for '{}' → '{}' {}", tc.name, suggested.name, suggested.arguments)

    # --------------------------- Helpers ---------------------------

    @staticmethod
    def _cancelled(cancel: Optional[threading.Event]) -> bool:
        if cancel is not None and cancel.is_set():
            logger.info("turn cancelled")
            return True
        return False


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()

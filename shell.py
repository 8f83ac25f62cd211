# shell.py
from __future__ import annotations

import signal
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, TextIO

from loguru import logger

from errors import DevPilotError, InputError

BANNER = r"""
╔══════════════════════════════════════════════════════════════════════════════╗
║    ██████╗ ███████╗██╗   ██╗██████╗ ██╗     ██╗ ██████╗ ████████╗            ║
║    ██╔══██╗██╔════╝██║   ██║██╔══██╗██║     ██║██╔═══██╗╚══██╔══╝            ║
║    ██║  ██║█████╗  ██║   ██║██████╔╝██║     ██║██║   ██║   ██║               ║
║    ██║  ██║██╔══╝  ╚██╗ ██╔╝██╔═══╝ ██║     ██║██║   ██║   ██║               ║
║    ██████╔╝███████╗ ╚████╔╝ ██║     ███████╗██║╚██████╔╝   ██║               ║
║    ╚═════╝ ╚══════╝  ╚═══╝  ╚═╝     ╚══════╝╚═╝ ╚═════╝    ╚═╝               ║
║                                 DevPilot AI                                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""
RULE = "━" * 80
GOODBYE = "\n👋 Thanks for using DevPilot AI!"
EXIT_WORDS = ("exit", "quit")
TTY_PATH = "/dev/tty"


@dataclass
class SessionState:
    """Per-session flags shared between the input loop, the agent and signal handlers."""
    cancel: threading.Event = field(default_factory=threading.Event)
    should_exit: bool = False
    said_goodbye: bool = False
    in_turn: bool = False
    turns: int = 0


class InteractiveShell:
    """
    Line-oriented front end for an Agent.
      - piped stdin: every non-empty line is one turn, then the terminal takes over
      - terminal stdin: a greeting turn first, then `You: ` prompts until exit/quit/EOF
    """

    def __init__(
        self,
        agent,
        greeting: str = "hi",
        stdin: Optional[TextIO] = None,
        echo: Callable[[str], None] = print,
        tty_opener: Optional[Callable[[], TextIO]] = None,
    ):
        self.agent = agent
        self.greeting = greeting
        self.stdin = stdin if stdin is not None else sys.stdin
        self.echo = echo
        self._open_tty = tty_opener or _open_dev_tty
        self.state = SessionState()

    # ---------------- lifecycle ----------------

    def install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("install_signal_handlers: not on the main thread; skipping")
            return
        signal.signal(signal.SIGINT, self._on_signal)
        signal.signal(signal.SIGTERM, self._on_signal)

    def _on_signal(self, signum, _frame) -> None:
        """
        During a turn the first signal only cancels it; the agent stops at its next
        check and the session ends once the turn returns. Otherwise exit right away.
        """
        self.state.should_exit = True
        if self.state.in_turn and not self.state.cancel.is_set():
            logger.info("signal {} received during turn {}; cancelling", signum, self.state.turns)
            self.state.cancel.set()
            return
        logger.info("signal {} received; ending session", signum)
        self.state.cancel.set()
        self.goodbye()
        raise SystemExit(0)

    def banner(self) -> None:
        self.echo(BANNER)
        self.echo("✨ Welcome to DevPilot AI! ✨")
        self.echo("🚀 Your intelligent coding companion powered by Google Gemini")
        self.echo(RULE)
        self.echo('\n🎯 Type your request below or "exit" to quit\n')

    def goodbye(self) -> None:
        if self.state.said_goodbye:
            return
        self.state.said_goodbye = True
        self.echo(GOODBYE)
        self.echo(RULE)

    def run(self) -> int:
        self.banner()
        stream: Optional[TextIO] = None
        try:
            if not _isatty(self.stdin):
                self.run_piped(self.stdin)
                if self.state.should_exit:
                    self.goodbye()
                    return 0
                stream = self._reopen_terminal()
                if stream is None:
                    self.echo("Interactive mode not available on this system after piped input.")
                    self.goodbye()
                    return 0
            elif self.greeting:
                self.echo(f"You: {self.greeting}")
                self.handle_turn(self.greeting)
                self._separator()
            self.interactive(stream)
        finally:
            if stream is not None:
                stream.close()
        return 0

    # ---------------- turns ----------------

    def handle_turn(self, text: str) -> bool:
        """Run one turn; any failure is reported and the session goes on."""
        self.state.cancel.clear()
        self.state.turns += 1
        self.state.in_turn = True
        try:
            self.agent.process_message(text, cancel=self.state.cancel)
        except DevPilotError as e:
            logger.error("turn {} failed: {}", self.state.turns, e)
            self.echo(f"[error] {e}")
            return False
        except Exception as e:
            logger.exception("turn {} crashed: {}", self.state.turns, e)
            self.echo(f"[error] {e}")
            return False
        finally:
            self.state.in_turn = False
        if self.state.cancel.is_set():
            self.echo("⏹  Turn cancelled.")
        return True

    def run_piped(self, stream: TextIO) -> int:
        """Every non-empty piped line is one turn. Returns the number of turns run."""
        count = 0
        for raw in _lines(stream):
            line = raw.strip()
            if not line:
                continue
            self.echo(f"You: {line}")
            self.handle_turn(line)
            count += 1
            if self.state.should_exit:
                break
        logger.info("piped input: {} turn(s)", count)
        return count

    def interactive(self, stream: Optional[TextIO] = None) -> None:
        while not self.state.should_exit:
            try:
                line = self._prompt(stream)
            except EOFError:
                break
            except InputError as e:
                logger.warning("ignoring unreadable input: {}", e)
                self.echo(f"[error] {e}")
                continue

            text = line.strip()
            if text.lower() in EXIT_WORDS:
                break
            if not text:
                continue
            if not self.handle_turn(text):
                self.echo('You can continue chatting or type "exit" to quit.')
            self._separator()
        self.state.should_exit = True
        self.goodbye()

    # ---------------- input ----------------

    def _prompt(self, stream: Optional[TextIO]) -> str:
        try:
            if stream is None and _isatty(self.stdin):
                return input("You: ")
            source = stream if stream is not None else self.stdin
            sys.stdout.write("You: ")
            sys.stdout.flush()
            line = source.readline()
        except UnicodeDecodeError as e:
            raise InputError(f"Could not decode input: {e.reason}") from e
        if line == "":
            raise EOFError
        return line

    def _reopen_terminal(self) -> Optional[TextIO]:
        try:
            return self._open_tty()
        except OSError as e:
            logger.warning("could not open terminal after piped input: {}", e)
            return None

    def _separator(self) -> None:
        self.echo(RULE)
        self.echo('💬 Continue the conversation or type "exit" to quit\n')


def _isatty(stream) -> bool:
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


def _lines(stream: TextIO):
    """Lines of a text stream; undecodable input ends the piped section."""
    while True:
        try:
            line = stream.readline()
        except UnicodeDecodeError as e:
            logger.warning("piped input is not valid text ({}); skipping the rest", e.reason)
            return
        if not line:
            return
        yield line


def _open_dev_tty() -> TextIO:
    return open(TTY_PATH, "r", encoding="utf-8")

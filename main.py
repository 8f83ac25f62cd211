# main.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv
from loguru import logger

from adapters.gemini import GeminiAdapter
from agent import Agent
from errors import FatalStartupError, TransportError
from logging_setup import configure_logging
from models import ModelConfig
from shell import InteractiveShell
from tools.registry import ToolRegistry

__version__ = "0.1.0"

COMMANDS = ("chat", "models")
API_KEY_URL = "https://aistudio.google.com/apikey"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-k", "--api-key", help="Gemini API key (default: $GEMINI_API_KEY)")
    common.add_argument("-m", "--model", help="Model id, e.g. models/gemini-2.0-flash-lite")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    common.add_argument("--config", help="Path to a JSON config file (default: ~/.devpilot/config.json)")
    common.add_argument("--env-file", help="Path to a .env file to load before reading the environment")

    parser = argparse.ArgumentParser(
        prog="devpilot",
        description="DevPilot - AI coding assistant for your terminal, powered by Google Gemini",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    chat = sub.add_parser("chat", parents=[common], help="Start an interactive chat session (default)")
    chat.add_argument("--max-tokens", type=int, help="Maximum output tokens per response")
    chat.add_argument("--stream", action="store_true", help="Stream responses as they are generated")
    chat.add_argument("--root", default=".", help="Working directory the tools operate in")

    sub.add_parser("models", parents=[common], help="List the models available to your API key")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    args = list(sys.argv[1:] if argv is None else argv)
    # `chat` is the default command
    if not args or (args[0] not in COMMANDS and args[0] not in ("-h", "--help", "--version")):
        args = ["chat", *args]
    return build_parser().parse_args(args)


def load_env(env_file: Optional[str] = None) -> None:
    """Explicit --env-file, else the nearest .env, then the app-home .env (never overriding)."""
    from config_home import ENV_PATH

    if env_file:
        if not load_dotenv(env_file, override=False):
            logger.warning("No variables loaded from env file '{}'", env_file)
    else:
        found = find_dotenv(usecwd=True)
        if found:
            load_dotenv(found, override=False)
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH, override=False)


def load_config(args: argparse.Namespace) -> ModelConfig:
    from config_home import CONFIG_JSON_PATH

    path = Path(args.config) if args.config else CONFIG_JSON_PATH
    config = ModelConfig.load(path, required=bool(args.config))
    return config.with_overrides(
        api_key=args.api_key,
        model=args.model,
        max_tokens=getattr(args, "max_tokens", None),
        verbose=args.verbose or None,
        stream=getattr(args, "stream", False) or None,
    )


def run_chat(args: argparse.Namespace) -> int:
    config = load_config(args)
    config.require_api_key()

    root = Path(args.root).expanduser().resolve()
    if not root.is_dir():
        raise FatalStartupError(f"Root directory not found: {root}")

    registry = ToolRegistry.builtin(root)
    agent = Agent(GeminiAdapter(config), registry, config)
    shell = InteractiveShell(agent, greeting=config.greeting)
    shell.install_signal_handlers()
    logger.info("chat session starting → root='{}' model='{}'", str(root), config.model)
    return shell.run()


def run_models(args: argparse.Namespace) -> int:
    config = load_config(args)
    config.require_api_key()
    try:
        names = GeminiAdapter(config).list_models()
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    for name in names:
        print(name)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env(args.env_file)
    configure_logging(verbose=args.verbose)
    logger.debug("devpilot {} → command='{}'", __version__, args.command)

    try:
        if args.command == "models":
            return run_models(args)
        return run_chat(args)
    except FatalStartupError as e:
        logger.info("startup failed: {}", e)
        print(f"Error: {e}", file=sys.stderr)
        if "API key" in str(e):
            print(f"Get your API key from: {API_KEY_URL}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

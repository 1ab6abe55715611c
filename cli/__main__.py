"""``python -m cli``: chat with a running mongochat service from a terminal."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import get_args

from .config import ChatCommand, CLIConfig
from .mongochat_cli import main


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Terminal chat host for the mongochat participant",
        epilog=(
            "Examples:\n"
            "  python -m cli --connection local --command query\n"
            "  python -m cli --history-file ~/.mongochat/ufo.jsonl"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default="localhost", help="Server host")
    parser.add_argument("--port", type=int, default=8080, help="Server port")
    parser.add_argument(
        "--api-prefix",
        default="/api/v1",
        help="Prefix of the participant routes (default: /api/v1)",
    )
    parser.add_argument(
        "--connection",
        help="Named connection to activate before the first message",
    )
    parser.add_argument(
        "--command",
        choices=get_args(ChatCommand),
        help="Command applied to messages typed without a slash command",
    )
    parser.add_argument(
        "--history-file",
        type=Path,
        help="Resume and record the conversation in this JSON-lines file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def cli_entry() -> None:
    args = parse_args()
    config = CLIConfig(
        host=args.host,
        port=args.port,
        api_prefix=args.api_prefix,
        connection=args.connection,
        default_command=args.command,
        history_file=args.history_file.expanduser() if args.history_file else None,
    )
    try:
        asyncio.run(main(config, debug=args.debug))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli_entry()

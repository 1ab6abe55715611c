"""Main CLI loop: a terminal chat host for the participant.

The CLI plays the part of the editor's chat view: it owns the turn
history, sends it with every request and appends the request and the
rendered response (with its ``ChatResult``) afterwards.

Input syntax::

    /query how many docs are in sightings?
    /schema
    /docs how do I create an index?
    :connect local

With ``history_file`` set, earlier turns are loaded on start and every
new pair of turns is appended, so the participant keeps its chat id and
selected namespace across sessions.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from .client import ChatAPIClient
from .config import CLIConfig
from .formatter import ResponseFormatter

logger = logging.getLogger(__name__)

COMMANDS = ("query", "schema", "docs")


def parse_input(line: str) -> tuple[str | None, str]:
    """Split an optional leading slash command off the user text."""
    text = line.strip()
    if text.startswith("/"):
        head, _, rest = text[1:].partition(" ")
        if head in COMMANDS:
            return head, rest.strip()
    return None, text


def load_history(path: Path | None) -> list[dict[str, Any]]:
    """Turns recorded in *path*, oldest first; empty when it does not exist."""
    if path is None or not path.exists():
        return []
    with path.open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class MongoChatCLI:
    """Interactive CLI for the mongochat API."""

    def __init__(
        self,
        config: CLIConfig,
        input_stream: TextIO = sys.stdin,
        output_stream: TextIO = sys.stdout,
        client: ChatAPIClient | None = None,
    ):
        self.config = config
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.client = client or ChatAPIClient(config)
        self.history = load_history(config.history_file)

    async def run(self) -> None:
        """Run the interactive CLI loop."""
        try:
            self._print_welcome()
            if self.config.connection:
                await self._connect(self.config.connection)
            while True:
                try:
                    line = self._get_user_input()
                    if line.strip().lower() in ("exit", "quit", "q"):
                        self._print("Goodbye!\n")
                        break
                    if line.startswith(":connect "):
                        await self._connect(line.removeprefix(":connect ").strip())
                        continue
                    await self.process_line(line)

                except KeyboardInterrupt:
                    self._print("\n\nInterrupted. Use 'exit' or 'quit' to exit.\n")
                except EOFError:
                    self._print("\nGoodbye!\n")
                    break
        finally:
            await self.client.close()

    async def process_line(self, line: str) -> None:
        """Send one turn and record it in the history."""
        command, prompt = parse_input(line)
        command = command or self.config.default_command
        formatter = ResponseFormatter(self.output_stream)

        async for event in self.client.chat(
            prompt, command=command, history=self.history
        ):
            formatter.handle_event(event)
        formatter.finish_response()

        response = formatter.response_turn(command)
        if response is None:
            return
        self._record({"kind": "request", "prompt": prompt, "command": command}, response)

    def _record(self, *turns: dict[str, Any]) -> None:
        self.history.extend(turns)
        path = self.config.history_file
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            for turn in turns:
                f.write(json.dumps(turn) + "\n")

    async def _connect(self, name: str) -> None:
        try:
            await self.client.post_json("/chat/connect", {"name": name})
        except Exception as e:
            logger.debug("Connect failed", exc_info=True)
            self._print(f"❌ Unable to connect to {name}: {e}\n")
            return
        self._print(f"Connected to {name}.\n")

    def _get_user_input(self) -> str:
        self._print("> ")
        line = self.input_stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n\r")

    def _print_welcome(self) -> None:
        self._print("mongochat CLI - MongoDB chat participant\n")
        self._print(f"Server: {self.config.chat_url}\n")
        if self.history:
            self._print(f"Resumed {len(self.history)} turns from {self.config.history_file}\n")
        if self.config.default_command:
            self._print(f"Messages without a slash command use /{self.config.default_command}.\n")
        self._print(
            "Prefix a message with /query, /schema or /docs, "
            "use ':connect <name>' to pick a connection, 'exit' to quit.\n\n"
        )

    def _print(self, text: str) -> None:
        self.output_stream.write(text)
        self.output_stream.flush()


async def main(config: CLIConfig, debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    cli = MongoChatCLI(config)
    await cli.run()

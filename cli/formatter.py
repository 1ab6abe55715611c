"""Response formatter for displaying chat events by type."""

import logging
from typing import TextIO

logger = logging.getLogger(__name__)


class ResponseFormatter:
    """Renders chat events and collects the turn the host must keep."""

    def __init__(self, output: TextIO):
        self.output = output
        self.fragments: list[str] = []
        self.result: dict | None = None

    def handle_event(self, event: dict) -> None:
        """Handle a single event and display it appropriately.

        Parameters
        ----------
        event
            Parsed JSON event from the API.
        """
        event_type = event.get("type")

        if event_type == "markdown":
            content = event.get("content", "")
            if not self.fragments:
                self._print("\n")
            self.fragments.append(content)
            self._print(content)

        elif event_type == "button":
            action = event.get("action", {})
            self._print(f"\n[{action.get('title', '?')}]")

        elif event_type == "reference":
            reference = event.get("reference", {})
            title = reference.get("title") or reference.get("url", "")
            self._print(f"\n📎 {title}: {reference.get('url', '')}")

        elif event_type == "result":
            self.result = event.get("result")

        elif event_type == "error":
            message = event.get("message", "Unknown error")
            code = event.get("code", "UNKNOWN")
            self._print(f"\n❌ Error [{code}]: {message}\n")

        else:
            logger.debug("Unknown event type: %s, event: %s", event_type, event)

    def response_turn(self, command: str | None) -> dict | None:
        """The response turn to append to the history, if a result arrived."""
        if self.result is None:
            return None
        return {
            "kind": "response",
            "fragments": self.fragments,
            "result": self.result,
            "command": command,
        }

    def finish_response(self) -> None:
        self._print("\n")

    def _print(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()

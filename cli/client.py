"""API client for the mongochat API with SSE stream parsing."""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from .config import CLIConfig

logger = logging.getLogger(__name__)


def parse_sse_lines(buffer: str) -> tuple[list[dict], str]:
    """Split complete ``data:`` events off *buffer*.

    Returns the parsed events and the unparsed remainder.
    """
    events: list[dict] = []
    while "\n\n" in buffer:
        event_block, buffer = buffer.split("\n\n", 1)
        for line in event_block.split("\n"):
            line = line.strip()
            if not line.startswith("data: "):
                continue
            data_str = line[6:]
            try:
                events.append(json.loads(data_str))
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse SSE data: %s, error: %s", data_str, e)
    return events, buffer


class ChatAPIClient:
    """Client for the mongochat chat API."""

    def __init__(self, config: CLIConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.client = httpx.AsyncClient(
            timeout=config.timeout_seconds, transport=transport
        )

    async def chat(
        self,
        prompt: str,
        *,
        command: str | None = None,
        history: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[dict]:
        """Send one chat turn and stream its events.

        Yields
        ------
        dict
            Parsed JSON event from the SSE stream.
        """
        payload: dict[str, Any] = {"prompt": prompt, "history": history or []}
        if command:
            payload["command"] = command

        logger.debug("Making request to %s with %d turns", self.config.chat_url, len(payload["history"]))

        try:
            async with self.client.stream(
                "POST",
                self.config.chat_url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                logger.debug("Response status: %s", response.status_code)

                if response.status_code != 200:
                    error_text = await response.aread()
                    yield {
                        "type": "error",
                        "message": f"HTTP {response.status_code}: {error_text.decode()}",
                        "code": "HTTP_ERROR",
                    }
                    return

                buffer = ""
                async for chunk in response.aiter_text():
                    events, buffer = parse_sse_lines(buffer + chunk)
                    for event in events:
                        yield event

        except httpx.TimeoutException:
            yield {
                "type": "error",
                "message": "Request timed out.",
                "code": "TIMEOUT",
            }
        except httpx.ConnectError as e:
            yield {
                "type": "error",
                "message": f"Connection error: {str(e)}",
                "code": "CONNECTION_ERROR",
            }

    async def post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to another participant route, e.g. ``/chat/connect``."""
        response = await self.client.post(self.config.api_url(path), json=payload)
        response.raise_for_status()
        return response.json()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

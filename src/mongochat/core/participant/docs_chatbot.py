"""HTTP client for the MongoDB documentation chatbot service.

The service keeps its own conversation state: a conversation is created
once per chat session and every docs question is added to it as a
message. Its conversation id is stored in ``ChatMetadata``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated, Any

import httpx
from fastapi import Depends, FastAPI, Request
from pydantic import BaseModel, ConfigDict, Field

from mongochat.configs.config import get_docs_chatbot_config
from mongochat.configs.system import DocsChatbotConfig
from mongochat.infra.cancellation import CancellationToken, run_cancellable
from mongochat.infra.lifespan import get_app
from mongochat.infra.telemetry import SPAN_DOCS_CHATBOT, tracer

from .errors import DocsChatbotError

logger = logging.getLogger(__name__)

API_VERSION = "v1"


class DocsReference(BaseModel):
    url: str
    title: str | None = None


class ConversationData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_id: str = Field(alias="_id")


class MessageData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    role: str = "assistant"
    content: str = ""
    references: list[DocsReference] = Field(default_factory=list)


class DocsChatbotClient:
    """Async client over an ``httpx.AsyncClient``.

    Errors are raised as ``DocsChatbotError`` with the service's message:
    ``Bad request: ...`` (400), ``Rate limited: ...`` (429),
    ``Internal server error: ...`` (5xx) and ``Internal server error``
    when the body is not JSON.
    """

    def __init__(
        self,
        base_uri: str,
        *,
        user_agent: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_uri = base_uri if base_uri.endswith("/") else base_uri + "/"
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"origin": self.base_uri, "User-Agent": user_agent},
        )

    def _uri(self, path: str) -> str:
        return f"{self.base_uri}api/{API_VERSION}{path}"

    async def _post(
        self,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        with tracer.start_as_current_span(SPAN_DOCS_CHATBOT):
            try:
                response = await run_cancellable(
                    self._client.post(self._uri(path), json=json), token
                )
            except httpx.HTTPError as exc:
                raise DocsChatbotError(f"Request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DocsChatbotError(
                "Internal server error", response.status_code
            ) from exc

        error = body.get("error") if isinstance(body, dict) else None
        status = response.status_code
        if status == 400:
            raise DocsChatbotError(f"Bad request: {error}", status)
        if status == 429:
            raise DocsChatbotError(f"Rate limited: {error}", status)
        if status >= 500:
            raise DocsChatbotError(f"Internal server error: {error}", status)
        if status >= 400:
            raise DocsChatbotError(f"Request failed with status {status}: {error}", status)
        if not isinstance(body, dict):
            raise DocsChatbotError("Internal server error", status)
        return body

    async def create_conversation(
        self, token: CancellationToken | None = None
    ) -> ConversationData:
        body = await self._post("/conversation", token=token)
        logger.debug("Created docs conversation")
        return ConversationData.model_validate(body)

    async def add_message(
        self,
        conversation_id: str,
        message: str,
        token: CancellationToken | None = None,
    ) -> MessageData:
        body = await self._post(
            f"/conversations/{conversation_id}/messages",
            json={"message": message},
            token=token,
        )
        return MessageData.model_validate(body)

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_docs_chatbot(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[DocsChatbotConfig, Depends(get_docs_chatbot_config)],
) -> AsyncGenerator[None, None]:
    """Open the shared docs client when enabled; close it on shutdown."""
    if not config.enabled:
        app.state.docs_chatbot = None
        logger.info("Docs chatbot disabled; /docs answers come from the chat model")
        yield
        return

    client = DocsChatbotClient(
        config.base_uri,
        user_agent=config.user_agent,
        timeout=config.timeout.total_seconds(),
    )
    app.state.docs_chatbot = client
    logger.info("Docs chatbot client ready: %s", client.base_uri)
    try:
        yield
    finally:
        await client.aclose()


def get_docs_chatbot(request: Request) -> DocsChatbotClient | None:
    return getattr(request.app.state, "docs_chatbot", None)

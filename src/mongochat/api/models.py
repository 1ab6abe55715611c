"""Pydantic models for the chat API."""

from traceback import format_exception
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mongochat.core.participant.models import (
    VALID_COMMANDS,
    ButtonEvent,
    ChatResult,
    ChatTurn,
    FollowUpAction,
    Intent,
    MarkdownEvent,
    ReferenceEvent,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ChatApiRequest(BaseModel):
    """One user turn plus the host's turn history, oldest first."""

    prompt: str = Field(default="", description="User text, may be empty")
    command: str | None = Field(
        default=None, description="Slash command without the slash: query | schema | docs"
    )
    history: list[ChatTurn] = Field(
        default_factory=list, description="Previous turns of this chat"
    )

    @field_validator("command")
    @classmethod
    def _known_command(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.lstrip("/")
        if value not in VALID_COMMANDS:
            raise ValueError(f"Unknown command: {value}")
        return value


class NamespaceSelectionRequest(BaseModel):
    """A click on a database or collection link."""

    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(alias="chatId")
    database_name: str = Field(alias="databaseName")
    collection_name: str | None = Field(default=None, alias="collectionName")


class ConnectRequest(BaseModel):
    name: str = Field(description="Display name of the connection")


class ExportToLanguageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(description="Playground code to transpile")
    language: str = Field(description="Target language, e.g. python, java")
    include_driver_syntax: bool = Field(default=False, alias="includeDriverSyntax")


class ExportToPlaygroundRequest(BaseModel):
    code: str = Field(description="Driver code in any language")


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(alias="chatId")
    reaction: Literal["positive", "negative"]
    intent: Intent | None = None
    reason: str | None = Field(default=None, max_length=256)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ExportResponse(BaseModel):
    content: str = Field(description="Full model answer")
    code: str | None = Field(default=None, description="Extracted code block")
    actions: list[FollowUpAction] = Field(default_factory=list)


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# SSE events
# ---------------------------------------------------------------------------


class ResultEvent(BaseModel):
    """Final event of a chat stream: the ``ChatResult`` to persist."""

    type: Literal["result"] = "result"
    result: ChatResult


class ErrorEvent(BaseModel):
    """Error event."""

    type: Literal["error"] = "error"
    message: str = Field(description="Error message")
    code: str | None = Field(default=None, description="Error code")


StreamEvent = MarkdownEvent | ButtonEvent | ReferenceEvent | ResultEvent | ErrorEvent


def format_sse(event: StreamEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


def format_error_sse(exc: BaseException, *, send_traceback: bool = False) -> str:
    message = "An error occurred during processing."
    if send_traceback:
        message += "\n" + "".join(format_exception(exc))
    return format_sse(ErrorEvent(message=message, code="PROCESSING_ERROR"))

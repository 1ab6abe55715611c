"""Chat turns, requests and results exchanged with the chat host.

The host owns the turn history and hands it back, unchanged, with every
request. ``ChatResult.metadata`` is the only state the host persists on
the participant's behalf, so everything needed to resume a conversation
must be recorded there.
"""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class Intent(StrEnum):
    """Closed set of response intents attached to every result."""

    QUERY = "query"
    SCHEMA = "schema"
    DOCS = "docs"
    GENERIC = "generic"
    EMPTY_REQUEST = "emptyRequest"
    CANCELLED_REQUEST = "cancelledRequest"
    ASK_TO_CONNECT = "askToConnect"
    ASK_FOR_NAMESPACE = "askForNamespace"


class ErrorDetails(BaseModel):
    """Error surfaced to the host alongside a result."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(description="Error message or category sentinel")


class ChatResultMetadata(BaseModel):
    """State persisted by the host for the next turn."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    intent: Intent
    chat_id: str = Field(alias="chatId")
    database_name: str | None = Field(default=None, alias="databaseName")
    collection_name: str | None = Field(default=None, alias="collectionName")
    external_conversation_id: str | None = Field(
        default=None, alias="externalConversationId"
    )
    # Routed command of an askForNamespace result, replayed when re-asking.
    command: str | None = None


class ChatResult(BaseModel):
    """Outcome of one ``chat_handler`` call."""

    model_config = ConfigDict(frozen=True)

    metadata: ChatResultMetadata
    error_details: ErrorDetails | None = None


class RequestTurn(BaseModel):
    """A past user request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["request"] = "request"
    prompt: str = ""
    command: str | None = None


class ResponseTurn(BaseModel):
    """A past participant response: its markdown fragments and result."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["response"] = "response"
    fragments: tuple[str, ...] = ()
    result: ChatResult
    command: str | None = None

    @property
    def intent(self) -> Intent:
        return self.result.metadata.intent


ChatTurn = Annotated[RequestTurn | ResponseTurn, Field(discriminator="kind")]


class ChatRequest(BaseModel):
    """The current user request."""

    model_config = ConfigDict(frozen=True)

    prompt: str = ""
    command: str | None = None


class ChatContext(BaseModel):
    """Host-provided context: the immutable turn history, oldest first."""

    model_config = ConfigDict(frozen=True)

    history: tuple[ChatTurn, ...] = ()

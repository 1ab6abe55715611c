"""Shared fakes for participant tests.

The fakes stand in for the model, the data connection and the docs
service at the seams the participant talks to; every call is recorded
so tests can assert on what was (or was not) requested.
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import pytest
from langchain_core.messages import BaseMessage

from mongochat.core.participant.docs_chatbot import (
    ConversationData,
    DocsReference,
    MessageData,
)
from mongochat.core.participant.errors import ConnectionUnavailableError
from mongochat.core.participant.metadata import ChatMetadataStore
from mongochat.core.participant.models import (
    ChatResult,
    ChatResultMetadata,
    EventResponseStream,
    Intent,
    RequestTurn,
    ResponseTurn,
)
from mongochat.core.participant.participant import ParticipantController
from mongochat.core.participant.telemetry import ParticipantTelemetry
from mongochat.infra.cancellation import CancellationToken, RequestCancelled

FRAGMENT_SIZE = 7


class FakeModelProvider:
    """Scripted model: each call consumes the next response.

    A response that is an exception instance is raised instead. Streamed
    answers are split into small fragments so code fences straddle them.
    Token counting is one token per character.
    """

    def __init__(
        self, responses: Sequence[str | Exception] = (), *, max_input_tokens: int = 100_000
    ):
        self.responses = list(responses)
        self.max_input_tokens = max_input_tokens
        self.requests: list[list[BaseMessage]] = []

    def count_tokens(self, text: str) -> int:
        return len(text)

    def _next_response(
        self, messages: Sequence[BaseMessage], token: CancellationToken | None
    ) -> str:
        if token is not None:
            token.raise_if_cancelled()
        self.requests.append(list(messages))
        if not self.responses:
            raise AssertionError("Unexpected model call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def send_request(
        self,
        messages: Sequence[BaseMessage],
        token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        response = self._next_response(messages, token)
        for i in range(0, len(response), FRAGMENT_SIZE):
            yield response[i : i + FRAGMENT_SIZE]

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        token: CancellationToken | None = None,
    ) -> str:
        return self._next_response(messages, token)


class FakeConnectionProvider:
    """In-memory databases: ``{db: {collection: [documents]}}``."""

    def __init__(
        self,
        databases: Mapping[str, Mapping[str, list[dict[str, Any]]]] | None = None,
        *,
        names: Sequence[str] = ("local",),
        active: str | None = "local",
    ):
        self.databases = {db: dict(colls) for db, colls in (databases or {}).items()}
        self.names = list(names)
        self.active = active
        self.list_databases_error: Exception | None = None
        self.list_collections_error: Exception | None = None
        self.sample_error: Exception | None = None
        self.calls: list[tuple[Any, ...]] = []

    def connection_names(self) -> list[str]:
        return list(self.names)

    def get_active_connection(self) -> str | None:
        return self.active

    async def connect(self, name: str) -> None:
        self.calls.append(("connect", name))
        if name not in self.names:
            raise ConnectionUnavailableError(f"Unknown connection: {name}")
        self.active = name

    async def list_databases(self, token: CancellationToken | None = None) -> list[str]:
        self.calls.append(("list_databases",))
        if token is not None:
            token.raise_if_cancelled()
        if self.list_databases_error is not None:
            raise self.list_databases_error
        return list(self.databases)

    async def list_collections(
        self, database_name: str, token: CancellationToken | None = None
    ) -> list[str]:
        self.calls.append(("list_collections", database_name))
        if token is not None:
            token.raise_if_cancelled()
        if self.list_collections_error is not None:
            raise self.list_collections_error
        return list(self.databases.get(database_name, {}))

    async def sample(
        self,
        database_name: str,
        collection_name: str,
        *,
        size: int,
        query: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("sample", database_name, collection_name, size))
        if self.sample_error is not None:
            raise self.sample_error
        return list(self.databases.get(database_name, {}).get(collection_name, []))[:size]


class FakeDocsBackend:
    """Docs chatbot double; set ``error`` to make ``add_message`` fail."""

    def __init__(
        self,
        content: str = "Use db.collection.createIndex().",
        references: Sequence[DocsReference] = (),
        *,
        conversation_id: str = "conv-1",
    ):
        self.content = content
        self.references = list(references)
        self.conversation_id = conversation_id
        self.error: Exception | None = None
        self.created = 0
        self.messages: list[tuple[str, str]] = []

    async def create_conversation(
        self, token: CancellationToken | None = None
    ) -> ConversationData:
        self.created += 1
        return ConversationData(_id=self.conversation_id)

    async def add_message(
        self,
        conversation_id: str,
        message: str,
        token: CancellationToken | None = None,
    ) -> MessageData:
        if token is not None and token.is_cancellation_requested:
            raise RequestCancelled()
        self.messages.append((conversation_id, message))
        if self.error is not None:
            raise self.error
        return MessageData(content=self.content, references=self.references)


class RecordingSink:
    """Telemetry sink that keeps every event."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(properties)))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [props for name, props in self.events if name == event_name]


# ---------------------------------------------------------------------------
# History builders
# ---------------------------------------------------------------------------


def request_turn(prompt: str, command: str | None = None) -> RequestTurn:
    return RequestTurn(prompt=prompt, command=command)


def response_turn(
    *fragments: str,
    intent: Intent,
    chat_id: str = "chat_1",
    command: str | None = None,
    database_name: str | None = None,
    collection_name: str | None = None,
    error_details=None,
) -> ResponseTurn:
    return ResponseTurn(
        fragments=fragments,
        command=command,
        result=ChatResult(
            metadata=ChatResultMetadata(
                intent=intent,
                chat_id=chat_id,
                database_name=database_name,
                collection_name=collection_name,
            ),
            error_details=error_details,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def telemetry(sink):
    return ParticipantTelemetry(sink)


@pytest.fixture
def metadata_store():
    return ChatMetadataStore()


@pytest.fixture
def stream():
    return EventResponseStream()


@pytest.fixture
def make_controller(metadata_store, telemetry):
    """Build a controller over the given fakes."""

    def _make(model, connections=None, docs_backend=None, config=None):
        return ParticipantController(
            model=model,
            connections=connections or FakeConnectionProvider(),
            metadata=metadata_store,
            telemetry=telemetry,
            docs_backend=docs_backend,
            config=config,
        )

    return _make

"""Tests for the backend dispatcher and model error classification."""

from unittest.mock import MagicMock

import httpx
import pytest
from langchain_core.messages import HumanMessage
from openai import APIConnectionError, BadRequestError, RateLimitError

from conftest import FakeDocsBackend, FakeModelProvider
from mongochat.core.llm import ContentFilteredError
from mongochat.core.participant.dispatcher import (
    DEFAULT_DOCS_REFERENCE_URL,
    BackendDispatcher,
    BackendName,
    DocsAttempt,
    ModelBackend,
    classify_model_error,
)
from mongochat.core.participant.docs_chatbot import DocsReference
from mongochat.core.participant.errors import (
    DocsChatbotError,
    ModelResponseError,
    ParticipantErrorType,
)
from mongochat.core.participant.telemetry import TelemetryEvent
from mongochat.infra.cancellation import CancellationToken, RequestCancelled

MESSAGES = [HumanMessage(content="how do I create an index?")]


def _dispatcher(model, docs, metadata_store, telemetry):
    return BackendDispatcher(ModelBackend(model), docs, metadata_store, telemetry)


def _status_error(cls, status, code=None):
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(status, request=request)
    body = {"code": code} if code else None
    return cls("error", response=response, body=body)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class TestClassifyModelError:
    def test_content_filtered(self):
        error = classify_model_error(ContentFilteredError("filtered"))
        assert error.error_type == ParticipantErrorType.FILTERED

    def test_rate_limit(self):
        error = classify_model_error(_status_error(RateLimitError, 429))
        assert error.error_type == ParticipantErrorType.QUOTA_EXCEEDED
        assert error.code == "429"

    def test_bad_request(self):
        error = classify_model_error(_status_error(BadRequestError, 400))
        assert error.error_type == ParticipantErrorType.INVALID_PROMPT

    def test_off_topic_code(self):
        error = classify_model_error(_status_error(BadRequestError, 400, "off_topic"))
        assert error.error_type == ParticipantErrorType.CHAT_MODEL_OFF_TOPIC
        assert error.code == "off_topic"

    def test_content_filter_code(self):
        error = classify_model_error(_status_error(BadRequestError, 400, "content_filter"))
        assert error.error_type == ParticipantErrorType.FILTERED

    def test_connection_error_is_other(self):
        exc = APIConnectionError(request=httpx.Request("POST", "https://api.example.com"))
        assert classify_model_error(exc).error_type == ParticipantErrorType.OTHER

    def test_unknown_exception(self):
        error = classify_model_error(ValueError("nope"))
        assert error.error_type == ParticipantErrorType.OTHER
        assert error.code == "ValueError"

    def test_already_classified_passes_through(self):
        original = ModelResponseError(ParticipantErrorType.QUOTA_EXCEEDED, "quota")
        assert classify_model_error(original) is original


# ---------------------------------------------------------------------------
# Model backend
# ---------------------------------------------------------------------------


class TestModelBackend:
    @pytest.mark.asyncio
    async def test_streams_fragments_and_reports_code_blocks(self, stream):
        answer = "Try:\n```javascript\ndb.a.find()\n```"
        on_code_block = MagicMock()
        content = await ModelBackend(FakeModelProvider([answer])).stream_answer(
            MESSAGES, stream, on_code_block=on_code_block
        )
        assert content == answer
        assert len(stream.fragments) > 1
        assert stream.text == answer
        on_code_block.assert_called_once_with("\ndb.a.find()\n")

    @pytest.mark.asyncio
    async def test_failure_is_classified(self, stream):
        backend = ModelBackend(FakeModelProvider([_status_error(RateLimitError, 429)]))
        with pytest.raises(ModelResponseError) as exc_info:
            await backend.stream_answer(MESSAGES, stream)
        assert exc_info.value.error_type == ParticipantErrorType.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_cancellation_is_not_classified(self, stream):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RequestCancelled):
            await ModelBackend(FakeModelProvider(["x"])).stream_answer(
                MESSAGES, stream, token
            )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestBackendDispatcher:
    @pytest.mark.asyncio
    async def test_non_docs_requests_use_the_model(
        self, stream, metadata_store, telemetry
    ):
        docs = FakeDocsBackend()
        dispatcher = _dispatcher(FakeModelProvider(["model answer"]), docs, metadata_store, telemetry)

        answer = await dispatcher.answer(MESSAGES, stream, chat_id="chat_1", command="query")

        assert answer.backend_used == BackendName.MODEL
        assert answer.docs_attempt == DocsAttempt.NOT_ATTEMPTED
        assert docs.messages == []
        assert stream.references == []

    @pytest.mark.asyncio
    async def test_docs_success_stores_conversation(
        self, stream, metadata_store, telemetry
    ):
        docs = FakeDocsBackend(
            "Use createIndex.",
            [DocsReference(url="https://docs/indexes", title="Indexes")],
        )
        model = FakeModelProvider()
        dispatcher = _dispatcher(model, docs, metadata_store, telemetry)

        answer = await dispatcher.answer(
            MESSAGES, stream, chat_id="chat_1", command="docs", docs_message="index?"
        )

        assert answer.backend_used == BackendName.DOCS
        assert answer.docs_attempt == DocsAttempt.SUCCEEDED
        assert answer.external_conversation_id == "conv-1"
        assert stream.text == "Use createIndex."
        assert [r.url for r in stream.references] == ["https://docs/indexes"]
        assert model.requests == []
        assert metadata_store.get_chat_metadata("chat_1").external_conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_existing_conversation_is_reused(
        self, stream, metadata_store, telemetry
    ):
        metadata_store.patch_chat_metadata("chat_1", external_conversation_id="conv-9")
        docs = FakeDocsBackend()
        dispatcher = _dispatcher(FakeModelProvider(), docs, metadata_store, telemetry)

        await dispatcher.answer(
            MESSAGES, stream, chat_id="chat_1", command="docs", docs_message="again"
        )

        assert docs.created == 0
        assert docs.messages == [("conv-9", "again")]

    @pytest.mark.asyncio
    async def test_docs_failure_falls_back_once(
        self, stream, metadata_store, telemetry, sink
    ):
        docs = FakeDocsBackend()
        docs.error = DocsChatbotError("Rate limited: slow down", 429)
        dispatcher = _dispatcher(
            FakeModelProvider(["model answer"]), docs, metadata_store, telemetry
        )

        answer = await dispatcher.answer(
            MESSAGES, stream, chat_id="chat_1", command="docs", docs_message="index?"
        )

        assert answer.backend_used == BackendName.MODEL
        assert answer.docs_attempt == DocsAttempt.FAILED
        assert answer.external_conversation_id is None
        assert stream.text == "model answer"
        assert [r.url for r in stream.references] == [DEFAULT_DOCS_REFERENCE_URL]
        [failure] = sink.named(TelemetryEvent.RESPONSE_FAILED)
        assert failure["error_name"] == ParticipantErrorType.DOCS_CHATBOT_API.value
        assert failure["error_code"] == "429"
        stored = metadata_store.get_chat_metadata("chat_1")
        assert stored is None or stored.external_conversation_id is None

    @pytest.mark.asyncio
    async def test_docs_cancellation_does_not_fall_back(
        self, stream, metadata_store, telemetry, sink
    ):
        token = CancellationToken()
        token.cancel()
        model = FakeModelProvider(["model answer"])
        dispatcher = _dispatcher(model, FakeDocsBackend(), metadata_store, telemetry)

        with pytest.raises(RequestCancelled):
            await dispatcher.answer(
                MESSAGES, stream, token, chat_id="chat_1", command="docs", docs_message="x"
            )

        assert model.requests == []
        assert sink.named(TelemetryEvent.RESPONSE_FAILED) == []

    @pytest.mark.asyncio
    async def test_docs_unconfigured_uses_model_with_citation(
        self, stream, metadata_store, telemetry, sink
    ):
        dispatcher = _dispatcher(
            FakeModelProvider(["model answer"]), None, metadata_store, telemetry
        )

        answer = await dispatcher.answer(
            MESSAGES, stream, chat_id="chat_1", command="docs", docs_message="x"
        )

        assert answer.docs_attempt == DocsAttempt.NOT_ATTEMPTED
        assert [r.url for r in stream.references] == [DEFAULT_DOCS_REFERENCE_URL]
        assert sink.named(TelemetryEvent.RESPONSE_FAILED) == []

"""Backend dispatcher: the docs service with a general-model fallback.

Two backends sit behind one ``answer`` call. Docs requests try the docs
chatbot first when one is configured; on any failure except cancellation
the failure is reported once and the general model answers instead, with
a fixed documentation citation attached. Everything else goes to the
model directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from langchain_core.messages import BaseMessage
from openai import APIError, APIStatusError, BadRequestError, RateLimitError

from mongochat.core.llm import ContentFilteredError, ModelProvider
from mongochat.infra.cancellation import CancellationToken, RequestCancelled
from mongochat.infra.telemetry import (
    ATTR_BACKEND_DOCS_ATTEMPT,
    ATTR_BACKEND_USED,
    SPAN_BACKEND_ANSWER,
    tracer,
)

from .docs_chatbot import ConversationData, MessageData
from .errors import ModelResponseError, ParticipantErrorType
from .metadata import ChatMetadataStore
from .models import COMMAND_DOCS, Reference, ResponseStream
from .post_processor import CodeBlockMatcher
from .telemetry import ParticipantTelemetry

logger = logging.getLogger(__name__)

DEFAULT_DOCS_REFERENCE_URL = "https://www.mongodb.com/docs/manual/"
DEFAULT_DOCS_REFERENCE_TITLE = "View MongoDB documentation"

_FILTERED_CODES = frozenset({"content_filter", "content_policy_violation"})
_QUOTA_CODES = frozenset({"insufficient_quota", "rate_limit_exceeded"})
_OFF_TOPIC_CODES = frozenset({"off_topic"})


class BackendName(StrEnum):
    MODEL = "model"
    DOCS = "docs"


class DocsAttempt(StrEnum):
    NOT_ATTEMPTED = "notAttempted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Answer:
    content: str
    references: list[Reference] = field(default_factory=list)
    backend_used: BackendName = BackendName.MODEL
    docs_attempt: DocsAttempt = DocsAttempt.NOT_ATTEMPTED
    external_conversation_id: str | None = None


def classify_model_error(exc: Exception) -> ModelResponseError:
    """Map a chat model exception onto a ``ParticipantErrorType``."""
    if isinstance(exc, ModelResponseError):
        return exc
    if isinstance(exc, ContentFilteredError):
        return ModelResponseError(ParticipantErrorType.FILTERED, str(exc), "content_filter")

    code = getattr(exc, "code", None)
    if code in _OFF_TOPIC_CODES:
        error_type = ParticipantErrorType.CHAT_MODEL_OFF_TOPIC
    elif code in _FILTERED_CODES:
        error_type = ParticipantErrorType.FILTERED
    elif isinstance(exc, RateLimitError) or code in _QUOTA_CODES:
        error_type = ParticipantErrorType.QUOTA_EXCEEDED
    elif isinstance(exc, BadRequestError):
        error_type = ParticipantErrorType.INVALID_PROMPT
    else:
        error_type = ParticipantErrorType.OTHER

    if code is None and isinstance(exc, APIStatusError):
        code = str(exc.status_code)
    elif code is None and not isinstance(exc, APIError):
        code = type(exc).__name__
    return ModelResponseError(error_type, str(exc), code)


class ModelBackend:
    """Streams a general-model answer onto the response stream."""

    def __init__(self, model: ModelProvider) -> None:
        self.model = model

    async def stream_answer(
        self,
        messages: Sequence[BaseMessage],
        stream: ResponseStream,
        token: CancellationToken | None = None,
        *,
        on_code_block: Callable[[str], None] | None = None,
    ) -> str:
        """Stream the answer and return its full text.

        Raises:
            RequestCancelled: *token* fired.
            ModelResponseError: the model call failed; see ``error_type``.
        """
        matcher = CodeBlockMatcher(on_code_block) if on_code_block else None
        parts: list[str] = []
        try:
            async for fragment in self.model.send_request(messages, token):
                parts.append(fragment)
                stream.markdown(fragment)
                if matcher is not None:
                    matcher.feed(fragment)
        except RequestCancelled:
            raise
        except Exception as exc:
            raise classify_model_error(exc) from exc
        return "".join(parts)


class DocsBackend(Protocol):
    """The documentation chatbot service."""

    async def create_conversation(
        self, token: CancellationToken | None = None
    ) -> ConversationData: ...

    async def add_message(
        self,
        conversation_id: str,
        message: str,
        token: CancellationToken | None = None,
    ) -> MessageData: ...


class BackendDispatcher:
    """Chooses the backend for a request and applies the docs fallback."""

    def __init__(
        self,
        model_backend: ModelBackend,
        docs_backend: DocsBackend | None,
        metadata: ChatMetadataStore,
        telemetry: ParticipantTelemetry,
        *,
        docs_reference_url: str = DEFAULT_DOCS_REFERENCE_URL,
        docs_reference_title: str = DEFAULT_DOCS_REFERENCE_TITLE,
    ) -> None:
        self.model_backend = model_backend
        self.docs_backend = docs_backend
        self.metadata = metadata
        self.telemetry = telemetry
        self.docs_reference = Reference(
            url=docs_reference_url, title=docs_reference_title
        )

    async def answer(
        self,
        messages: Sequence[BaseMessage],
        stream: ResponseStream,
        token: CancellationToken | None = None,
        *,
        chat_id: str,
        command: str | None = None,
        docs_message: str | None = None,
        on_code_block: Callable[[str], None] | None = None,
    ) -> Answer:
        """Answer with the docs service (docs requests) or the model.

        *messages* is the model input, used directly or as the fallback;
        *docs_message* is what the docs service receives.
        """
        with tracer.start_as_current_span(SPAN_BACKEND_ANSWER) as span:
            answer = await self._answer(
                messages,
                stream,
                token,
                chat_id=chat_id,
                command=command,
                docs_message=docs_message,
                on_code_block=on_code_block,
            )
            span.set_attribute(ATTR_BACKEND_USED, answer.backend_used.value)
            span.set_attribute(ATTR_BACKEND_DOCS_ATTEMPT, answer.docs_attempt.value)
            return answer

    async def _answer(
        self,
        messages: Sequence[BaseMessage],
        stream: ResponseStream,
        token: CancellationToken | None,
        *,
        chat_id: str,
        command: str | None,
        docs_message: str | None,
        on_code_block: Callable[[str], None] | None,
    ) -> Answer:
        if command != COMMAND_DOCS:
            content = await self.model_backend.stream_answer(
                messages, stream, token, on_code_block=on_code_block
            )
            return Answer(content=content)

        docs_attempt = DocsAttempt.NOT_ATTEMPTED
        if self.docs_backend is not None and docs_message is not None:
            try:
                return await self._answer_with_docs(
                    self.docs_backend, docs_message, stream, token, chat_id=chat_id
                )
            except RequestCancelled:
                raise
            except Exception as exc:
                docs_attempt = DocsAttempt.FAILED
                logger.warning("Docs chatbot failed, falling back to the model: %s", exc)
                self.telemetry.track_response_failed(
                    command=COMMAND_DOCS,
                    error_type=ParticipantErrorType.DOCS_CHATBOT_API,
                    error_code=getattr(exc, "status_code", None),
                    error_details=str(exc),
                    metadata=self.metadata.get_chat_metadata(chat_id),
                )

        content = await self.model_backend.stream_answer(
            messages, stream, token, on_code_block=on_code_block
        )
        stream.reference(self.docs_reference)
        return Answer(
            content=content,
            references=[self.docs_reference],
            backend_used=BackendName.MODEL,
            docs_attempt=docs_attempt,
        )

    async def _answer_with_docs(
        self,
        docs_backend: DocsBackend,
        message: str,
        stream: ResponseStream,
        token: CancellationToken | None,
        *,
        chat_id: str,
    ) -> Answer:
        stored = self.metadata.get_chat_metadata(chat_id)
        conversation_id = stored.external_conversation_id if stored else None
        if conversation_id is None:
            conversation = await docs_backend.create_conversation(token)
            conversation_id = conversation.conversation_id

        reply = await docs_backend.add_message(conversation_id, message, token)
        self.metadata.patch_chat_metadata(
            chat_id, external_conversation_id=conversation_id
        )

        references = [
            Reference(url=ref.url, title=ref.title) for ref in reply.references
        ]
        stream.markdown(reply.content)
        for reference in references:
            stream.reference(reference)
        return Answer(
            content=reply.content,
            references=references,
            backend_used=BackendName.DOCS,
            docs_attempt=DocsAttempt.SUCCEEDED,
            external_conversation_id=conversation_id,
        )

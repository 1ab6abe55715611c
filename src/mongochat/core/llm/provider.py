"""ModelProvider: the participant's view of a chat model.

Wraps any LangChain ``BaseChatModel`` and exposes the three things the
participant needs: a streamed text response raced against a
``CancellationToken``, a token counter and the input-token budget.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, BaseMessageChunk

from mongochat.infra.cancellation import CancellationToken, iterate_cancellable
from mongochat.infra.tokens import estimate_tokens

logger = logging.getLogger(__name__)

_FINISH_REASON_CONTENT_FILTER = "content_filter"


class ContentFilteredError(Exception):
    """The model stopped because its output tripped the content filter."""


def _chunk_text(chunk: BaseMessageChunk) -> str:
    content = chunk.content
    if isinstance(content, str):
        return content
    # Multi-part content: keep the text parts only.
    return "".join(
        part.get("text", "") if isinstance(part, dict) else str(part)
        for part in content
    )


class ModelProvider:
    """Streams text from a chat model within a fixed input budget."""

    def __init__(
        self,
        llm: BaseChatModel,
        *,
        max_input_tokens: int,
        model_name: str = "unknown",
    ) -> None:
        self._llm = llm
        self.max_input_tokens = max_input_tokens
        self.model_name = model_name

    def count_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    async def send_request(
        self,
        messages: Sequence[BaseMessage],
        token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield response text fragments as the model produces them.

        Raises:
            RequestCancelled: *token* fired; the HTTP stream is closed.
            ContentFilteredError: the provider reported a filtered finish.
        """
        stream = self._llm.astream(list(messages))
        async for chunk in iterate_cancellable(stream, token):
            finish_reason = chunk.response_metadata.get("finish_reason")
            if finish_reason == _FINISH_REASON_CONTENT_FILTER:
                raise ContentFilteredError(
                    f"Model {self.model_name} response was filtered"
                )
            text = _chunk_text(chunk)
            if text:
                yield text

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        token: CancellationToken | None = None,
    ) -> str:
        """Collect the whole response of a machine-to-machine prompt."""
        parts = [part async for part in self.send_request(messages, token)]
        return "".join(parts)

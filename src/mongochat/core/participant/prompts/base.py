"""Prompt builder base: instruction + filtered history + current user turn."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import ClassVar, Generic, Literal, Protocol, TypeVar

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from mongochat.core.participant.history import filter_history
from mongochat.core.participant.models import (
    COMMAND_GENERIC,
    ChatContext,
    ChatRequest,
    ChatTurn,
    Intent,
    RequestTurn,
    ResponseTurn,
)

logger = logging.getLogger(__name__)

InternalPurpose = Literal["intent", "namespace"] | None


class TokenBudget(Protocol):
    """What a builder needs to know about the target model."""

    max_input_tokens: int

    def count_tokens(self, text: str) -> int: ...


class PromptStats(BaseModel):
    """Shape of an assembled prompt, reported to telemetry."""

    command: str
    total_message_length: int
    user_input_length: int
    has_sample_documents: bool
    history_size: int
    internal_purpose: InternalPurpose = None


@dataclass
class ModelInput:
    messages: list[BaseMessage]
    stats: PromptStats


@dataclass
class UserPrompt:
    prompt: str
    has_sample_documents: bool = False


@dataclass
class PromptArgs:
    request: ChatRequest
    context: ChatContext | None = None
    connection_names: Sequence[str] = field(default_factory=tuple)
    database_name: str | None = None
    collection_name: str | None = None

    @property
    def namespace_is_known(self) -> bool:
        return self.database_name is not None and self.collection_name is not None


ArgsT = TypeVar("ArgsT", bound=PromptArgs)


def resolve_reconnect_request(
    request: ChatRequest,
    history: Sequence[ChatTurn],
    connection_names: Sequence[str],
) -> tuple[ChatRequest, tuple[ChatTurn, ...]]:
    """Turn "the user clicked a connection" back into the original question.

    When the prompt is a connection name and the last response asked the
    user to connect, the effective request becomes the last real user
    request before it, and the history is cut just before that request.
    Otherwise both are returned unchanged.
    """
    history = tuple(history)
    if request.prompt not in connection_names or not history:
        return request, history

    previous = history[-1]
    if not isinstance(previous, ResponseTurn) or previous.intent != Intent.ASK_TO_CONNECT:
        return request, history

    for i in range(len(history) - 1, -1, -1):
        turn = history[i]
        if (
            isinstance(turn, RequestTurn)
            and turn.prompt.strip()
            and turn.prompt not in connection_names
        ):
            logger.debug("Resuming request from turn %d after connecting", i)
            return ChatRequest(prompt=turn.prompt, command=turn.command), history[:i]

    return request, history


def message_length(message: BaseMessage) -> int:
    return len(str(message.content).strip())


class PromptBase(ABC, Generic[ArgsT]):
    """Builds the message sequence for one request kind."""

    internal_purpose: ClassVar[InternalPurpose] = None

    @abstractmethod
    def get_assistant_prompt(self, args: ArgsT) -> str:
        """Fixed instruction for this request kind."""

    def get_user_prompt(self, args: ArgsT, model: TokenBudget | None) -> UserPrompt:
        return UserPrompt(prompt=args.request.prompt)

    def build_messages(self, args: ArgsT, model: TokenBudget | None = None) -> ModelInput:
        history: Sequence[ChatTurn] = args.context.history if args.context else ()
        request, history = resolve_reconnect_request(
            args.request, history, args.connection_names
        )
        args = replace(args, request=request)

        instruction = SystemMessage(content=self.get_assistant_prompt(args))
        user_prompt = self.get_user_prompt(args, model)

        token_limit = None
        count_tokens = None
        if model is not None:
            count_tokens = model.count_tokens
            token_limit = model.max_input_tokens - (
                count_tokens(str(instruction.content)) + count_tokens(user_prompt.prompt)
            )

        history_messages = filter_history(
            history,
            namespace_is_known=args.namespace_is_known,
            connection_names=args.connection_names,
            token_limit=token_limit,
            count_tokens=count_tokens,
        )

        messages = [instruction, *history_messages, HumanMessage(content=user_prompt.prompt)]
        return ModelInput(
            messages=messages,
            stats=self.get_stats(
                messages,
                request=args.request,
                context=args.context,
                has_sample_documents=user_prompt.has_sample_documents,
            ),
        )

    def get_stats(
        self,
        messages: Sequence[BaseMessage],
        *,
        request: ChatRequest,
        context: ChatContext | None,
        has_sample_documents: bool,
    ) -> PromptStats:
        return PromptStats(
            command=request.command or COMMAND_GENERIC,
            total_message_length=sum(message_length(m) for m in messages),
            user_input_length=len(request.prompt),
            has_sample_documents=has_sample_documents,
            history_size=len(context.history) if context else 0,
            internal_purpose=self.internal_purpose,
        )

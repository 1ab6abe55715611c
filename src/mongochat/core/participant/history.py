"""History classifier: folds the host's turn history into model messages.

The host replays the full, immutable turn history with every request.
Only turns that carry conversational content are worth sending to a
model; connection clicks, empty prompts, "let's connect" scaffolding,
namespace questions that have since been answered and exchanges the
content filter rejected are dropped.

Iteration runs newest to oldest so that a token budget keeps the most
recent turns, then the result is reversed into chronological order.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from mongochat.infra.id_utils import CHAT_ID_PREFIX, generate_id

from .errors import ParticipantErrorType
from .models import COMMAND_DOCS, ChatTurn, Intent, RequestTurn, ResponseTurn

TokenCounter = Callable[[str], int]

MAX_DOCS_HISTORY_LENGTH = 4
"""Turns replayed to the docs service, which keeps its own conversation."""

_SKIPPED_RESPONSE_INTENTS = frozenset({Intent.EMPTY_REQUEST, Intent.ASK_TO_CONNECT})


@dataclass(frozen=True)
class HistoryFacts:
    """Conversation state reconstructed from the turn history."""

    messages: list[BaseMessage] = field(default_factory=list)
    chat_id: str = ""
    last_intent: Intent | None = None
    namespace_is_known: bool = False
    # Partial namespace of the last response when it asked for one.
    pending_database_name: str | None = None

    @property
    def asked_for_namespace(self) -> bool:
        return self.last_intent == Intent.ASK_FOR_NAMESPACE


def is_filtered_response(turn: ChatTurn | None) -> bool:
    return (
        isinstance(turn, ResponseTurn)
        and turn.result.error_details is not None
        and turn.result.error_details.message == ParticipantErrorType.FILTERED
    )


def last_response(history: Sequence[ChatTurn]) -> ResponseTurn | None:
    for turn in reversed(history):
        if isinstance(turn, ResponseTurn):
            return turn
    return None


def get_chat_id_from_history_or_new(history: Sequence[ChatTurn]) -> str:
    """Chat id stored on the oldest response turn, else a fresh one."""
    for turn in history:
        if isinstance(turn, ResponseTurn) and turn.result.metadata.chat_id:
            return turn.result.metadata.chat_id
    return generate_id(CHAT_ID_PREFIX)


# ---------------------------------------------------------------------------
# Per-turn rules
# ---------------------------------------------------------------------------


def _response_message(
    turn: ResponseTurn, *, namespace_is_known: bool
) -> BaseMessage | None:
    if is_filtered_response(turn):
        return None
    if turn.intent in _SKIPPED_RESPONSE_INTENTS:
        return None

    if turn.intent == Intent.ASK_FOR_NAMESPACE:
        if namespace_is_known:
            return None
        # Only the question itself; the list of names after it is noise.
        content = turn.fragments[0] if turn.fragments else ""
    else:
        content = "".join(turn.fragments)

    return AIMessage(content=content)


def _request_message(
    turn: RequestTurn,
    *,
    previous: ChatTurn | None,
    following: ChatTurn | None,
    connection_names: Sequence[str],
    namespace_is_known: bool,
) -> BaseMessage | None:
    if (
        isinstance(previous, ResponseTurn)
        and previous.intent == Intent.ASK_FOR_NAMESPACE
        and namespace_is_known
    ):
        return None
    if is_filtered_response(following):
        return None
    if not turn.prompt.strip() or turn.prompt in connection_names:
        return None
    return HumanMessage(content=turn.prompt)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def filter_history(
    history: Sequence[ChatTurn],
    *,
    namespace_is_known: bool,
    connection_names: Sequence[str] = (),
    token_limit: int | None = None,
    count_tokens: TokenCounter | None = None,
) -> list[BaseMessage]:
    """Return the turns worth replaying to a model, oldest first.

    When both *token_limit* and *count_tokens* are given, turns are
    accumulated from the newest backwards and iteration stops once the
    running total exceeds the limit.
    """
    messages: list[BaseMessage] = []
    used_tokens = 0

    for i in range(len(history) - 1, -1, -1):
        turn = history[i]
        if isinstance(turn, RequestTurn):
            message = _request_message(
                turn,
                previous=history[i - 1] if i > 0 else None,
                following=history[i + 1] if i + 1 < len(history) else None,
                connection_names=connection_names,
                namespace_is_known=namespace_is_known,
            )
        else:
            message = _response_message(turn, namespace_is_known=namespace_is_known)

        if message is None:
            continue

        if token_limit is not None and count_tokens is not None:
            used_tokens += count_tokens(str(message.content))
            if used_tokens > token_limit:
                break

        messages.append(message)

    messages.reverse()
    return messages


def filter_history_for_docs(
    history: Sequence[ChatTurn],
    *,
    namespace_is_known: bool,
    connection_names: Sequence[str] = (),
    max_length: int = MAX_DOCS_HISTORY_LENGTH,
) -> list[BaseMessage]:
    """Turns since the last ``/docs`` turn, at most *max_length* of them."""
    since_last_docs: list[ChatTurn] = []
    for turn in reversed(history):
        if turn.command == COMMAND_DOCS or len(since_last_docs) >= max_length:
            break
        since_last_docs.append(turn)
    since_last_docs.reverse()

    return filter_history(
        since_last_docs,
        namespace_is_known=namespace_is_known,
        connection_names=connection_names,
    )


def session_facts(
    history: Sequence[ChatTurn],
    *,
    namespace_is_known: bool = False,
    chat_id: str | None = None,
) -> HistoryFacts:
    """The facts of ``classify_history`` without building any messages.

    *chat_id* overrides the id derived from *history*, so a caller that
    already holds the session id does not mint a throwaway one.
    """
    previous = last_response(history)
    pending_database_name = None
    if previous is not None and previous.intent == Intent.ASK_FOR_NAMESPACE:
        pending_database_name = previous.result.metadata.database_name

    return HistoryFacts(
        chat_id=chat_id or get_chat_id_from_history_or_new(history),
        last_intent=previous.intent if previous is not None else None,
        namespace_is_known=namespace_is_known,
        pending_database_name=pending_database_name,
    )


def classify_history(
    history: Sequence[ChatTurn],
    *,
    namespace_is_known: bool,
    connection_names: Sequence[str] = (),
    token_limit: int | None = None,
    count_tokens: TokenCounter | None = None,
) -> HistoryFacts:
    """Filtered messages plus the facts later steps branch on.

    The result depends on *history* alone, except for the chat id of a
    history without any response turn, which is freshly generated.
    """
    return replace(
        session_facts(history, namespace_is_known=namespace_is_known),
        messages=filter_history(
            history,
            namespace_is_known=namespace_is_known,
            connection_names=connection_names,
            token_limit=token_limit,
            count_tokens=count_tokens,
        ),
    )

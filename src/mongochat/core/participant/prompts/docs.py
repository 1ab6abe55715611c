from __future__ import annotations

from dataclasses import dataclass

from mongochat.core.participant.history import (
    MAX_DOCS_HISTORY_LENGTH,
    filter_history_for_docs,
)

from .base import PromptArgs, message_length


@dataclass
class DocsMessage:
    """Single message sent to the docs service, with its own stats."""

    message: str
    history_size: int
    total_message_length: int


class DocsPrompt:
    """Builds the docs-service message from the docs-windowed history.

    The docs service keeps its own conversation, so only the turns since
    the last ``/docs`` request are replayed, joined ahead of the prompt.
    """

    def __init__(self, max_history_length: int = MAX_DOCS_HISTORY_LENGTH) -> None:
        self.max_history_length = max_history_length

    def build_message(self, args: PromptArgs) -> DocsMessage:
        history = args.context.history if args.context else ()
        messages = filter_history_for_docs(
            history,
            namespace_is_known=args.namespace_is_known,
            connection_names=args.connection_names,
            max_length=self.max_history_length,
        )
        previous = "\n\n".join(str(m.content) for m in messages)
        text = f"{previous}\n\n{args.request.prompt}" if previous else args.request.prompt
        return DocsMessage(
            message=text,
            history_size=len(messages),
            total_message_length=sum(message_length(m) for m in messages)
            + len(args.request.prompt),
        )

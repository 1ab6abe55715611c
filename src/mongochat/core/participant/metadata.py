"""Per-chat-session metadata store.

Maps a chat id to the namespace and docs-conversation id learned so far,
so a later turn can recover them when the model fails to re-derive the
namespace from free text. Entries live as long as the process; there is
no explicit teardown because a chat id simply stops appearing once the
host discards the conversation.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

MAX_RECENT_NAMES = 50


class ChatMetadata(BaseModel):
    """Namespace and docs-conversation state of one chat session."""

    model_config = ConfigDict(frozen=True)

    database_name: str | None = None
    collection_name: str | None = None
    external_conversation_id: str | None = None


class ChatMetadataStore:
    """In-memory chat id → ``ChatMetadata`` map.

    Writes replace or patch whole records (last write wins). The store
    also tracks recently used database and collection names, most recent
    first, to order the choices offered when a namespace is asked for.
    """

    def __init__(self) -> None:
        self._metadata: dict[str, ChatMetadata] = {}
        self._recent_databases: OrderedDict[str, None] = OrderedDict()
        self._recent_collections: dict[str, OrderedDict[str, None]] = {}

    def get_chat_metadata(self, chat_id: str) -> ChatMetadata | None:
        return self._metadata.get(chat_id)

    def set_chat_metadata(self, chat_id: str, metadata: ChatMetadata) -> None:
        self._metadata[chat_id] = metadata

    def patch_chat_metadata(self, chat_id: str, **fields: str | None) -> ChatMetadata:
        """Overwrite the given fields of the chat's metadata, keeping the rest."""
        current = self._metadata.get(chat_id) or ChatMetadata()
        updated = current.model_copy(update=fields)
        self._metadata[chat_id] = updated
        logger.debug("Chat metadata updated for %s: fields=%s", chat_id, list(fields))
        return updated

    # ------------------------------------------------------------------
    # Recently used names
    # ------------------------------------------------------------------

    def mark_used(self, database_name: str, collection_name: str | None = None) -> None:
        _touch(self._recent_databases, database_name)
        if collection_name is not None:
            recent = self._recent_collections.setdefault(database_name, OrderedDict())
            _touch(recent, collection_name)

    def recent_databases(self) -> list[str]:
        return list(reversed(self._recent_databases))

    def recent_collections(self, database_name: str) -> list[str]:
        return list(reversed(self._recent_collections.get(database_name, ())))

    def __len__(self) -> int:
        return len(self._metadata)


def _touch(recent: OrderedDict[str, None], name: str) -> None:
    recent.pop(name, None)
    recent[name] = None
    while len(recent) > MAX_RECENT_NAMES:
        recent.popitem(last=False)


def order_by_recency(names: list[str], recent: list[str]) -> list[str]:
    """Recently used names first (most recent first), then the rest in order."""
    available = set(names)
    head = [name for name in recent if name in available]
    seen = set(head)
    return head + [name for name in names if name not in seen]

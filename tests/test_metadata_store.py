"""Tests for the chat metadata store."""

from mongochat.core.participant.metadata import (
    MAX_RECENT_NAMES,
    ChatMetadata,
    ChatMetadataStore,
    order_by_recency,
)


class TestChatMetadataStore:
    def test_unknown_chat_has_no_metadata(self, metadata_store):
        assert metadata_store.get_chat_metadata("chat_missing") is None

    def test_set_replaces_whole_record(self, metadata_store):
        metadata_store.set_chat_metadata(
            "chat_1", ChatMetadata(database_name="ufo", collection_name="sightings")
        )
        metadata_store.set_chat_metadata("chat_1", ChatMetadata(database_name="zoo"))
        stored = metadata_store.get_chat_metadata("chat_1")
        assert stored == ChatMetadata(database_name="zoo")

    def test_patch_keeps_other_fields(self, metadata_store):
        metadata_store.patch_chat_metadata("chat_1", database_name="ufo")
        metadata_store.patch_chat_metadata("chat_1", external_conversation_id="conv-1")
        stored = metadata_store.get_chat_metadata("chat_1")
        assert stored.database_name == "ufo"
        assert stored.collection_name is None
        assert stored.external_conversation_id == "conv-1"

    def test_chats_are_isolated(self, metadata_store):
        metadata_store.patch_chat_metadata("chat_1", database_name="ufo")
        metadata_store.patch_chat_metadata("chat_2", database_name="zoo")
        assert metadata_store.get_chat_metadata("chat_1").database_name == "ufo"
        assert len(metadata_store) == 2


class TestRecentNames:
    def test_most_recent_first(self):
        store = ChatMetadataStore()
        store.mark_used("a")
        store.mark_used("b", "x")
        store.mark_used("a", "y")
        store.mark_used("b", "z")
        assert store.recent_databases() == ["b", "a"]
        assert store.recent_collections("b") == ["z", "x"]
        assert store.recent_collections("unknown") == []

    def test_recent_names_are_capped(self):
        store = ChatMetadataStore()
        for i in range(MAX_RECENT_NAMES + 5):
            store.mark_used(f"db{i}")
        recent = store.recent_databases()
        assert len(recent) == MAX_RECENT_NAMES
        assert recent[0] == f"db{MAX_RECENT_NAMES + 4}"
        assert "db0" not in recent

    def test_order_by_recency(self):
        names = ["admin", "shop", "ufo", "zoo"]
        assert order_by_recency(names, ["zoo", "gone", "shop"]) == [
            "zoo",
            "shop",
            "admin",
            "ufo",
        ]

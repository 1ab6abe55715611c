"""Tests for namespace extraction parsing, the state machine and rendering."""

import json
from urllib.parse import unquote

import pytest

from mongochat.core.participant.errors import (
    NamespaceEnumerationError,
    NoCollectionsFoundError,
    NoDatabasesFoundError,
)
from mongochat.core.participant.models import (
    HOST_COMMAND_SELECT_COLLECTION,
    HOST_COMMAND_SELECT_DATABASE,
    SHOW_MORE_LABEL,
)
from mongochat.core.participant.namespace import (
    AskForCollection,
    AskForDatabase,
    CollectionsListed,
    DatabasesListed,
    EnumerationFailed,
    Fail,
    InvalidTransitionError,
    ListCollections,
    ListDatabases,
    NamespaceExtracted,
    NamespaceState,
    Phase,
    Proceed,
    command_link,
    render_names,
    transition,
)
from mongochat.core.participant.prompts import parse_namespace_response

# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestParseNamespaceResponse:
    def test_both_names(self):
        parsed = parse_namespace_response("DATABASE_NAME: ufo\nCOLLECTION_NAME: sightings")
        assert parsed.database_name == "ufo"
        assert parsed.collection_name == "sightings"

    def test_values_are_trimmed(self):
        parsed = parse_namespace_response("  DATABASE_NAME:   ufo  \n")
        assert parsed.database_name == "ufo"
        assert parsed.collection_name is None

    def test_collection_only(self):
        parsed = parse_namespace_response("COLLECTION_NAME: pineapples")
        assert parsed.database_name is None
        assert parsed.collection_name == "pineapples"

    def test_no_names_found(self):
        parsed = parse_namespace_response("No names found.")
        assert parsed.database_name is None
        assert parsed.collection_name is None

    def test_blank_value_is_none(self):
        parsed = parse_namespace_response("DATABASE_NAME:\nCOLLECTION_NAME: x")
        assert parsed.database_name is None
        assert parsed.collection_name == "x"


# ---------------------------------------------------------------------------
# transition
# ---------------------------------------------------------------------------


class TestTransition:
    def test_nothing_known_lists_databases(self):
        state, output = transition(NamespaceState(), NamespaceExtracted())
        assert state.phase == Phase.AWAITING_DATABASE
        assert output == ListDatabases()

    def test_database_known_lists_collections(self):
        state, output = transition(NamespaceState(), NamespaceExtracted("ufo"))
        assert state == NamespaceState(Phase.AWAITING_COLLECTION, "ufo")
        assert output == ListCollections("ufo")

    def test_both_known_proceeds(self):
        state, output = transition(
            NamespaceState(), NamespaceExtracted("ufo", "sightings")
        )
        assert state.is_resolved
        assert output == Proceed("ufo", "sightings")

    def test_single_database_is_auto_selected(self):
        state, output = transition(
            NamespaceState(Phase.AWAITING_DATABASE), DatabasesListed(("ufo",))
        )
        assert state == NamespaceState(Phase.AWAITING_COLLECTION, "ufo")
        assert output == ListCollections("ufo")

    def test_many_databases_ask(self):
        state = NamespaceState(Phase.AWAITING_DATABASE)
        new_state, output = transition(state, DatabasesListed(("a", "b")))
        assert new_state == state
        assert output == AskForDatabase(("a", "b"))

    def test_no_databases_fails(self):
        state, output = transition(
            NamespaceState(Phase.AWAITING_DATABASE), DatabasesListed(())
        )
        assert state.phase == Phase.FAILED
        assert isinstance(output, Fail)
        assert isinstance(output.error, NoDatabasesFoundError)

    def test_single_collection_is_auto_selected(self):
        state, output = transition(
            NamespaceState(Phase.AWAITING_COLLECTION, "ufo"),
            CollectionsListed(("sightings",)),
        )
        assert state == NamespaceState(Phase.RESOLVED, "ufo", "sightings")
        assert output == Proceed("ufo", "sightings")

    def test_many_collections_ask(self):
        state, output = transition(
            NamespaceState(Phase.AWAITING_COLLECTION, "ufo"),
            CollectionsListed(("a", "b")),
        )
        assert state.phase == Phase.AWAITING_COLLECTION
        assert output == AskForCollection("ufo", ("a", "b"))

    def test_no_collections_fails(self):
        _, output = transition(
            NamespaceState(Phase.AWAITING_COLLECTION, "ufo"), CollectionsListed(())
        )
        assert isinstance(output.error, NoCollectionsFoundError)
        assert "ufo" in str(output.error)

    def test_enumeration_failure(self):
        cause = RuntimeError("auth failed")
        state, output = transition(
            NamespaceState(Phase.AWAITING_DATABASE),
            EnumerationFailed("databases", cause),
        )
        assert state.phase == Phase.FAILED
        assert isinstance(output.error, NamespaceEnumerationError)
        assert "auth failed" in str(output.error)

    @pytest.mark.parametrize(
        "state,event",
        [
            (NamespaceState(), DatabasesListed(("a",))),
            (NamespaceState(Phase.RESOLVED, "a", "b"), NamespaceExtracted("a")),
            (NamespaceState(Phase.AWAITING_DATABASE), CollectionsListed(("a",))),
            (NamespaceState(), EnumerationFailed("databases", RuntimeError())),
        ],
    )
    def test_invalid_events_raise(self, state, event):
        with pytest.raises(InvalidTransitionError):
            transition(state, event)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _payload(link: str) -> dict:
    query = link.split("?", 1)[1].rstrip(")")
    return json.loads(unquote(query))


class TestRenderNames:
    def test_command_link_encodes_json(self):
        link = command_link("ufo", HOST_COMMAND_SELECT_DATABASE, {"chatId": "c", "databaseName": "ufo"})
        assert link.startswith(f"[ufo](command:{HOST_COMMAND_SELECT_DATABASE}?")
        assert _payload(link) == {"chatId": "c", "databaseName": "ufo"}

    def test_databases_link_payload(self):
        rendered = render_names(["ufo"], chat_id="chat_1", database_name=None, recent=[])
        assert rendered.startswith("- [ufo]")
        assert _payload(rendered) == {"chatId": "chat_1", "databaseName": "ufo"}

    def test_collection_link_payload(self):
        rendered = render_names(
            ["sightings"], chat_id="chat_1", database_name="ufo", recent=[]
        )
        assert HOST_COMMAND_SELECT_COLLECTION in rendered
        assert _payload(rendered) == {
            "chatId": "chat_1",
            "databaseName": "ufo",
            "collectionName": "sightings",
        }

    def test_capped_with_show_more(self):
        names = [f"db{i}" for i in range(12)]
        lines = render_names(
            names, chat_id="chat_1", database_name=None, recent=[], max_length=10
        ).split("\n")
        assert len(lines) == 11
        assert lines[-1].startswith(f"- [{SHOW_MORE_LABEL}]")
        assert _payload(lines[-1]) == {"chatId": "chat_1"}

    def test_recent_names_come_first(self):
        lines = render_names(
            ["a", "b", "c"], chat_id="chat_1", database_name=None, recent=["c"]
        ).split("\n")
        assert lines[0].startswith("- [c]")

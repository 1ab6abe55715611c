"""Tests for the prompt builders and sample-document degradation."""

import datetime

from bson import ObjectId
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from conftest import FakeModelProvider, request_turn, response_turn
from mongochat.core.participant.models import ChatContext, ChatRequest, Intent
from mongochat.core.participant.prompts import (
    DocsPrompt,
    ExportToLanguagePromptArgs,
    PromptArgs,
    Prompts,
    PromptIntent,
    QueryPromptArgs,
    SchemaPromptArgs,
    resolve_reconnect_request,
)
from mongochat.core.participant.prompts.query import (
    DEFAULT_COLLECTION_NAME,
    DEFAULT_DATABASE_NAME,
)
from mongochat.core.participant.prompts.sample_documents import (
    SAMPLE_DOCUMENTS_HEADER,
    get_stringified_sample_documents,
    simplify_document,
    to_extended_json,
)

DOCUMENTS = [
    {"_id": 1, "name": "Roswell", "tags": ["a", "b", "c", "d", "e"]},
    {"_id": 2, "name": "Area 51", "tags": []},
    {"_id": 3, "name": "Rendlesham", "tags": ["x"]},
]


class Budget:
    def __init__(self, max_input_tokens):
        self.max_input_tokens = max_input_tokens

    def count_tokens(self, text):
        return len(text)


# ---------------------------------------------------------------------------
# Base builder
# ---------------------------------------------------------------------------


class TestBuildMessages:
    def test_instruction_history_then_prompt(self):
        context = ChatContext(
            history=(
                request_turn("first"),
                response_turn("answer", intent=Intent.GENERIC),
            )
        )
        model_input = Prompts.generic.build_messages(
            PromptArgs(request=ChatRequest(prompt="second"), context=context)
        )
        messages = model_input.messages
        assert isinstance(messages[0], SystemMessage)
        assert [type(m) for m in messages[1:]] == [HumanMessage, AIMessage, HumanMessage]
        assert messages[-1].content == "second"
        assert model_input.stats.command == "generic"
        assert model_input.stats.history_size == 2
        assert model_input.stats.user_input_length == len("second")

    def test_history_trimmed_to_token_budget(self):
        context = ChatContext(history=(request_turn("x" * 500), request_turn("recent")))
        request = ChatRequest(prompt="now")
        instruction = Prompts.generic.get_assistant_prompt(PromptArgs(request=request))
        budget = Budget(len(instruction) + len("now") + len("recent"))

        messages = Prompts.generic.build_messages(
            PromptArgs(request=request, context=context), budget
        ).messages

        assert [m.content for m in messages[1:]] == ["recent", "now"]

    def test_internal_purpose_is_reported(self):
        stats = Prompts.namespace.build_messages(
            PromptArgs(request=ChatRequest(prompt="ufo.sightings"))
        ).stats
        assert stats.internal_purpose == "namespace"


class TestReconnectRewrite:
    def test_connection_click_resumes_previous_request(self):
        history = (
            request_turn("earlier", command="docs"),
            response_turn("docs answer", intent=Intent.DOCS),
            request_turn("find ufo sightings", command="query"),
            response_turn("Let's connect", intent=Intent.ASK_TO_CONNECT),
        )
        request, rewritten = resolve_reconnect_request(
            ChatRequest(prompt="local"), history, ["local"]
        )
        assert request == ChatRequest(prompt="find ufo sightings", command="query")
        assert rewritten == history[:2]

    def test_unchanged_without_ask_to_connect(self):
        history = (
            request_turn("find ufo sightings"),
            response_turn("answer", intent=Intent.GENERIC),
        )
        request, rewritten = resolve_reconnect_request(
            ChatRequest(prompt="local"), history, ["local"]
        )
        assert request.prompt == "local"
        assert rewritten == history


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------


class TestIntentPrompt:
    def test_known_intents(self):
        assert Prompts.intent.get_intent_from_model_response(" Query\n") == PromptIntent.QUERY
        assert Prompts.intent.get_intent_from_model_response("Docs") == PromptIntent.DOCS

    def test_unknown_answer_is_default(self):
        assert (
            Prompts.intent.get_intent_from_model_response("I think it's a query")
            == PromptIntent.DEFAULT
        )


# ---------------------------------------------------------------------------
# Query and schema
# ---------------------------------------------------------------------------


class TestQueryPrompt:
    def test_namespace_and_schema_in_user_prompt(self):
        args = QueryPromptArgs(
            request=ChatRequest(prompt="count docs", command="query"),
            database_name="ufo",
            collection_name="sightings",
            schema="_id: Int32\nname: String",
        )
        messages = Prompts.query.build_messages(args, FakeModelProvider()).messages
        prompt = messages[-1].content
        assert prompt.startswith(
            "count docs\nDatabase name: ufo\nCollection name: sightings\n"
        )
        assert "Collection schema:\n_id: Int32\nname: String\n" in prompt
        assert "```javascript" in messages[0].content

    def test_defaults_without_namespace(self):
        args = QueryPromptArgs(request=ChatRequest(prompt="insert a doc"))
        prompt = Prompts.query.build_messages(args).messages[-1].content
        assert f"Database name: {DEFAULT_DATABASE_NAME}" in prompt
        assert f"Collection name: {DEFAULT_COLLECTION_NAME}" in prompt

    def test_sample_documents_reported_in_stats(self):
        args = QueryPromptArgs(
            request=ChatRequest(prompt="find", command="query"),
            database_name="ufo",
            collection_name="sightings",
            sample_documents=DOCUMENTS,
        )
        model_input = Prompts.query.build_messages(args, FakeModelProvider())
        assert SAMPLE_DOCUMENTS_HEADER in model_input.messages[-1].content
        assert model_input.stats.has_sample_documents is True

    def test_samples_dropped_when_they_do_not_fit(self):
        args = QueryPromptArgs(
            request=ChatRequest(prompt="find", command="query"),
            database_name="ufo",
            collection_name="sightings",
            sample_documents=DOCUMENTS,
        )
        instruction = Prompts.query.get_assistant_prompt(args)
        model = FakeModelProvider(max_input_tokens=len(instruction) + 80)
        model_input = Prompts.query.build_messages(args, model)
        assert SAMPLE_DOCUMENTS_HEADER not in model_input.messages[-1].content
        assert model_input.stats.has_sample_documents is False


class TestSchemaPrompt:
    def test_amount_and_schema(self):
        args = SchemaPromptArgs(
            request=ChatRequest(prompt="", command="schema"),
            database_name="ufo",
            collection_name="sightings",
            schema="name: String",
            amount_of_documents_sampled=42,
        )
        messages = Prompts.schema.build_messages(args).messages
        assert messages[0].content.endswith("Amount of documents sampled: 42.")
        assert messages[-1].content == (
            "Database name: ufo\nCollection name: sightings\nSchema:\nname: String"
        )

    def test_additional_user_information(self):
        args = SchemaPromptArgs(
            request=ChatRequest(prompt="focus on dates", command="schema"),
            database_name="ufo",
            collection_name="sightings",
        )
        prompt = Prompts.schema.build_messages(args).messages[-1].content
        assert prompt.startswith('The user provided additional information: "focus on dates"\n')


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------


class TestSampleDocuments:
    def test_all_samples_when_they_fit(self):
        section = get_stringified_sample_documents("p", DOCUMENTS, Budget(10_000))
        assert section.startswith(SAMPLE_DOCUMENTS_HEADER)
        assert "Rendlesham" in section

    def test_single_simplified_document_when_only_it_fits(self):
        all_section = SAMPLE_DOCUMENTS_HEADER + to_extended_json(DOCUMENTS) + "\n"
        budget = Budget(len("p") + len(all_section) - 1)
        section = get_stringified_sample_documents("p", DOCUMENTS, budget)
        assert "Roswell" in section
        assert "Area 51" not in section
        assert '"d"' not in section

    def test_nothing_when_nothing_fits(self):
        assert get_stringified_sample_documents("p", DOCUMENTS, Budget(10)) == ""

    def test_reserved_tokens_reduce_budget(self):
        assert (
            get_stringified_sample_documents(
                "p", DOCUMENTS, Budget(10_000), reserved_tokens=10_000
            )
            == ""
        )

    def test_no_samples_or_model(self):
        assert get_stringified_sample_documents("p", [], Budget(10_000)) == ""
        assert get_stringified_sample_documents("p", DOCUMENTS, None) == ""

    def test_simplify_truncates_nested_arrays(self):
        document = {"a": [1, 2, 3, 4], "b": {"c": [[1, 2, 3, 4]]}}
        assert simplify_document(document, 2) == {"a": [1, 2], "b": {"c": [[1, 2]]}}

    def test_extended_json_keeps_bson_types(self):
        oid = ObjectId("65a1b2c3d4e5f60718293a4b")
        text = to_extended_json(
            [{"_id": oid, "at": datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)}]
        )
        assert '{"$oid": "65a1b2c3d4e5f60718293a4b"}' in text
        assert '"$date"' in text


# ---------------------------------------------------------------------------
# Docs and export
# ---------------------------------------------------------------------------


class TestDocsPrompt:
    def test_joins_turns_since_last_docs_request(self):
        context = ChatContext(
            history=(
                request_turn("old docs question", command="docs"),
                request_turn("what is an index"),
                response_turn("An index is ...", intent=Intent.GENERIC),
            )
        )
        message = DocsPrompt().build_message(
            PromptArgs(request=ChatRequest(prompt="how to create one", command="docs"), context=context)
        )
        assert message.message == "what is an index\n\nAn index is ...\n\nhow to create one"
        assert message.history_size == 2

    def test_prompt_only_without_history(self):
        message = DocsPrompt().build_message(
            PromptArgs(request=ChatRequest(prompt="what is $lookup", command="docs"))
        )
        assert message.message == "what is $lookup"
        assert message.history_size == 0


class TestExportToLanguagePrompt:
    def test_driver_syntax_flag(self):
        args = ExportToLanguagePromptArgs(
            request=ChatRequest(prompt="db.a.find()"),
            language="java",
            include_driver_syntax=True,
        )
        messages = Prompts.export_to_language.build_messages(args).messages
        assert "```java" in messages[0].content
        assert messages[-1].content.endswith("Include driver syntax.")

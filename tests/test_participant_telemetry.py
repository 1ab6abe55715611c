"""Tests for participant telemetry events."""

from mongochat.core.participant.errors import ParticipantErrorType
from mongochat.core.participant.metadata import ChatMetadata
from mongochat.core.participant.prompts import PromptStats
from mongochat.core.participant.telemetry import (
    REDACTED,
    ParticipantTelemetry,
    TelemetryEvent,
    scrub_metadata,
)


class FailingSink:
    def track(self, event_name, properties):
        raise RuntimeError("sink down")


class TestScrubMetadata:
    def test_replaces_every_metadata_value(self):
        metadata = ChatMetadata(
            database_name="ufo",
            collection_name="sightings",
            external_conversation_id="conv-42",
        )
        message = "ns ufo.sightings not found in conv-42"
        assert scrub_metadata(message, metadata) == (
            f"ns {REDACTED}.{REDACTED} not found in {REDACTED}"
        )

    def test_longest_value_first(self):
        metadata = ChatMetadata(database_name="shop", collection_name="shop_orders")
        assert scrub_metadata("missing shop_orders", metadata) == f"missing {REDACTED}"

    def test_without_metadata_message_is_unchanged(self):
        assert scrub_metadata("plain", None) == "plain"


class TestParticipantTelemetry:
    def test_prompt_submitted_carries_stats(self, telemetry, sink):
        telemetry.track_prompt_submitted(
            PromptStats(
                command="query",
                total_message_length=120,
                user_input_length=12,
                has_sample_documents=True,
                history_size=2,
            )
        )
        [props] = sink.named(TelemetryEvent.PROMPT_SUBMITTED)
        assert props["command"] == "query"
        assert props["has_sample_documents"] is True
        assert props["internal_purpose"] is None

    def test_response_failed_is_scrubbed(self, telemetry, sink):
        telemetry.track_response_failed(
            command="docs",
            error_type=ParticipantErrorType.DOCS_CHATBOT_API,
            error_code=429,
            error_details="Rate limited for ufo",
            metadata=ChatMetadata(database_name="ufo"),
        )
        [props] = sink.named(TelemetryEvent.RESPONSE_FAILED)
        assert props == {
            "command": "docs",
            "error_name": "Docs Chatbot API Issue",
            "error_code": "429",
            "error_details": f"Rate limited for {REDACTED}",
        }

    def test_feedback_event(self, telemetry, sink):
        telemetry.track_feedback(
            chat_id="chat_1", reaction="negative", intent="query", reason="wrong"
        )
        [props] = sink.named(TelemetryEvent.FEEDBACK)
        assert props["reaction"] == "negative"
        assert props["intent"] == "query"

    def test_failing_sink_does_not_raise(self, caplog):
        telemetry = ParticipantTelemetry(FailingSink())
        telemetry.track_response_generated(command="generic", output_length=3)
        assert "Telemetry sink failed" in caplog.text

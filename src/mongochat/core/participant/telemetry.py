"""Participant telemetry: named events sent to a pluggable sink.

Events carry only lengths, flags and category names, never model output
or document content. Error details are scrubbed of the chat's namespace
and docs-conversation id before they leave the process. A failing sink is
logged and ignored; telemetry never interrupts a chat request.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Protocol

from .errors import ParticipantErrorType
from .metadata import ChatMetadata
from .metrics import DOCS_FALLBACKS_TOTAL, RESPONSE_FAILURES_TOTAL
from .prompts.base import PromptStats

logger = logging.getLogger(__name__)

REDACTED = "<redacted>"


class TelemetryEvent(StrEnum):
    PROMPT_SUBMITTED = "Participant Prompt Submitted"
    RESPONSE_GENERATED = "Participant Response Generated"
    RESPONSE_FAILED = "Participant Response Failed"
    FEEDBACK = "Participant Feedback"


class TelemetrySink(Protocol):
    def track(self, event_name: str, properties: Mapping[str, Any]) -> None: ...


class LoggingTelemetrySink:
    """Default sink: one structured log record per event."""

    def __init__(self, logger_name: str = "mongochat.telemetry") -> None:
        self._logger = logging.getLogger(logger_name)

    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        self._logger.info(
            event_name,
            extra={"telemetry_event": event_name, "properties": dict(properties)},
        )


def scrub_metadata(message: str, metadata: ChatMetadata | None) -> str:
    """Replace every ChatMetadata value found in *message*."""
    if metadata is None:
        return message
    values = [
        metadata.database_name,
        metadata.collection_name,
        metadata.external_conversation_id,
    ]
    # Longest first so a name containing another is fully replaced.
    for value in sorted((v for v in values if v), key=len, reverse=True):
        message = message.replace(value, REDACTED)
    return message


class ParticipantTelemetry:
    """Typed helpers for every participant telemetry event."""

    def __init__(self, sink: TelemetrySink | None = None) -> None:
        self.sink = sink or LoggingTelemetrySink()

    def _track(self, event: TelemetryEvent, properties: dict[str, Any]) -> None:
        try:
            self.sink.track(event.value, properties)
        except Exception:
            logger.warning("Telemetry sink failed for %s", event.value, exc_info=True)

    def track_prompt_submitted(self, stats: PromptStats) -> None:
        self._track(TelemetryEvent.PROMPT_SUBMITTED, stats.model_dump())

    def track_response_generated(
        self,
        *,
        command: str,
        output_length: int,
        has_cta: bool = False,
        has_runnable_content: bool = False,
        found_namespace: bool = False,
        backend_used: str | None = None,
    ) -> None:
        self._track(
            TelemetryEvent.RESPONSE_GENERATED,
            {
                "command": command,
                "output_length": output_length,
                "has_cta": has_cta,
                "has_runnable_content": has_runnable_content,
                "found_namespace": found_namespace,
                "backend_used": backend_used,
            },
        )

    def track_response_failed(
        self,
        *,
        command: str,
        error_type: ParticipantErrorType,
        error_code: str | int | None = None,
        error_details: str | None = None,
        metadata: ChatMetadata | None = None,
    ) -> None:
        RESPONSE_FAILURES_TOTAL.labels(error_type=error_type.value).inc()
        if error_type == ParticipantErrorType.DOCS_CHATBOT_API:
            DOCS_FALLBACKS_TOTAL.inc()
        properties: dict[str, Any] = {
            "command": command,
            "error_name": error_type.value,
        }
        if error_code is not None:
            properties["error_code"] = str(error_code)
        if error_details:
            properties["error_details"] = scrub_metadata(error_details, metadata)
        self._track(TelemetryEvent.RESPONSE_FAILED, properties)

    def track_feedback(
        self,
        *,
        chat_id: str,
        reaction: str,
        intent: str | None,
        reason: str | None = None,
    ) -> None:
        self._track(
            TelemetryEvent.FEEDBACK,
            {
                "chat_id": chat_id,
                "reaction": reaction,
                "intent": intent,
                "reason": reason,
            },
        )

"""OpenTelemetry bootstrap: tracing initialisation and span names.

Configures a ``TracerProvider`` with an OTLP HTTP exporter when tracing is
enabled via ``TracingConfig``. When disabled the module is a graceful no-op
and ``tracer`` hands out non-recording spans.

Auto-instrumentations wired here:

- **FastAPI** (inbound HTTP spans)
- **httpx** (outbound HTTP spans: the docs chatbot and ``langchain-openai``)

Usage::

    from mongochat.infra.telemetry import SPAN_NAMESPACE_RESOLVE, tracer

    with tracer.start_as_current_span(SPAN_NAMESPACE_RESOLVE) as span:
        ...
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI
from opentelemetry import trace

from mongochat.configs.config import AppConfig, get_app_config
from mongochat.configs.system import TracingConfig
from mongochat.infra.lifespan import get_app

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("mongochat")

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

SPAN_CHAT_HANDLER = "participant.chat_handler"
SPAN_INTENT_DETECT = "participant.intent"
SPAN_NAMESPACE_RESOLVE = "participant.namespace.resolve"
SPAN_NAMESPACE_ENUMERATE = "participant.namespace.enumerate"
SPAN_SAMPLE_DOCUMENTS = "participant.sample_documents"
SPAN_BACKEND_ANSWER = "participant.backend.answer"
SPAN_DOCS_CHATBOT = "participant.docs_chatbot"
SPAN_SSE_STREAM = "sse.stream"

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_CHAT_COMMAND = "chat.command"
ATTR_CHAT_INTENT = "chat.intent"
ATTR_CHAT_HISTORY_SIZE = "chat.history_size"

ATTR_NAMESPACE_PHASE = "namespace.phase"
ATTR_NAMESPACE_CANDIDATES = "namespace.candidates"

ATTR_SAMPLE_SIZE = "sample.size"
ATTR_SAMPLE_RETURNED = "sample.returned"

ATTR_BACKEND_USED = "backend.used"
ATTR_BACKEND_DOCS_ATTEMPT = "backend.docs_attempt"

ATTR_SSE_ERROR_CODE = "sse.error_code"
ATTR_SSE_EVENT_COUNTS = "sse.event_counts"


def init_telemetry(
    app: object | None = None,
    settings: TracingConfig | None = None,
) -> None:
    """Initialise the OTEL ``TracerProvider`` and auto-instrumentations.

    Parameters
    ----------
    app:
        The FastAPI application instance, instrumented for inbound spans.
    settings:
        Tracing configuration. When ``None`` or ``enabled`` is ``False``,
        this function is a no-op.
    """
    if settings is None or not settings.enabled:
        logger.info("OpenTelemetry tracing disabled.")
        return

    if not settings.endpoint:
        logger.warning(
            "Tracing enabled but no endpoint configured, "
            "skipping OpenTelemetry setup."
        )
        return

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

    resource = Resource.create({"service.name": settings.service_name})
    sampler = ParentBased(root=TraceIdRatioBased(settings.sample_rate))
    provider = TracerProvider(resource=resource, sampler=sampler)

    headers: dict[str, str] = {}
    if settings.username and settings.password:
        credentials = f"{settings.username}:{settings.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        headers["Authorization"] = f"Basic {encoded}"

    exporter = OTLPSpanExporter(endpoint=settings.endpoint, headers=headers)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        excluded = ",".join(settings.excluded_urls) if settings.excluded_urls else ""
        FastAPIInstrumentor.instrument_app(app, excluded_urls=excluded)

    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()

    logger.info(
        "OpenTelemetry tracing initialised (service=%s).", settings.service_name
    )


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_telemetry(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[None, None]:
    """Initialise OTEL tracing for the app."""
    init_telemetry(app, config.tracing)
    yield

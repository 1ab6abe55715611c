"""Prometheus metrics for the MongoDB chat participant.

Custom business metrics that complement the auto-instrumented HTTP
metrics provided by ``prometheus-fastapi-instrumentator``.

All metrics use the ``mongochat_`` prefix.
"""

import asyncio
import functools
import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Annotated, Any, TypeVar

from fastapi import Depends, FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from mongochat.configs.system import TracingConfig
from mongochat.infra.cancellation import RequestCancelled
from mongochat.infra.lifespan import get_app

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Chat request metrics
# ---------------------------------------------------------------------------

CHAT_REQUESTS_ACTIVE = Gauge(
    "mongochat_chat_requests_active",
    "Number of chat requests currently being handled",
)

CHAT_REQUESTS_TOTAL = Counter(
    "mongochat_chat_requests_total",
    "Total chat requests handled",
    ["command", "status"],  # status: ok | error | cancelled
)

CHAT_REQUEST_DURATION_SECONDS = Histogram(
    "mongochat_chat_request_duration_seconds",
    "End-to-end duration of a chat request",
    ["command"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120),
)

CHAT_RESULTS_TOTAL = Counter(
    "mongochat_chat_results_total",
    "Total chat results, by intent",
    ["intent"],
)

# ---------------------------------------------------------------------------
# Backend metrics
# ---------------------------------------------------------------------------

RESPONSE_FAILURES_TOTAL = Counter(
    "mongochat_response_failures_total",
    "Total classified backend failures",
    ["error_type"],
)

DOCS_FALLBACKS_TOTAL = Counter(
    "mongochat_docs_fallbacks_total",
    "Total docs requests answered by the general model after a docs service failure",
)

# ---------------------------------------------------------------------------
# SSE stream metrics
# ---------------------------------------------------------------------------

SSE_STREAM_OUTCOMES_TOTAL = Counter(
    "mongochat_sse_stream_outcomes_total",
    "SSE stream outcomes, by error code",
    ["code"],  # ok | MODEL_UNREACHABLE | MODEL_ERROR | REQUEST_TIMEOUT | ...
)

SSE_EVENTS_TOTAL = Counter(
    "mongochat_sse_events_total",
    "Total SSE events emitted, by event type",
    ["event_type"],  # markdown | button | reference | result | error
)

# ---------------------------------------------------------------------------
# Namespace and enrichment metrics
# ---------------------------------------------------------------------------

NAMESPACE_RESOLUTIONS_TOTAL = Counter(
    "mongochat_namespace_resolutions_total",
    "Namespace resolution outcomes",
    ["outcome"],  # resolved | asked | failed
)

SAMPLE_ENRICHMENT_TOTAL = Counter(
    "mongochat_sample_enrichment_total",
    "Sample-document enrichment outcomes for query prompts",
    ["result"],  # included | omitted | failed
)


# ---------------------------------------------------------------------------
# Decorator
# ---------------------------------------------------------------------------

T = TypeVar("T")


def observe_chat_request(
    fn: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Decorator for ``chat_handler`` that records request metrics.

    Tracks the active-request gauge, the request counter by outcome
    (ok / error / cancelled), the duration histogram and, on success,
    the result intent. The command label is read from the ``request``
    argument.
    """

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        request = kwargs.get("request", args[1] if len(args) > 1 else None)
        command = getattr(request, "command", None) or "generic"

        CHAT_REQUESTS_ACTIVE.inc()
        start = time.monotonic()
        status = "ok"
        try:
            result = await fn(*args, **kwargs)
            intent = getattr(getattr(result, "metadata", None), "intent", None)
            if intent is not None:
                CHAT_RESULTS_TOTAL.labels(intent=str(intent)).inc()
            return result
        except (asyncio.CancelledError, RequestCancelled):
            status = "cancelled"
            raise
        except Exception:
            status = "error"
            raise
        finally:
            CHAT_REQUESTS_ACTIVE.dec()
            CHAT_REQUESTS_TOTAL.labels(command=command, status=status).inc()
            CHAT_REQUEST_DURATION_SECONDS.labels(command=command).observe(
                time.monotonic() - start
            )

    return wrapper


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


def instrument_app(app: FastAPI, config: TracingConfig) -> None:
    """Add the HTTP metrics middleware; must run before the app starts."""
    app.state.instrumentator = Instrumentator(
        should_instrument_requests_inprogress=True,
        excluded_handlers=config.excluded_urls,
    ).instrument(app)


async def build_metrics(
    app: Annotated[FastAPI, Depends(get_app)],
) -> AsyncGenerator[None, None]:
    """Expose the ``/metrics`` endpoint of the instrumented *app*."""
    app.state.instrumentator.expose(app, endpoint="/metrics")

    logger.info("Prometheus metrics initialised")
    yield

"""Reusable SSE streaming infrastructure.

``chat_events`` runs ``chat_handler`` in a task and turns its response
stream into an async generator of events ending with the ``ChatResult``.
``sse_stream`` formats those events as SSE with timeout enforcement,
error boundaries and metrics. When the client goes away or the timeout
fires, the request's ``CancellationToken`` is cancelled so outbound model,
docs and database calls stop.
"""

import asyncio
import json
import logging
from collections import Counter as EventCounter
from collections.abc import AsyncGenerator
from datetime import timedelta

from openai import APIConnectionError

from mongochat.core.participant.errors import (
    ConnectionUnavailableError,
    ModelResponseError,
    NamespaceResolutionError,
)
from mongochat.core.participant.metrics import SSE_EVENTS_TOTAL, SSE_STREAM_OUTCOMES_TOTAL
from mongochat.core.participant.models import (
    ChatContext,
    ChatRequest,
    EventResponseStream,
    ResponseEvent,
)
from mongochat.core.participant.participant import ParticipantController
from mongochat.infra.cancellation import CancellationToken
from mongochat.infra.telemetry import (
    ATTR_SSE_ERROR_CODE,
    ATTR_SSE_EVENT_COUNTS,
    SPAN_SSE_STREAM,
    tracer,
)

from .models import ErrorEvent, ResultEvent, StreamEvent, format_error_sse, format_sse

logger = logging.getLogger(__name__)


async def chat_events(
    controller: ParticipantController,
    request: ChatRequest,
    context: ChatContext,
    token: CancellationToken,
) -> AsyncGenerator[StreamEvent, None]:
    """Yield response events as ``chat_handler`` writes them, then the result."""
    queue: asyncio.Queue[ResponseEvent | None] = asyncio.Queue()
    stream = EventResponseStream(on_event=queue.put_nowait)

    async def run():
        try:
            return await controller.chat_handler(request, context, stream, token)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(run())
    try:
        while (event := await queue.get()) is not None:
            yield event
        yield ResultEvent(result=await task)
    finally:
        if not task.done():
            # chat_handler resolves to a cancelled result on its own.
            token.cancel()


def _is_unreachable(exc: ModelResponseError) -> bool:
    return isinstance(exc.__cause__, APIConnectionError)


async def sse_stream(
    events: AsyncGenerator[StreamEvent, None],
    *,
    request_timeout: timedelta,
    send_traceback: bool = False,
) -> AsyncGenerator[str, None]:
    """Format events as SSE with timeout, error handling and metrics.

    Parameters
    ----------
    events:
        Async generator of API events (see ``chat_events``).
    request_timeout:
        Wall-clock timeout for the entire streaming lifecycle.

    Yields
    ------
    SSE-formatted strings (``data: {...}\\n\\n``).
    """
    with tracer.start_as_current_span(SPAN_SSE_STREAM) as span:
        code = "ok"
        event_counts: EventCounter[str] = EventCounter()
        try:
            async with asyncio.timeout(request_timeout.total_seconds()):
                async for event in events:
                    event_counts[event.type] += 1
                    SSE_EVENTS_TOTAL.labels(event_type=event.type).inc()
                    yield format_sse(event)

        except ModelResponseError as e:
            code = "MODEL_UNREACHABLE" if _is_unreachable(e) else "MODEL_ERROR"
            logger.warning("Chat model request failed: %s", e.error_type)
            message = (
                "Model is temporarily unavailable. Please try again later."
                if code == "MODEL_UNREACHABLE"
                else f"The model request failed: {e.error_type.value}"
            )
            yield format_sse(ErrorEvent(message=message, code=code))
        except NamespaceResolutionError as e:
            code = "NAMESPACE_ERROR"
            logger.info("Namespace resolution aborted the turn: %s", e)
            yield format_sse(ErrorEvent(message=str(e), code=code))
        except ConnectionUnavailableError as e:
            code = "CONNECTION_ERROR"
            logger.warning("Data connection unavailable: %s", e)
            yield format_sse(ErrorEvent(message=str(e), code=code))
        except TimeoutError:
            code = "REQUEST_TIMEOUT"
            logger.warning("Request timed out after %s.", request_timeout)
            yield format_sse(ErrorEvent(message="Request timed out.", code=code))
        except asyncio.CancelledError:
            code = "CANCELLED"
            raise
        except Exception as e:
            code = "PROCESSING_ERROR"
            span.record_exception(e)
            logger.warning("Unexpected error in SSE stream", exc_info=True)
            yield format_error_sse(e, send_traceback=send_traceback)
        finally:
            await events.aclose()
            span.set_attribute(ATTR_SSE_ERROR_CODE, code)
            span.set_attribute(ATTR_SSE_EVENT_COUNTS, json.dumps(event_counts))
            SSE_STREAM_OUTCOMES_TOTAL.labels(code=code).inc()

"""Cooperative cancellation for externally-bound calls.

A ``CancellationToken`` is created per inbound chat request and threaded
through every model call, docs-service call and database enumeration.
``run_cancellable`` races an awaitable against the token: when the token
fires first the underlying task is cancelled (closing its HTTP request or
cursor) and ``RequestCancelled`` is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCancelled(Exception):
    """The caller cancelled the request before the operation finished."""


class CancellationToken:
    """One-shot cancellation signal shared by all steps of a request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Cancellation callback failed", exc_info=True)

    def on_cancellation_requested(self, callback: Callable[[], None]) -> None:
        """Register *callback*; runs immediately if already cancelled."""
        if self._event.is_set():
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled()

    async def wait(self) -> None:
        await self._event.wait()


async def run_cancellable(
    awaitable: Awaitable[T], token: CancellationToken | None
) -> T:
    """Await *awaitable* unless *token* fires first.

    Raises:
        RequestCancelled: the token was cancelled before completion.
    """
    if token is None:
        return await awaitable

    if token.is_cancellation_requested:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise RequestCancelled()


async def _next_item(iterator: AsyncIterator[T]) -> tuple[bool, T | None]:
    try:
        return True, await iterator.__anext__()
    except StopAsyncIteration:
        return False, None


async def iterate_cancellable(
    iterator: AsyncIterator[T], token: CancellationToken | None
) -> AsyncIterator[T]:
    """Yield from *iterator*, racing every step against *token*."""
    try:
        while True:
            has_item, item = await run_cancellable(_next_item(iterator), token)
            if not has_item:
                return
            yield item  # type: ignore[misc]
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

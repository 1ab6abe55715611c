"""Tests for cooperative cancellation helpers."""

import asyncio

import pytest

from mongochat.infra.cancellation import (
    CancellationToken,
    RequestCancelled,
    iterate_cancellable,
    run_cancellable,
)


class TestCancellationToken:
    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancellation_requested(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert calls == [1]
        assert token.is_cancellation_requested

    def test_callback_registered_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.on_cancellation_requested(lambda: calls.append(1))
        assert calls == [1]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(RequestCancelled):
            token.raise_if_cancelled()


class TestRunCancellable:
    @pytest.mark.asyncio
    async def test_returns_result_without_token(self):
        async def work():
            return 42

        assert await run_cancellable(work(), None) == 42

    @pytest.mark.asyncio
    async def test_returns_result_before_cancel(self):
        async def work():
            return "done"

        assert await run_cancellable(work(), CancellationToken()) == "done"

    @pytest.mark.asyncio
    async def test_cancel_interrupts_pending_work(self):
        token = CancellationToken()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def work():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def cancel_soon():
            await started.wait()
            token.cancel()

        asyncio.create_task(cancel_soon())
        with pytest.raises(RequestCancelled):
            await run_cancellable(work(), token)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel()

        async def work():
            raise AssertionError("must not run")

        with pytest.raises(RequestCancelled):
            await run_cancellable(work(), token)

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def work():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await run_cancellable(work(), CancellationToken())


class TestIterateCancellable:
    @pytest.mark.asyncio
    async def test_yields_all_items(self):
        async def numbers():
            for i in range(3):
                yield i

        items = [i async for i in iterate_cancellable(numbers(), CancellationToken())]
        assert items == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stops_when_cancelled(self):
        token = CancellationToken()
        closed = asyncio.Event()

        async def endless():
            try:
                i = 0
                while True:
                    yield i
                    i += 1
                    await asyncio.sleep(0)
            finally:
                closed.set()

        received = []
        with pytest.raises(RequestCancelled):
            async for item in iterate_cancellable(endless(), token):
                received.append(item)
                if item == 2:
                    token.cancel()

        assert received == [0, 1, 2]
        assert closed.is_set()

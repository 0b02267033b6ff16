"""Unit tests for Future."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Callable

import pytest

from resilience_runtime.exceptions import (
    CancellationError,
    OperationTimeoutError,
    TaskExecutionError,
)
from resilience_runtime.future import Future, FutureState


class TestFutureTransitions:
    """Tests for the one-shot state machine."""

    def test_starts_pending(self) -> None:
        future: Future[int] = Future()
        assert future.state is FutureState.PENDING
        assert not future.is_done()

    def test_complete(self) -> None:
        future: Future[int] = Future()
        assert future.complete(5) is True
        assert future.state is FutureState.FULFILLED
        assert future.get() == 5

    def test_fail(self) -> None:
        future: Future[int] = Future()
        error = ValueError("bad")
        assert future.fail(error) is True
        assert future.state is FutureState.REJECTED
        with pytest.raises(ValueError, match="bad"):
            future.get()

    def test_cancel(self) -> None:
        future: Future[int] = Future()
        assert future.cancel() is True
        assert future.cancelled()
        with pytest.raises(CancellationError):
            future.get()

    @pytest.mark.parametrize(
        "first",
        [
            lambda f: f.complete(1),
            lambda f: f.fail(RuntimeError("x")),
            lambda f: f.cancel(),
        ],
    )
    def test_second_transition_is_noop(self, first: Callable[[Future[int]], bool]) -> None:
        future: Future[int] = Future()
        assert first(future) is True
        state = future.state
        assert future.complete(2) is False
        assert future.fail(RuntimeError("late")) is False
        assert future.cancel() is False
        assert future.state is state

    def test_running_cannot_be_cancelled(self) -> None:
        future: Future[int] = Future()
        assert future.mark_running() is True
        assert future.state is FutureState.RUNNING
        assert future.cancel() is False
        assert future.complete(3) is True
        assert future.get() == 3

    def test_mark_running_after_cancel(self) -> None:
        future: Future[int] = Future()
        future.cancel()
        assert future.mark_running() is False

    def test_factories(self) -> None:
        assert Future.fulfilled(4).get() == 4
        assert isinstance(Future.rejected(KeyError("k")).exception(), KeyError)


class TestFutureWaiting:
    """Tests for get() and exception() across threads."""

    def test_get_timeout(self) -> None:
        future: Future[int] = Future()
        with pytest.raises(OperationTimeoutError):
            future.get(timeout=0.05)
        # Timing out changed nothing
        assert future.state is FutureState.PENDING

    def test_get_blocks_until_completed(self, spawn: Callable[..., threading.Thread]) -> None:
        future: Future[str] = Future()

        def producer() -> None:
            time.sleep(0.05)
            future.complete("done")

        spawn(producer)
        assert future.get(timeout=5.0) == "done"

    def test_many_waiters_all_wake(self, spawn: Callable[..., threading.Thread]) -> None:
        future: Future[int] = Future()
        results: list[int] = []
        lock = threading.Lock()

        def waiter() -> None:
            value = future.get(timeout=5.0)
            with lock:
                results.append(value)

        threads = [spawn(waiter) for _ in range(5)]
        time.sleep(0.05)
        future.complete(9)
        for thread in threads:
            thread.join(timeout=5.0)
        assert results == [9] * 5

    def test_exception_returns_error_value(self) -> None:
        future: Future[int] = Future()
        future.fail(RuntimeError("boom"))
        error = future.exception(timeout=1.0)
        assert isinstance(error, RuntimeError)

    def test_exception_none_when_fulfilled(self) -> None:
        assert Future.fulfilled(1).exception() is None

    def test_exception_for_cancelled(self) -> None:
        future: Future[int] = Future()
        future.cancel()
        assert isinstance(future.exception(), CancellationError)


class TestFutureCallbacks:
    """Tests for on_complete()."""

    def test_callback_runs_immediately_when_done(self) -> None:
        future = Future.fulfilled(1)
        seen: list[Any] = []
        future.on_complete(lambda f: seen.append(f.get()))
        assert seen == [1]

    def test_callback_runs_on_completing_thread(self) -> None:
        future: Future[int] = Future()
        threads: list[str] = []
        future.on_complete(lambda f: threads.append(threading.current_thread().name))

        completer = threading.Thread(target=lambda: future.complete(1), name="completer")
        completer.start()
        completer.join(timeout=5.0)
        assert threads == ["completer"]

    def test_callback_error_does_not_block_others(self) -> None:
        future: Future[int] = Future()
        seen: list[int] = []

        def broken(_: Future[int]) -> None:
            raise RuntimeError("callback failed")

        future.on_complete(broken)
        future.on_complete(lambda f: seen.append(f.get()))
        assert future.complete(2) is True
        assert seen == [2]

    def test_callbacks_run_once(self) -> None:
        future: Future[int] = Future()
        calls: list[int] = []
        future.on_complete(lambda f: calls.append(1))
        future.complete(1)
        future.complete(2)
        assert calls == [1]


class TestFutureThen:
    """Tests for then() composition."""

    def test_maps_value(self) -> None:
        future: Future[int] = Future()
        doubled = future.then(lambda v: v * 2)
        future.complete(21)
        assert doubled.get(timeout=1.0) == 42

    def test_chain(self) -> None:
        result = Future.fulfilled(1).then(lambda v: v + 1).then(str)
        assert result.get(timeout=1.0) == "2"

    def test_propagates_rejection(self) -> None:
        error = KeyError("k")
        derived = Future.rejected(error).then(lambda v: v)
        assert derived.exception(timeout=1.0) is error

    def test_propagates_cancellation(self) -> None:
        future: Future[int] = Future()
        derived = future.then(lambda v: v)
        future.cancel()
        assert derived.cancelled()

    def test_fn_error_rejects_with_task_execution_error(self) -> None:
        derived = Future.fulfilled(0).then(lambda v: 1 / v)
        error = derived.exception(timeout=1.0)
        assert isinstance(error, TaskExecutionError)
        assert isinstance(error.__cause__, ZeroDivisionError)


class TestFutureAsyncio:
    """Tests for the asyncio bridge."""

    @pytest.mark.asyncio
    async def test_await_completed_in_thread(self) -> None:
        future: Future[int] = Future()
        threading.Timer(0.05, future.complete, args=(11,)).start()
        assert await asyncio.wait_for(future.to_asyncio(), timeout=5.0) == 11

    @pytest.mark.asyncio
    async def test_await_directly(self) -> None:
        assert await Future.fulfilled("ok") == "ok"

    @pytest.mark.asyncio
    async def test_await_rejected(self) -> None:
        future: Future[int] = Future()
        threading.Timer(0.01, future.fail, args=(ValueError("nope"),)).start()
        with pytest.raises(ValueError, match="nope"):
            await asyncio.wait_for(future.to_asyncio(), timeout=5.0)

    @pytest.mark.asyncio
    async def test_await_cancelled(self) -> None:
        future: Future[int] = Future()
        bridged = future.to_asyncio()
        future.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(bridged, timeout=5.0)

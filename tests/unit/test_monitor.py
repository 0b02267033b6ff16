"""Unit tests for Monitor."""

from __future__ import annotations

import threading
import time
from typing import Callable

import pytest

from resilience_runtime.monitor import Monitor


class TestMonitorAccess:
    """Tests for guarded access to the resource."""

    def test_read_returns_value(self) -> None:
        monitor = Monitor({"value": 3})
        assert monitor.read(lambda r: r["value"] * 2) == 6

    def test_execute_mutates_resource(self) -> None:
        monitor: Monitor[list[int]] = Monitor([])
        monitor.execute(lambda r: r.append(1))
        assert monitor.read(len) == 1

    def test_execute_propagates_errors_and_releases(self) -> None:
        monitor: Monitor[list[int]] = Monitor([])

        def boom(_: list[int]) -> None:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            monitor.execute(boom)
        # Mutex was released, so another thread can still get in
        result: list[int] = []
        thread = threading.Thread(target=lambda: result.append(monitor.read(len)))
        thread.start()
        thread.join(timeout=5.0)
        assert result == [0]

    def test_guard_is_reentrant(self) -> None:
        monitor = Monitor({"value": 0})
        with monitor.guard() as outer:
            outer["value"] += 1
            assert monitor.read(lambda r: r["value"]) == 1

    def test_concurrent_increments_are_not_lost(self) -> None:
        monitor = Monitor({"value": 0})

        def work() -> None:
            for _ in range(1000):
                monitor.execute(lambda r: r.update(value=r["value"] + 1))

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)
        assert monitor.read(lambda r: r["value"]) == 8000


class TestMonitorConditions:
    """Tests for named condition variables."""

    def test_condition_is_created_once(self) -> None:
        monitor = Monitor(None)
        assert monitor.condition("ready") is monitor.condition("ready")
        assert monitor.condition("ready") is not monitor.condition("other")

    def test_wait_without_lock_raises(self) -> None:
        monitor = Monitor(None)
        with pytest.raises(RuntimeError):
            monitor.wait("ready", timeout=0.01)

    def test_wait_times_out(self) -> None:
        monitor = Monitor(None)
        with monitor.guard():
            assert monitor.wait("ready", timeout=0.02) is False

    def test_wait_for_predicate(self, spawn: Callable[..., threading.Thread]) -> None:
        monitor: Monitor[list[int]] = Monitor([])

        def producer() -> None:
            time.sleep(0.05)
            for i in range(3):
                monitor.execute(lambda r, i=i: r.append(i))
                monitor.broadcast("changed")

        spawn(producer)
        assert monitor.wait_for("changed", lambda r: len(r) == 3, timeout=5.0)
        assert monitor.read(list) == [0, 1, 2]

    def test_wait_for_returns_false_on_timeout(self) -> None:
        monitor: Monitor[list[int]] = Monitor([])
        assert monitor.wait_for("changed", lambda r: bool(r), timeout=0.02) is False

    def test_signal_wakes_waiter_inside_guard(
        self, spawn: Callable[..., threading.Thread]
    ) -> None:
        monitor = Monitor({"ready": False})
        woke = threading.Event()

        def waiter() -> None:
            with monitor.guard() as r:
                while not r["ready"]:
                    monitor.wait("ready", timeout=5.0)
            woke.set()

        spawn(waiter)
        time.sleep(0.05)
        monitor.execute(lambda r: r.update(ready=True))
        monitor.signal("ready")
        assert woke.wait(5.0)

"""Mutual-exclusion wrapper around a shared resource.

A Monitor pairs a resource with a single re-entrant mutex and any
number of named condition variables bound to that mutex.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")
V = TypeVar("V")


class Monitor(Generic[R]):
    """Guarded access to a shared resource.

    The resource is only handed to callers while the mutex is held.
    Condition waits must follow the check-under-lock, loop-on-wait
    discipline; wait_for() does this for you.

    Usage:
        counter = Monitor({"value": 0})
        counter.execute(lambda r: r.update(value=r["value"] + 1))
        value = counter.read(lambda r: r["value"])

        with counter.guard() as r:
            counter.wait_for("changed", lambda res: res["value"] > 10)

    Attributes:
        name: Label used in log messages.
    """

    def __init__(self, resource: R, name: str = "monitor") -> None:
        self.name = name
        self._resource = resource
        self._lock = threading.RLock()
        self._conditions: dict[str, threading.Condition] = {}

    def execute(self, fn: Callable[[R], object]) -> None:
        """Run fn with the resource while holding the mutex.

        Any exception raised by fn propagates after the mutex is released.
        """
        with self._lock:
            fn(self._resource)

    def read(self, fn: Callable[[R], V]) -> V:
        """Run fn with the resource while holding the mutex and return its result."""
        with self._lock:
            return fn(self._resource)

    @contextmanager
    def guard(self) -> Iterator[R]:
        """Hold the mutex for the duration of a with-block, yielding the resource."""
        with self._lock:
            yield self._resource

    def condition(self, name: str) -> threading.Condition:
        """Return the named condition, creating it on first use."""
        with self._lock:
            cond = self._conditions.get(name)
            if cond is None:
                cond = threading.Condition(self._lock)
                self._conditions[name] = cond
            return cond

    def wait(self, name: str, timeout: float | None = None) -> bool:
        """Block on a named condition, releasing the mutex while blocked.

        Must be called while holding the mutex (inside execute, read or
        guard). Callers must re-check their predicate afterwards.

        Returns:
            False if the timeout elapsed, True otherwise.

        Raises:
            RuntimeError: If the calling thread does not hold the mutex.
        """
        return self.condition(name).wait(timeout)

    def wait_for(
        self,
        name: str,
        predicate: Callable[[R], bool],
        timeout: float | None = None,
    ) -> bool:
        """Block until predicate(resource) holds or the timeout elapses.

        Acquires the mutex if the caller does not already hold it.

        Returns:
            The final value of the predicate.
        """
        with self._lock:
            return self.condition(name).wait_for(lambda: predicate(self._resource), timeout)

    def signal(self, name: str, n: int = 1) -> None:
        """Wake up to n threads waiting on a named condition."""
        with self._lock:
            self.condition(name).notify(n)

    def broadcast(self, name: str) -> None:
        """Wake every thread waiting on a named condition."""
        with self._lock:
            self.condition(name).notify_all()

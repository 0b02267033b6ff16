"""Bulkhead pattern: cap how many callers run an operation at once.

A bulkhead is a counting semaphore with a bounded FIFO wait queue.
Callers beyond max_concurrent wait in arrival order; callers beyond
the wait queue are rejected immediately. A slot freed by a finishing
caller is handed straight to the next waiter, so no newcomer can
steal it in between.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

from .config import BulkheadConfig
from .exceptions import BulkheadFullError, OperationTimeoutError
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Waiter:
    wakeup: threading.Condition
    granted: bool = False


@dataclass
class BulkheadSnapshot:
    """Point-in-time view of a bulkhead."""

    name: str
    max_concurrent: int
    max_queue_size: int
    executing: int
    queued: int
    rejected: int

    @property
    def saturated(self) -> bool:
        """True when a new caller would be rejected."""
        return self.executing >= self.max_concurrent and self.queued >= self.max_queue_size

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "max_concurrent": self.max_concurrent,
            "max_queue_size": self.max_queue_size,
            "executing": self.executing,
            "queued": self.queued,
            "rejected": self.rejected,
            "saturated": self.saturated,
        }


class Bulkhead:
    """Concurrency limiter isolating one operation's resource usage.

    Usage:
        reports = Bulkhead(BulkheadConfig(max_concurrent=2, max_queue_size=10), name="reports")

        pdf = reports.execute(render_report, report_id)

        with reports.slot():
            render_report(report_id)

        @reports
        def export(report_id: int) -> bytes: ...
    """

    def __init__(
        self,
        config: BulkheadConfig | None = None,
        *,
        name: str = "default",
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.name = name
        self.config = config or BulkheadConfig()
        self._metrics = metrics
        self._executing = 0
        self._rejected = 0
        self._waiters: deque[_Waiter] = deque()
        self._lock = threading.Lock()

    @property
    def current_executing(self) -> int:
        """Return the number of callers currently holding a slot."""
        with self._lock:
            return self._executing

    @property
    def queued(self) -> int:
        """Return the number of callers waiting for a slot."""
        with self._lock:
            return len(self._waiters)

    @property
    def available(self) -> int:
        """Return the number of free slots."""
        with self._lock:
            return self.config.max_concurrent - self._executing

    def snapshot(self) -> BulkheadSnapshot:
        """Get a consistent point-in-time view of the bulkhead."""
        with self._lock:
            return BulkheadSnapshot(
                name=self.name,
                max_concurrent=self.config.max_concurrent,
                max_queue_size=self.config.max_queue_size,
                executing=self._executing,
                queued=len(self._waiters),
                rejected=self._rejected,
            )

    def execute(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run operation once a slot is available.

        Raises:
            BulkheadFullError: If all slots and wait positions are taken.
            OperationTimeoutError: If max_wait_seconds elapsed in the queue.
            Exception: Anything raised by operation. The slot is released.
        """
        with self.slot():
            return operation(*args, **kwargs)

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorate func so every call goes through the bulkhead."""

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.execute(func, *args, **kwargs)

        return wrapper

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold a slot for the duration of a with-block."""
        self._acquire()
        try:
            yield
        finally:
            self._release()

    def _acquire(self) -> None:
        timeout = self.config.max_wait_seconds
        waiter: _Waiter | None = None
        rejected = False
        with self._lock:
            if self._executing < self.config.max_concurrent:
                self._executing += 1
                executing, queued = self._executing, len(self._waiters)
            elif len(self._waiters) < self.config.max_queue_size:
                waiter = _Waiter(threading.Condition(self._lock))
                self._waiters.append(waiter)
                executing, queued = self._executing, len(self._waiters)
            else:
                self._rejected += 1
                rejected = True

        if rejected:
            logger.warning("Bulkhead %s full, rejecting call", self.name)
            if self._metrics:
                self._metrics.record_rejection("bulkhead", self.name, "bulkhead_full")
            raise BulkheadFullError(
                self.name, self.config.max_concurrent, self.config.max_queue_size
            )

        self._report(executing, queued)
        if waiter is None:
            return

        logger.debug("Bulkhead %s queued caller (%d waiting)", self.name, queued)
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while not waiter.granted:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    self._waiters.remove(waiter)
                    break
                waiter.wakeup.wait(remaining)
            granted = waiter.granted

        if not granted:
            logger.warning("Bulkhead %s wait timed out after %ss", self.name, timeout)
            if self._metrics:
                self._metrics.record_rejection("bulkhead", self.name, "wait_timeout")
            raise OperationTimeoutError(f"Bulkhead.execute({self.name})", timeout)

    def _release(self) -> None:
        with self._lock:
            if self._waiters:
                # Hand the slot over; the executing count stays the same
                waiter = self._waiters.popleft()
                waiter.granted = True
                waiter.wakeup.notify()
            else:
                self._executing -= 1
            executing, queued = self._executing, len(self._waiters)
        self._report(executing, queued)

    def _report(self, executing: int, queued: int) -> None:
        if self._metrics:
            self._metrics.record_concurrency(self.name, executing, queued)

"""Worker pool for parallel task execution.

Manages a fixed set of worker threads that consume tasks from a
bounded queue, with a configurable overflow policy for submissions.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from ..bounded_queue import BoundedQueue
from ..config import OverflowPolicy, PoolConfig
from ..exceptions import PoolShutdownError, QueueClosedError, QueueFullError
from ..future import Future
from ..metrics import MetricsCollector
from .task import Task
from .worker import Worker

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PoolStats:
    """Point-in-time statistics for a worker pool."""

    name: str
    size: int
    queued: int
    active: int
    submitted: int
    completed: int
    failed: int
    cancelled: int
    rejected: int
    dropped: int
    is_shutdown: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "size": self.size,
            "queued": self.queued,
            "active": self.active,
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "rejected": self.rejected,
            "dropped": self.dropped,
            "is_shutdown": self.is_shutdown,
        }


class WorkerPool:
    """Manages parallel worker execution.

    Usage:
        with WorkerPool(PoolConfig(size=4, queue_capacity=100)) as pool:
            future = pool.submit(fetch, "https://example.com")
            body = future.get(timeout=10.0)

    Workers start at construction and the worker count never changes.
    Leaving the with-block drains queued tasks and waits for workers.
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        name: str = "pool",
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize worker pool and start its workers.

        Args:
            config: Pool configuration. Uses PoolConfig() if None.
            name: Pool name for thread names, logs and metrics.
            metrics: Optional collector for task and rejection metrics.
        """
        self.config = config or PoolConfig()
        self.name = name
        self._metrics = metrics
        self._queue: BoundedQueue[Task] = BoundedQueue(self.config.queue_capacity)

        self._lock = threading.Lock()
        self._shutdown = False
        self._active = 0
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._cancelled = 0
        self._rejected = 0
        self._dropped = 0

        self.workers = [
            Worker(i, name, self._queue, self._task_started, self._task_finished)
            for i in range(1, self.config.size + 1)
        ]
        for worker in self.workers:
            worker.start()

        logger.info(
            "Worker pool %s started: size=%d, queue_capacity=%d, policy=%s",
            name,
            self.config.size,
            self.config.queue_capacity,
            self.config.overflow_policy.value,
        )

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(drain=True, wait=True)

    @property
    def size(self) -> int:
        """Return the fixed number of workers."""
        return self.config.size

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutdown

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Queue fn(*args, **kwargs) for execution.

        Returns:
            Future settled by the worker that runs the task.

        Raises:
            PoolShutdownError: If the pool no longer accepts tasks.
            QueueFullError: Queue full under the REJECT policy.
            OperationTimeoutError: Queue stayed full past
                submit_timeout_seconds under the BLOCK policy.
        """
        task_name = getattr(fn, "__name__", type(fn).__name__)
        call = functools.partial(fn, *args, **kwargs) if args or kwargs else fn
        future: Future[T] = Future(f"{self.name}:{task_name}")
        task = Task(fn=call, future=future, name=future.name)

        with self._lock:
            if self._shutdown:
                raise PoolShutdownError(f"Worker pool {self.name} is shut down")

        policy = self.config.overflow_policy
        try:
            if policy is OverflowPolicy.REJECT:
                if not self._queue.try_put(task):
                    self._reject()
                    raise QueueFullError(self._queue.capacity)
            elif policy is OverflowPolicy.DROP_OLDEST:
                evicted = self._queue.put_drop_oldest(task)
                if evicted is not None:
                    self._drop(evicted)
            else:
                self._queue.put(task, timeout=self.config.submit_timeout_seconds)
        except QueueClosedError as exc:
            raise PoolShutdownError(f"Worker pool {self.name} is shut down") from exc

        with self._lock:
            self._submitted += 1
        logger.debug("Submitted task %s to pool %s", task.name, self.name)
        return future

    def _reject(self) -> None:
        with self._lock:
            self._rejected += 1
        logger.warning("Pool %s rejected a task: queue full", self.name)
        if self._metrics:
            self._metrics.record_rejection("pool", self.name, "queue_full")

    def _drop(self, task: Task) -> None:
        dropped = task.future.cancel()
        with self._lock:
            if dropped:
                self._dropped += 1
            else:
                # Cancelled by its submitter before eviction
                self._cancelled += 1
        logger.warning("Pool %s dropped oldest task %s", self.name, task.name)
        if self._metrics:
            self._metrics.record_task(self.name, "dropped" if dropped else "cancelled")

    def _task_started(self) -> None:
        with self._lock:
            self._active += 1

    def _task_finished(self, outcome: str, duration: float | None) -> None:
        with self._lock:
            if outcome == "skipped":
                self._cancelled += 1
            else:
                self._active -= 1
                if outcome == "completed":
                    self._completed += 1
                else:
                    self._failed += 1
        if self._metrics:
            reported = "cancelled" if outcome == "skipped" else outcome
            self._metrics.record_task(self.name, reported, duration)

    def shutdown(self, drain: bool = True, wait: bool = True, timeout: float | None = None) -> bool:
        """Stop accepting tasks and stop the workers.

        In-flight tasks always run to completion.

        Args:
            drain: If True, queued tasks still run. If False, queued tasks
                are removed and their Futures cancelled.
            wait: If True, block until the workers have exited.
            timeout: Maximum seconds to wait for workers. None waits forever.

        Returns:
            True if every worker has exited.
        """
        with self._lock:
            self._shutdown = True

        if drain:
            self._queue.close()
            logger.info("Pool %s shutting down, draining %d tasks", self.name, len(self._queue))
        else:
            pending = self._queue.close_and_drain()
            for task in pending:
                task.future.cancel()
            with self._lock:
                self._cancelled += len(pending)
            if self._metrics:
                for _ in pending:
                    self._metrics.record_task(self.name, "cancelled")
            logger.info("Pool %s shutting down, cancelled %d tasks", self.name, len(pending))

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            for worker in self.workers:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                worker.join(remaining)

        alive = [w.name for w in self.workers if w.is_alive()]
        if wait and alive:
            logger.warning("Pool %s: workers still running after shutdown: %s", self.name, alive)
        return not alive

    def stats(self) -> PoolStats:
        """Get a snapshot of pool statistics."""
        queued = len(self._queue)
        with self._lock:
            return PoolStats(
                name=self.name,
                size=self.config.size,
                queued=queued,
                active=self._active,
                submitted=self._submitted,
                completed=self._completed,
                failed=self._failed,
                cancelled=self._cancelled,
                rejected=self._rejected,
                dropped=self._dropped,
                is_shutdown=self._shutdown,
            )

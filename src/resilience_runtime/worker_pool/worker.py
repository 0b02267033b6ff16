"""Worker thread that consumes tasks from a pool's queue.

A worker runs until the queue is closed and drained. Exceptions raised
by task code are converted into TaskExecutionError and delivered
through the task's Future; they never end the worker thread.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from ..bounded_queue import BoundedQueue
from ..exceptions import QueueClosedError, TaskExecutionError
from .task import Task

logger = logging.getLogger(__name__)

# outcome, duration_seconds (None when the task was skipped)
OutcomeHook = Callable[[str, "float | None"], None]


@dataclass
class WorkerStats:
    """Statistics for a worker."""

    worker_id: int
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_skipped: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        """Get elapsed time since worker started."""
        return time.time() - self.start_time


class Worker:
    """Individual worker thread that processes tasks."""

    def __init__(
        self,
        worker_id: int,
        pool_name: str,
        queue: BoundedQueue[Task],
        on_started: Callable[[], None],
        on_outcome: OutcomeHook,
    ) -> None:
        """Initialize worker.

        Args:
            worker_id: Unique worker identifier within the pool.
            pool_name: Name of the owning pool, used for the thread name.
            queue: Shared task queue.
            on_started: Called just before a task body runs.
            on_outcome: Called after each dequeued task with its outcome.
        """
        self.worker_id = worker_id
        self.stats = WorkerStats(worker_id=worker_id)
        self._queue = queue
        self._on_started = on_started
        self._on_outcome = on_outcome
        self._thread = threading.Thread(
            target=self._run,
            name=f"{pool_name}-worker-{worker_id}",
            daemon=True,
        )

    @property
    def name(self) -> str:
        return self._thread.name

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        logger.debug("Worker %s started", self.name)
        while True:
            try:
                task = self._queue.take()
            except QueueClosedError:
                break
            self.process_task(task)
        logger.debug("Worker %s stopped", self.name)

    def process_task(self, task: Task) -> str:
        """Run one task and settle its Future.

        Returns:
            The outcome: "completed", "failed" or "skipped" (cancelled
            before it could start).
        """
        if not task.future.mark_running():
            logger.debug("Worker %s skipping cancelled task %s", self.name, task.name)
            self.stats.tasks_skipped += 1
            self._on_outcome("skipped", None)
            return "skipped"

        self._on_started()
        start = time.monotonic()
        try:
            result = task.fn()
        except BaseException as exc:
            # Includes SystemExit; the worker keeps serving the queue
            duration = time.monotonic() - start
            logger.warning(
                "Task %s failed on %s: %s", task.name, self.name, exc, exc_info=True
            )
            error = TaskExecutionError(task.name, exc)
            error.__cause__ = exc
            self.stats.tasks_failed += 1
            self._on_outcome("failed", duration)
            task.future.fail(error)
            return "failed"

        duration = time.monotonic() - start
        self.stats.tasks_completed += 1
        self._on_outcome("completed", duration)
        task.future.complete(result)
        return "completed"

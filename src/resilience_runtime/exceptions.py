"""Exception classes for the resilience runtime."""

from __future__ import annotations


class ResilienceError(Exception):
    """Base exception for all runtime errors."""

    pass


class OperationTimeoutError(ResilienceError, TimeoutError):
    """Raised when a blocking call exceeds its deadline.

    The primitive that raised it is left unchanged.
    """

    def __init__(self, operation: str, timeout_seconds: float | None) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds}s")


class CancellationError(ResilienceError):
    """Raised when the result of a cancelled Future is requested."""

    pass


class CircuitOpenError(ResilienceError):
    """Raised when circuit is open and request is blocked."""

    def __init__(self, identifier: str, time_until_retry: float) -> None:
        self.identifier = identifier
        self.time_until_retry = time_until_retry
        super().__init__(f"Circuit {identifier} is open. Retry in {time_until_retry:.1f}s")


class BulkheadFullError(ResilienceError):
    """Raised when every slot and every wait position of a bulkhead is taken."""

    def __init__(self, identifier: str, max_concurrent: int, max_queue_size: int) -> None:
        self.identifier = identifier
        self.max_concurrent = max_concurrent
        self.max_queue_size = max_queue_size
        super().__init__(
            f"Bulkhead {identifier} is full "
            f"(max_concurrent={max_concurrent}, max_queue_size={max_queue_size})"
        )


class QueueFullError(ResilienceError):
    """Raised when a bounded queue rejects an item."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(f"Queue is full (capacity={capacity})")


class QueueClosedError(ResilienceError):
    """Raised by put() after close(), and by take() once a closed queue is empty."""

    pass


class PoolShutdownError(ResilienceError):
    """Raised when submitting to a worker pool that is shutting down."""

    pass


class TaskExecutionError(ResilienceError):
    """Wraps an exception raised inside user task code.

    The original exception is available as ``__cause__`` and ``original``.
    """

    def __init__(self, task_name: str, original: BaseException) -> None:
        self.task_name = task_name
        self.original = original
        super().__init__(f"Task {task_name} failed: {type(original).__name__}: {original}")


class BrokenBarrierError(ResilienceError):
    """Raised when a barrier is broken or reset while a party is waiting."""

    pass

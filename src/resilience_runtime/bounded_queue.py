"""Fixed-capacity FIFO queue for producer/consumer hand-off.

Producers block (or are rejected) while the queue is full, consumers
block while it is empty. Closing the queue fails further puts
immediately while takes drain what remains.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Generic, TypeVar

from .exceptions import OperationTimeoutError, QueueClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedQueue(Generic[T]):
    """Thread-safe FIFO queue with a fixed capacity.

    Usage:
        queue: BoundedQueue[int] = BoundedQueue(capacity=10)
        queue.put(1)
        item = queue.take(timeout=1.0)
        queue.close()

    Every successful put wakes exactly one blocked taker and every
    successful take wakes exactly one blocked producer.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False

        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)

    @property
    def capacity(self) -> int:
        """Return the maximum number of items."""
        return self._capacity

    @property
    def closed(self) -> bool:
        """Return True once close() has been called."""
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def put(self, item: T, timeout: float | None = None) -> None:
        """Append an item, blocking while the queue is full.

        Args:
            item: Item to append.
            timeout: Maximum seconds to wait for space. None waits forever.

        Raises:
            OperationTimeoutError: If no space freed up in time. The item
                was not inserted.
            QueueClosedError: If the queue is (or becomes) closed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._not_full:
            while True:
                if self._closed:
                    raise QueueClosedError("put() on a closed queue")
                if len(self._items) < self._capacity:
                    break
                remaining = _remaining(deadline)
                if remaining is not None and remaining <= 0:
                    raise OperationTimeoutError("BoundedQueue.put", timeout)
                self._not_full.wait(remaining)
            self._items.append(item)
            self._not_empty.notify()

    def take(self, timeout: float | None = None) -> T:
        """Remove and return the oldest item, blocking while empty.

        Args:
            timeout: Maximum seconds to wait for an item. None waits forever.

        Raises:
            OperationTimeoutError: If nothing arrived in time.
            QueueClosedError: If the queue is closed and fully drained.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._not_empty:
            while not self._items:
                if self._closed:
                    raise QueueClosedError("take() on a closed, drained queue")
                remaining = _remaining(deadline)
                if remaining is not None and remaining <= 0:
                    raise OperationTimeoutError("BoundedQueue.take", timeout)
                self._not_empty.wait(remaining)
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def try_put(self, item: T) -> bool:
        """Append an item without blocking.

        Returns:
            True if the item was appended, False if the queue is full.

        Raises:
            QueueClosedError: If the queue is closed.
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("put() on a closed queue")
            if len(self._items) >= self._capacity:
                return False
            self._items.append(item)
            self._not_empty.notify()
            return True

    def try_take(self) -> tuple[bool, T | None]:
        """Remove the oldest item without blocking.

        Returns:
            Tuple of (taken, item). item is None when nothing was taken.

        Raises:
            QueueClosedError: If the queue is closed and fully drained.
        """
        with self._lock:
            if not self._items:
                if self._closed:
                    raise QueueClosedError("take() on a closed, drained queue")
                return False, None
            item = self._items.popleft()
            self._not_full.notify()
            return True, item

    def put_drop_oldest(self, item: T) -> T | None:
        """Append an item, evicting the oldest one if the queue is full.

        Never blocks.

        Returns:
            The evicted item, or None if nothing was evicted.

        Raises:
            QueueClosedError: If the queue is closed.
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("put() on a closed queue")
            evicted = None
            if len(self._items) >= self._capacity:
                evicted = self._items.popleft()
            self._items.append(item)
            self._not_empty.notify()
            return evicted

    def close(self) -> None:
        """Stop accepting items. Remaining items can still be taken."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            # Every blocked caller must re-check the closed flag
            self._not_empty.notify_all()
            self._not_full.notify_all()
        logger.debug("Queue closed with %d items remaining", len(self))

    def close_and_drain(self) -> list[T]:
        """Close the queue and remove every remaining item.

        Returns:
            The removed items in FIFO order.
        """
        with self._lock:
            self._closed = True
            drained = list(self._items)
            self._items.clear()
            self._not_empty.notify_all()
            self._not_full.notify_all()
        return drained


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return deadline - time.monotonic()

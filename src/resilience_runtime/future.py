"""Single-assignment container for an asynchronous result.

A Future moves from PENDING (optionally through RUNNING) to exactly
one terminal state: FULFILLED, REJECTED or CANCELLED. Terminal
transitions are one-shot; later attempts are no-ops that return False.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generator, Generic, TypeVar

from .exceptions import CancellationError, OperationTimeoutError, TaskExecutionError
from .monitor import Monitor

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_DONE = "done"
_ids = itertools.count(1)


class FutureState(Enum):
    """Possible states for a Future."""

    PENDING = "pending"  # Not started, can be cancelled
    RUNNING = "running"  # Claimed by a worker, can no longer be cancelled
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (FutureState.FULFILLED, FutureState.REJECTED, FutureState.CANCELLED)


@dataclass
class _Outcome:
    state: FutureState = FutureState.PENDING
    value: Any = None
    error: BaseException | None = None
    callbacks: list[Callable[[Future[Any]], None]] = field(default_factory=list)


class Future(Generic[T]):
    """Observable result of an asynchronous computation.

    Usage:
        future: Future[int] = pool.submit(compute)
        doubled = future.then(lambda v: v * 2)
        print(doubled.get(timeout=5.0))

    Attributes:
        name: Label used in log messages and error text.
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name or f"future-{next(_ids)}"
        self._monitor: Monitor[_Outcome] = Monitor(_Outcome(), name=self.name)

    def __repr__(self) -> str:
        return f"<Future {self.name} state={self.state.value}>"

    @classmethod
    def fulfilled(cls, value: T, name: str | None = None) -> Future[T]:
        """Return a Future already completed with value."""
        future: Future[T] = cls(name)
        future.complete(value)
        return future

    @classmethod
    def rejected(cls, error: BaseException, name: str | None = None) -> Future[Any]:
        """Return a Future already failed with error."""
        future: Future[Any] = cls(name)
        future.fail(error)
        return future

    @property
    def state(self) -> FutureState:
        """Return the current state."""
        return self._monitor.read(lambda o: o.state)

    def is_done(self) -> bool:
        """Return True once the Future reached a terminal state."""
        return self.state.is_terminal

    def cancelled(self) -> bool:
        """Return True if the Future was cancelled."""
        return self.state is FutureState.CANCELLED

    def mark_running(self) -> bool:
        """Claim the Future for execution (PENDING -> RUNNING).

        Returns:
            True if the caller may run the task, False if it was cancelled
            (or already claimed) and must be skipped.
        """
        with self._monitor.guard() as outcome:
            if outcome.state is not FutureState.PENDING:
                return False
            outcome.state = FutureState.RUNNING
            return True

    def complete(self, value: T) -> bool:
        """Fulfill the Future with value. Returns False if already terminal."""
        return self._settle(FutureState.FULFILLED, value, None)

    def fail(self, error: BaseException) -> bool:
        """Reject the Future with error. Returns False if already terminal."""
        return self._settle(FutureState.REJECTED, None, error)

    def cancel(self) -> bool:
        """Cancel the Future.

        Only succeeds while PENDING; a running task cannot be cancelled.

        Returns:
            True if the Future is now cancelled by this call.
        """
        return self._settle(FutureState.CANCELLED, None, None)

    def _settle(self, state: FutureState, value: Any, error: BaseException | None) -> bool:
        with self._monitor.guard() as outcome:
            if outcome.state.is_terminal:
                return False
            if state is FutureState.CANCELLED and outcome.state is not FutureState.PENDING:
                return False
            outcome.state = state
            outcome.value = value
            outcome.error = error
            callbacks = outcome.callbacks
            outcome.callbacks = []
            self._monitor.condition(_DONE).notify_all()

        logger.debug("Future %s settled: %s", self.name, state.value)
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def _wait(self, timeout: float | None) -> _Outcome:
        if not self._monitor.wait_for(_DONE, lambda o: o.state.is_terminal, timeout):
            raise OperationTimeoutError(f"Future.get({self.name})", timeout)
        return self._monitor.read(lambda o: o)

    def get(self, timeout: float | None = None) -> T:
        """Wait for and return the result.

        Args:
            timeout: Maximum seconds to wait. None waits forever.

        Raises:
            OperationTimeoutError: If the Future is still not done in time.
            CancellationError: If the Future was cancelled.
            BaseException: The rejection error, re-raised.
        """
        outcome = self._wait(timeout)
        if outcome.state is FutureState.CANCELLED:
            raise CancellationError(f"Future {self.name} was cancelled")
        if outcome.error is not None:
            raise outcome.error
        return outcome.value  # type: ignore[no-any-return]

    def exception(self, timeout: float | None = None) -> BaseException | None:
        """Wait for the Future and return its error instead of raising it.

        Returns:
            The rejection error, a CancellationError if cancelled, or None
            if the Future was fulfilled.

        Raises:
            OperationTimeoutError: If the Future is still not done in time.
        """
        outcome = self._wait(timeout)
        if outcome.state is FutureState.CANCELLED:
            return CancellationError(f"Future {self.name} was cancelled")
        return outcome.error

    def on_complete(self, callback: Callable[[Future[T]], None]) -> None:
        """Register a callback run once the Future is terminal.

        Runs immediately on the calling thread if already terminal,
        otherwise on whichever thread settles the Future.
        """
        with self._monitor.guard() as outcome:
            if not outcome.state.is_terminal:
                outcome.callbacks.append(callback)  # type: ignore[arg-type]
                return
        self._run_callback(callback)

    def _run_callback(self, callback: Callable[[Future[Any]], None]) -> None:
        try:
            callback(self)
        except Exception:
            logger.exception("Callback error on future %s", self.name)

    def then(self, fn: Callable[[T], U]) -> Future[U]:
        """Return a Future holding fn applied to this Future's value.

        Rejection and cancellation propagate unchanged. An exception
        raised by fn rejects the derived Future with TaskExecutionError.
        """
        derived: Future[U] = Future(f"{self.name}.then")

        def _propagate(source: Future[T]) -> None:
            outcome = source._monitor.read(lambda o: (o.state, o.value, o.error))
            state, value, error = outcome
            if state is FutureState.CANCELLED:
                derived.cancel()
            elif error is not None:
                derived.fail(error)
            else:
                try:
                    result = fn(value)
                except Exception as exc:
                    wrapped = TaskExecutionError(derived.name, exc)
                    wrapped.__cause__ = exc
                    derived.fail(wrapped)
                else:
                    derived.complete(result)

        self.on_complete(_propagate)
        return derived

    def to_asyncio(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Future[T]:
        """Bridge this Future into an asyncio event loop.

        Args:
            loop: Target loop. Defaults to the running loop.

        Returns:
            An asyncio.Future settled on the loop's thread when this one is.
        """
        target = loop or asyncio.get_running_loop()
        bridged: asyncio.Future[T] = target.create_future()

        def _copy(source: Future[T]) -> None:
            if bridged.done():
                return
            state, value, error = source._monitor.read(lambda o: (o.state, o.value, o.error))
            if state is FutureState.CANCELLED:
                bridged.cancel()
            elif state is FutureState.REJECTED:
                bridged.set_exception(error)  # type: ignore[arg-type]
            else:
                bridged.set_result(value)

        def _transfer(source: Future[T]) -> None:
            if target.is_closed():
                logger.warning("Event loop closed before future %s settled", self.name)
                return
            target.call_soon_threadsafe(_copy, source)

        self.on_complete(_transfer)
        return bridged

    def __await__(self) -> Generator[Any, None, T]:
        return self.to_asyncio().__await__()

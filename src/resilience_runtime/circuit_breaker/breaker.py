"""Circuit breaker guarding calls to an unreliable operation.

Tracks consecutive failures and opens the circuit when a threshold is
reached. After the reset timeout a single trial call is let through;
its outcome decides whether the circuit closes or opens again.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, TypeVar

from ..config import BreakerConfig, CircuitState
from ..exceptions import CircuitOpenError
from ..metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_EVENTS = 100


@dataclass(frozen=True)
class CircuitEvent:
    """A state transition, kept for inspection."""

    event_type: str
    from_state: str
    to_state: str
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class CircuitSnapshot:
    """Point-in-time view of a circuit breaker."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    generation: int
    time_until_retry: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "generation": self.generation,
            "time_until_retry": round(self.time_until_retry, 3),
        }


class CircuitBreaker:
    """Circuit breaker for failure protection of a dependency.

    Usage:
        breaker = CircuitBreaker(BreakerConfig(failure_threshold=3), name="billing")

        try:
            invoice = breaker.execute(billing_client.fetch, invoice_id)
        except CircuitOpenError as e:
            retry_later(e.time_until_retry)

        @breaker
        def charge(amount: int) -> None: ...

    Outcomes are tagged with the generation in which the call was
    admitted; an outcome arriving after a state transition is ignored.

    Attributes:
        name: Identifier used in errors, logs and metrics.
        config: Circuit breaker configuration.
    """

    def __init__(
        self,
        config: BreakerConfig | None = None,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the circuit breaker.

        Args:
            config: Configuration settings. Uses BreakerConfig() if None.
            name: Unique identifier for this circuit.
            clock: Monotonic time source in seconds.
            metrics: Optional collector for state change metrics.
        """
        self.name = name
        self.config = config or BreakerConfig()
        self._clock = clock
        self._metrics = metrics

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._generation = 0
        self._trial_in_flight = False
        self._events: deque[CircuitEvent] = deque(maxlen=_MAX_EVENTS)

        # Concurrency protection
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Return the current circuit state."""
        with self._lock:
            events = self._refresh()
            state = self._state
        self._publish(events)
        return state

    @property
    def failure_count(self) -> int:
        """Return the current consecutive failure count."""
        with self._lock:
            return self._failure_count

    @property
    def generation(self) -> int:
        """Return the number of state transitions so far."""
        with self._lock:
            return self._generation

    @property
    def is_open(self) -> bool:
        """Check if circuit is currently open (blocking requests)."""
        return self.state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        """Check if circuit is currently closed (normal operation)."""
        return self.state == CircuitState.CLOSED

    def events(self) -> list[CircuitEvent]:
        """Return recent state transitions, oldest first."""
        with self._lock:
            return list(self._events)

    def can_execute(self) -> bool:
        """Check whether a call may go through, claiming permission if so.

        In HALF_OPEN this claims the single trial slot, so a True result
        must be followed by on_success() or on_failure().
        """
        try:
            self._acquire()
        except CircuitOpenError:
            return False
        return True

    def execute(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run operation through the circuit.

        Returns:
            Whatever operation returns.

        Raises:
            CircuitOpenError: If the circuit rejected the call. The
                operation was not invoked.
            Exception: Anything raised by operation, after it is recorded.
        """
        generation = self._acquire()
        try:
            result = operation(*args, **kwargs)
        except self.config.failure_exceptions as exc:
            self._record(generation, success=False, reason=f"{type(exc).__name__}: {exc}")
            raise
        except BaseException:
            self._release(generation)
            raise
        self._record(generation, success=True)
        return result

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorate func so every call goes through the circuit."""

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.execute(func, *args, **kwargs)

        return wrapper

    def on_success(self) -> None:
        """Record a successful call admitted by can_execute()."""
        with self._lock:
            generation = self._generation
        self._record(generation, success=True)

    def on_failure(self, reason: str = "failure reported") -> None:
        """Record a failed call admitted by can_execute()."""
        with self._lock:
            generation = self._generation
        self._record(generation, success=False, reason=reason)

    def reset(self) -> None:
        """Manually reset the circuit to closed state."""
        with self._lock:
            events: list[CircuitEvent] = []
            if self._state != CircuitState.CLOSED:
                events.append(self._transition(CircuitState.CLOSED, "manual_reset"))
            self._failure_count = 0
            self._trial_in_flight = False
        self._publish(events)
        if events:
            logger.info("Circuit %s manually reset to CLOSED", self.name)

    def time_until_retry(self) -> float:
        """Get seconds until circuit can attempt recovery."""
        with self._lock:
            return self._time_until_retry()

    def snapshot(self) -> CircuitSnapshot:
        """Get a consistent point-in-time view of the circuit."""
        with self._lock:
            events = self._refresh()
            snapshot = CircuitSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                generation=self._generation,
                time_until_retry=self._time_until_retry(),
            )
        self._publish(events)
        return snapshot

    def _acquire(self) -> int:
        """Admit a call or raise CircuitOpenError. Returns the admitting generation."""
        with self._lock:
            events = self._refresh()
            admitted = False
            if self._state == CircuitState.CLOSED:
                admitted = True
            elif self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                # Only 1 test request
                self._trial_in_flight = True
                admitted = True
            generation = self._generation
            retry_in = self._time_until_retry()
        self._publish(events)

        if not admitted:
            logger.debug("Circuit %s rejected call (retry in %.1fs)", self.name, retry_in)
            if self._metrics:
                self._metrics.record_rejection("circuit_breaker", self.name, "circuit_open")
            raise CircuitOpenError(self.name, retry_in)
        return generation

    def _release(self, generation: int) -> None:
        """Give back a trial slot without recording an outcome."""
        with self._lock:
            if generation == self._generation and self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False

    def _record(self, generation: int, *, success: bool, reason: str = "") -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Circuit %s ignoring outcome from generation %d (now %d)",
                    self.name,
                    generation,
                    self._generation,
                )
                return
            if self._state == CircuitState.OPEN:
                # Nothing is admitted while open
                logger.debug("Circuit %s ignoring outcome reported while OPEN", self.name)
                return

            events: list[CircuitEvent] = []
            if success:
                self._success_count += 1
                if self._state == CircuitState.HALF_OPEN:
                    # Success in half-open closes the circuit
                    events.append(self._transition(CircuitState.CLOSED, "recovery_succeeded"))
                self._failure_count = 0
            else:
                self._failure_count += 1
                self._last_failure_time = self._clock()
                if self._state == CircuitState.HALF_OPEN:
                    events.append(
                        self._transition(CircuitState.OPEN, "recovery_failed", reason)
                    )
                elif (
                    self._state == CircuitState.CLOSED
                    and self._failure_count >= self.config.failure_threshold
                ):
                    events.append(
                        self._transition(CircuitState.OPEN, "threshold_reached", reason)
                    )
            failures = self._failure_count

        if not success:
            logger.warning(
                "Circuit %s failure %d/%d: %s",
                self.name,
                failures,
                self.config.failure_threshold,
                reason,
            )
        if self._metrics:
            if success:
                self._metrics.record_success(self.name)
            else:
                self._metrics.record_failure(self.name, reason.split(":", 1)[0] or "unknown")
        self._publish(events)

    def _refresh(self) -> list[CircuitEvent]:
        """Apply the time-based OPEN -> HALF_OPEN transition. Lock must be held."""
        if self._state == CircuitState.OPEN and self._time_until_retry() <= 0:
            return [self._transition(CircuitState.HALF_OPEN, "recovery_started")]
        return []

    def _time_until_retry(self) -> float:
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self.config.reset_timeout_seconds - elapsed)

    def _transition(
        self, to_state: CircuitState, event_type: str, reason: str = ""
    ) -> CircuitEvent:
        """Move to to_state and start a new generation. Lock must be held."""
        event = CircuitEvent(
            event_type=event_type,
            from_state=self._state.value,
            to_state=to_state.value,
            reason=reason,
        )
        self._state = to_state
        self._generation += 1
        self._trial_in_flight = False
        if to_state == CircuitState.CLOSED:
            self._failure_count = 0
        self._events.append(event)
        return event

    def _publish(self, events: list[CircuitEvent]) -> None:
        """Log and export transitions. Called without the lock."""
        for event in events:
            if event.to_state == CircuitState.OPEN.value:
                logger.warning(
                    "Circuit %s OPENED (%s): %s", self.name, event.event_type, event.reason
                )
            elif event.to_state == CircuitState.HALF_OPEN.value:
                logger.info("Circuit %s entering HALF_OPEN for recovery test", self.name)
            else:
                logger.info("Circuit %s CLOSED (%s)", self.name, event.event_type)
            if self._metrics:
                self._metrics.record_state_change(self.name, event.from_state, event.to_state)

"""Unit tests for CircuitBreaker and CircuitBreakerRegistry."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from resilience_runtime.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)
from resilience_runtime.config import BreakerConfig
from resilience_runtime.metrics import MetricsCollector


def _fail() -> None:
    raise ConnectionError("dependency down")


@pytest.fixture
def config() -> BreakerConfig:
    return BreakerConfig(failure_threshold=3, reset_timeout_seconds=30.0)


@pytest.fixture
def breaker(config: BreakerConfig, clock: Any) -> CircuitBreaker:
    return CircuitBreaker(config, name="dep", clock=clock)


def _trip(breaker: CircuitBreaker, failures: int = 3) -> None:
    for _ in range(failures):
        with pytest.raises(ConnectionError):
            breaker.execute(_fail)


class TestCircuitBreakerClosed:
    """Tests for normal operation."""

    def test_initial_state(self, breaker: CircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_closed
        assert breaker.failure_count == 0

    def test_passes_result_through(self, breaker: CircuitBreaker) -> None:
        assert breaker.execute(lambda x: x * 2, 4) == 8

    def test_counts_consecutive_failures(self, breaker: CircuitBreaker) -> None:
        _trip(breaker, failures=2)
        assert breaker.failure_count == 2
        assert breaker.state == CircuitState.CLOSED

    def test_success_resets_failure_count(self, breaker: CircuitBreaker) -> None:
        _trip(breaker, failures=2)
        breaker.execute(lambda: None)
        assert breaker.failure_count == 0
        _trip(breaker, failures=2)
        assert breaker.state == CircuitState.CLOSED

    def test_falsy_result_counts_as_success(self, breaker: CircuitBreaker) -> None:
        _trip(breaker, failures=2)
        assert breaker.execute(lambda: None) is None
        assert breaker.failure_count == 0

    def test_ignored_exception_types(self, clock: Any) -> None:
        breaker = CircuitBreaker(
            BreakerConfig(failure_threshold=1, failure_exceptions=(ConnectionError,)),
            clock=clock,
        )
        with pytest.raises(KeyError):
            breaker.execute(lambda: {}["missing"])
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestCircuitBreakerTrip:
    """Tests for CLOSED -> OPEN -> HALF_OPEN -> CLOSED/OPEN."""

    def test_opens_at_threshold(self, breaker: CircuitBreaker) -> None:
        _trip(breaker)
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open

    def test_open_rejects_without_invoking(self, breaker: CircuitBreaker) -> None:
        _trip(breaker)
        operation = MagicMock()
        with pytest.raises(CircuitOpenError) as excinfo:
            breaker.execute(operation)
        operation.assert_not_called()
        assert excinfo.value.identifier == "dep"
        assert excinfo.value.time_until_retry == pytest.approx(30.0)

    def test_time_until_retry_counts_down(self, breaker: CircuitBreaker, clock: Any) -> None:
        _trip(breaker)
        clock.advance(10)
        assert breaker.time_until_retry() == pytest.approx(20.0)

    def test_half_open_after_reset_timeout(self, breaker: CircuitBreaker, clock: Any) -> None:
        _trip(breaker)
        clock.advance(29.9)
        assert breaker.state == CircuitState.OPEN
        clock.advance(0.1)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_half_open_allows_exactly_one_trial(
        self, breaker: CircuitBreaker, clock: Any
    ) -> None:
        _trip(breaker)
        clock.advance(30)
        assert breaker.can_execute() is True
        # Trial is in flight; everyone else is rejected
        assert breaker.can_execute() is False
        with pytest.raises(CircuitOpenError):
            breaker.execute(lambda: None)

    def test_trial_success_closes(self, breaker: CircuitBreaker, clock: Any) -> None:
        _trip(breaker)
        clock.advance(30)
        assert breaker.execute(lambda: "recovered") == "recovered"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_trial_failure_reopens(self, breaker: CircuitBreaker, clock: Any) -> None:
        _trip(breaker)
        clock.advance(30)
        with pytest.raises(ConnectionError):
            breaker.execute(_fail)
        assert breaker.state == CircuitState.OPEN
        # last_failure_time was refreshed, so a full timeout is needed again
        assert breaker.time_until_retry() == pytest.approx(30.0)
        clock.advance(29)
        assert breaker.state == CircuitState.OPEN

    def test_trial_with_ignored_exception_frees_slot(self, clock: Any) -> None:
        breaker = CircuitBreaker(
            BreakerConfig(
                failure_threshold=1,
                reset_timeout_seconds=5,
                failure_exceptions=(ConnectionError,),
            ),
            clock=clock,
        )
        _trip(breaker, failures=1)
        clock.advance(5)
        with pytest.raises(KeyError):
            breaker.execute(lambda: {}["missing"])
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.can_execute() is True

    def test_manual_callbacks(self, breaker: CircuitBreaker, clock: Any) -> None:
        for _ in range(3):
            assert breaker.can_execute()
            breaker.on_failure("timeout")
        assert breaker.state == CircuitState.OPEN
        clock.advance(30)
        assert breaker.can_execute()
        breaker.on_success()
        assert breaker.state == CircuitState.CLOSED

    def test_stale_outcome_ignored(self, breaker: CircuitBreaker) -> None:
        """An outcome from before a transition does not affect the new state."""
        generation = breaker.generation
        _trip(breaker)
        breaker.reset()
        breaker._record(generation, success=False, reason="late failure")
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    def test_outcome_reported_while_open_ignored(
        self, breaker: CircuitBreaker, clock: Any
    ) -> None:
        _trip(breaker)
        clock.advance(10)
        breaker.on_failure("stray report")
        assert breaker.failure_count == 3
        # Retry window is still measured from the real last failure
        assert breaker.time_until_retry() == pytest.approx(20.0)
        clock.advance(20)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_reset(self, breaker: CircuitBreaker) -> None:
        _trip(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.execute(lambda: 1) == 1

    def test_events_record_transitions(self, breaker: CircuitBreaker, clock: Any) -> None:
        _trip(breaker)
        clock.advance(30)
        breaker.execute(lambda: None)
        assert [(e.from_state, e.to_state) for e in breaker.events()] == [
            ("closed", "open"),
            ("open", "half_open"),
            ("half_open", "closed"),
        ]
        assert breaker.generation == 3

    def test_decorator(self, breaker: CircuitBreaker) -> None:
        @breaker
        def add(a: int, b: int) -> int:
            return a + b

        assert add(1, 2) == 3
        assert add.__name__ == "add"

    def test_snapshot(self, breaker: CircuitBreaker) -> None:
        _trip(breaker)
        data = breaker.snapshot().to_dict()
        assert data["name"] == "dep"
        assert data["state"] == "open"
        assert data["failure_count"] == 3

    def test_metrics(self, config: BreakerConfig, clock: Any) -> None:
        metrics = MetricsCollector()
        breaker = CircuitBreaker(config, name="m", clock=clock, metrics=metrics)
        _trip(breaker)
        with pytest.raises(CircuitOpenError):
            breaker.execute(lambda: None)

        assert metrics.get_value(
            "resilience_circuit_failures_total", circuit="m", error_type="ConnectionError"
        ) == 3
        assert metrics.get_value("resilience_circuit_state", circuit="m") == 1
        assert metrics.get_value(
            "resilience_rejections_total",
            component="circuit_breaker",
            name="m",
            reason="circuit_open",
        ) == 1


class TestCircuitBreakerRegistry:
    """Tests for CircuitBreakerRegistry."""

    def test_get_or_create(self) -> None:
        registry = CircuitBreakerRegistry()
        first = registry.get("payments")
        assert registry.get("payments") is first
        assert "payments" in registry
        assert len(registry) == 1

    def test_shares_config(self, config: BreakerConfig) -> None:
        registry = CircuitBreakerRegistry(config)
        assert registry.get("a").config is config

    def test_open_circuits_and_reset_all(self, config: BreakerConfig, clock: Any) -> None:
        registry = CircuitBreakerRegistry(config, clock=clock)
        registry.get("healthy")
        _trip(registry.get("broken"))

        assert [c.name for c in registry.open_circuits()] == ["broken"]
        assert registry.reset_all() == 1
        assert registry.open_circuits() == []

    def test_remove(self) -> None:
        registry = CircuitBreakerRegistry()
        registry.get("x")
        assert registry.remove("x") is True
        assert registry.remove("x") is False
        assert [c.name for c in registry.all()] == []

"""Circuit breaker registry for managing named circuit breakers.

Provides get-or-create access to circuit breakers that share one
configuration, plus bulk inspection and reset for monitoring.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from ..config import BreakerConfig, CircuitState
from ..metrics import MetricsCollector
from .breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Registry of named circuit breakers.

    The registry is owned by whoever constructs it; there is no
    process-wide instance.

    Usage:
        registry = CircuitBreakerRegistry(BreakerConfig(failure_threshold=5))

        payments = registry.get("payments")
        payments.execute(charge_card, order)

        for circuit in registry.open_circuits():
            print(circuit.name, circuit.time_until_retry())
    """

    def __init__(
        self,
        config: BreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._config = config or BreakerConfig()
        self._clock = clock
        self._metrics = metrics
        self._circuits: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._circuits

    def __len__(self) -> int:
        with self._lock:
            return len(self._circuits)

    def get(self, name: str) -> CircuitBreaker:
        """Get or create the circuit breaker called name."""
        with self._lock:
            circuit = self._circuits.get(name)
            if circuit is None:
                circuit = CircuitBreaker(
                    self._config, name=name, clock=self._clock, metrics=self._metrics
                )
                self._circuits[name] = circuit
                logger.debug("Created circuit breaker: %s", name)
            return circuit

    def remove(self, name: str) -> bool:
        """Forget a circuit breaker. Returns True if it existed."""
        with self._lock:
            return self._circuits.pop(name, None) is not None

    def all(self) -> list[CircuitBreaker]:
        """Get every registered circuit breaker, ordered by name."""
        with self._lock:
            return [self._circuits[name] for name in sorted(self._circuits)]

    def open_circuits(self) -> list[CircuitBreaker]:
        """Get all circuits currently in OPEN or HALF_OPEN state.

        Useful for monitoring and health checks.
        """
        return [c for c in self.all() if c.state != CircuitState.CLOSED]

    def reset_all(self) -> int:
        """Reset every circuit to CLOSED.

        Returns:
            Number of circuits that were not closed.
        """
        reset = 0
        for circuit in self.all():
            if circuit.state != CircuitState.CLOSED:
                reset += 1
            circuit.reset()
        if reset:
            logger.info("Reset %d circuits", reset)
        return reset

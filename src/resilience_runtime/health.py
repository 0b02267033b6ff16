"""Health reporting for runtime components.

Aggregates circuit breakers, bulkheads and worker pools into a single
health status suitable for monitoring endpoints or CLI output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from .config import CircuitState

if TYPE_CHECKING:
    from .bulkhead import Bulkhead
    from .circuit_breaker import CircuitBreaker
    from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class RuntimeHealthStatus(Enum):
    """Overall health status for the runtime."""

    HEALTHY = "HEALTHY"  # All circuits closed, everything accepting work
    DEGRADED = "DEGRADED"  # Some circuits open/half-open or a bulkhead saturated
    UNHEALTHY = "UNHEALTHY"  # Every circuit open, or a pool shut down
    UNKNOWN = "UNKNOWN"  # Nothing to report on


@dataclass
class RuntimeHealthResponse:
    """Health check response for the runtime."""

    status: RuntimeHealthStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_circuits: int = 0
    circuits_closed: int = 0
    circuits_open: int = 0
    circuits_half_open: int = 0
    saturated_bulkheads: int = 0
    stopped_pools: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "total_circuits": self.total_circuits,
            "circuits_closed": self.circuits_closed,
            "circuits_open": self.circuits_open,
            "circuits_half_open": self.circuits_half_open,
            "saturated_bulkheads": self.saturated_bulkheads,
            "stopped_pools": self.stopped_pools,
            "details": self.details,
        }


def get_runtime_health(
    breakers: Iterable[CircuitBreaker] = (),
    bulkheads: Iterable[Bulkhead] = (),
    pools: Iterable[WorkerPool] = (),
) -> RuntimeHealthResponse:
    """Get health status of the given runtime components.

    Args:
        breakers: Circuit breakers to inspect.
        bulkheads: Bulkheads to inspect.
        pools: Worker pools to inspect.

    Returns:
        RuntimeHealthResponse describing the combined health.
    """
    circuit_details = [b.snapshot() for b in breakers]
    bulkhead_details = [b.snapshot() for b in bulkheads]
    pool_details = [p.stats() for p in pools]

    if not (circuit_details or bulkhead_details or pool_details):
        return RuntimeHealthResponse(
            status=RuntimeHealthStatus.UNKNOWN,
            details={"error": "No components registered"},
        )

    response = RuntimeHealthResponse(status=RuntimeHealthStatus.HEALTHY)
    response.total_circuits = len(circuit_details)
    for circuit in circuit_details:
        if circuit.state == CircuitState.CLOSED:
            response.circuits_closed += 1
        elif circuit.state == CircuitState.OPEN:
            response.circuits_open += 1
        else:
            response.circuits_half_open += 1
    response.saturated_bulkheads = sum(1 for b in bulkhead_details if b.saturated)
    response.stopped_pools = sum(1 for p in pool_details if p.is_shutdown)

    response.status = _determine_status(response)
    response.details = {
        "circuits": [c.to_dict() for c in circuit_details],
        "bulkheads": [b.to_dict() for b in bulkhead_details],
        "pools": [p.to_dict() for p in pool_details],
    }

    if response.status is not RuntimeHealthStatus.HEALTHY:
        logger.info(
            "Runtime health %s: open=%d half_open=%d saturated=%d stopped=%d",
            response.status.value,
            response.circuits_open,
            response.circuits_half_open,
            response.saturated_bulkheads,
            response.stopped_pools,
        )
    return response


def _determine_status(response: RuntimeHealthResponse) -> RuntimeHealthStatus:
    """Determine overall health status from component counts.

    Logic:
    - UNHEALTHY: Any pool stopped, or every circuit open
    - DEGRADED: Any circuit open/half-open, or any bulkhead saturated
    - HEALTHY: Otherwise
    """
    if response.stopped_pools > 0:
        return RuntimeHealthStatus.UNHEALTHY
    if response.total_circuits > 0 and response.circuits_open == response.total_circuits:
        return RuntimeHealthStatus.UNHEALTHY
    if response.circuits_open > 0 or response.circuits_half_open > 0:
        return RuntimeHealthStatus.DEGRADED
    if response.saturated_bulkheads > 0:
        return RuntimeHealthStatus.DEGRADED
    return RuntimeHealthStatus.HEALTHY

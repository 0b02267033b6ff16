"""Circuit breaker implementation.

Prevents callers from hammering a dependency that is already failing.

The circuit breaker has three states:
- CLOSED: Normal operation, consecutive failures are counted
- OPEN: Circuit tripped, calls immediately fail with CircuitOpenError
- HALF_OPEN: Testing recovery, exactly one trial call allowed
"""

from ..config import CircuitState
from ..exceptions import CircuitOpenError
from .breaker import CircuitBreaker, CircuitEvent, CircuitSnapshot
from .registry import CircuitBreakerRegistry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitEvent",
    "CircuitOpenError",
    "CircuitSnapshot",
    "CircuitState",
]

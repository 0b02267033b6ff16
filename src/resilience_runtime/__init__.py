"""Resilience Runtime.

In-process concurrency and resilience primitives: bounded queues,
monitors, barriers, futures, worker pools, circuit breakers and
bulkheads.
"""

from __future__ import annotations

from .barrier import Barrier
from .bounded_queue import BoundedQueue
from .bulkhead import Bulkhead, BulkheadSnapshot
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitEvent,
    CircuitSnapshot,
)
from .config import (
    DEFAULT_CONFIG,
    BreakerConfig,
    BulkheadConfig,
    CircuitState,
    OverflowPolicy,
    PoolConfig,
    RuntimeConfig,
    load_runtime_config,
)
from .exceptions import (
    BrokenBarrierError,
    BulkheadFullError,
    CancellationError,
    CircuitOpenError,
    OperationTimeoutError,
    PoolShutdownError,
    QueueClosedError,
    QueueFullError,
    ResilienceError,
    TaskExecutionError,
)
from .future import Future, FutureState
from .health import RuntimeHealthResponse, RuntimeHealthStatus, get_runtime_health
from .metrics import MetricsCollector, MetricType, MetricValue
from .monitor import Monitor
from .worker_pool import PoolStats, WorkerPool

__version__ = "0.1.0"

__all__ = [
    # Primitives
    "Barrier",
    "BoundedQueue",
    "Bulkhead",
    "BulkheadSnapshot",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitEvent",
    "CircuitSnapshot",
    "CircuitState",
    "Future",
    "FutureState",
    "Monitor",
    "PoolStats",
    "WorkerPool",
    # Configuration
    "BreakerConfig",
    "BulkheadConfig",
    "DEFAULT_CONFIG",
    "OverflowPolicy",
    "PoolConfig",
    "RuntimeConfig",
    "load_runtime_config",
    # Errors
    "BrokenBarrierError",
    "BulkheadFullError",
    "CancellationError",
    "CircuitOpenError",
    "OperationTimeoutError",
    "PoolShutdownError",
    "QueueClosedError",
    "QueueFullError",
    "ResilienceError",
    "TaskExecutionError",
    # Monitoring
    "MetricType",
    "MetricValue",
    "MetricsCollector",
    "RuntimeHealthResponse",
    "RuntimeHealthStatus",
    "get_runtime_health",
]

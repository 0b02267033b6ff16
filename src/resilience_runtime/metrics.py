"""Metrics collection for runtime monitoring.

Provides hooks for collecting and exporting metrics from worker pools,
circuit breakers and bulkheads. Designed for integration with
Prometheus, Grafana, or custom dashboards.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

_STATE_VALUES = {"closed": 0, "open": 1, "half_open": 2}


class MetricType(Enum):
    """Types of metrics collected."""

    COUNTER = "counter"  # Monotonically increasing count
    GAUGE = "gauge"  # Point-in-time value
    HISTOGRAM = "histogram"  # Distribution of values (last observation kept)


@dataclass
class MetricValue:
    """A single metric value with metadata."""

    name: str
    value: float
    metric_type: MetricType
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    description: str = ""

    def to_prometheus(self) -> str:
        """Format as Prometheus exposition format."""
        label_str = ""
        if self.labels:
            pairs = [f'{k}="{v}"' for k, v in self.labels.items()]
            label_str = "{" + ",".join(pairs) + "}"
        return f"{self.name}{label_str} {self.value}"


class MetricsCollector:
    """
    Collects metrics from runtime components.

    Provides hooks for:
    - Circuit state changes, failures and rejections
    - Task outcomes and queue rejections in worker pools
    - Admissions and rejections in bulkheads

    Counters accumulate; gauges and histograms keep the latest value.
    Safe to share between components and threads. Callbacks run
    outside the collector's lock.
    """

    def __init__(self) -> None:
        self._metrics: dict[str, MetricValue] = {}
        self._callbacks: list[Callable[[MetricValue], None]] = []
        self._state_timers: dict[str, float] = {}  # component_id -> entered_at
        self._lock = threading.Lock()

    def register_callback(self, callback: Callable[[MetricValue], None]) -> None:
        """Register a callback for metric updates."""
        with self._lock:
            self._callbacks.append(callback)

    def record_state_change(self, name: str, from_state: str, to_state: str) -> None:
        """Record a circuit state change event."""
        now = time.monotonic()
        with self._lock:
            entered_at = self._state_timers.get(name)
            self._state_timers[name] = now

        if entered_at is not None:
            self._emit_metric(
                name="resilience_circuit_state_duration_seconds",
                value=now - entered_at,
                metric_type=MetricType.GAUGE,
                labels={"circuit": name, "state": from_state},
                description=f"Time spent in {from_state} state",
            )

        self._emit_metric(
            name="resilience_circuit_state_changes_total",
            value=1,
            metric_type=MetricType.COUNTER,
            labels={"circuit": name, "from": from_state, "to": to_state},
            description="Total state changes",
        )
        self._emit_metric(
            name="resilience_circuit_state",
            value=_STATE_VALUES.get(to_state, -1),
            metric_type=MetricType.GAUGE,
            labels={"circuit": name},
            description="Current state (0=closed, 1=open, 2=half_open)",
        )

    def record_failure(self, name: str, error_type: str = "unknown") -> None:
        """Record a failed call through a circuit breaker."""
        self._emit_metric(
            name="resilience_circuit_failures_total",
            value=1,
            metric_type=MetricType.COUNTER,
            labels={"circuit": name, "error_type": error_type},
            description="Total failures recorded",
        )

    def record_success(self, name: str) -> None:
        """Record a successful call through a circuit breaker."""
        self._emit_metric(
            name="resilience_circuit_successes_total",
            value=1,
            metric_type=MetricType.COUNTER,
            labels={"circuit": name},
            description="Total successes recorded",
        )

    def record_rejection(self, component: str, name: str, reason: str) -> None:
        """Record a call rejected without being attempted."""
        self._emit_metric(
            name="resilience_rejections_total",
            value=1,
            metric_type=MetricType.COUNTER,
            labels={"component": component, "name": name, "reason": reason},
            description="Calls rejected by a limiter",
        )

    def record_task(self, pool: str, outcome: str, duration_seconds: float | None = None) -> None:
        """Record a task outcome (completed, failed, cancelled, dropped)."""
        self._emit_metric(
            name="resilience_pool_tasks_total",
            value=1,
            metric_type=MetricType.COUNTER,
            labels={"pool": pool, "outcome": outcome},
            description="Tasks by outcome",
        )
        if duration_seconds is not None:
            self._emit_metric(
                name="resilience_pool_task_duration_seconds",
                value=duration_seconds,
                metric_type=MetricType.HISTOGRAM,
                labels={"pool": pool},
                description="Task execution time",
            )

    def record_concurrency(self, name: str, executing: int, queued: int) -> None:
        """Record the current occupancy of a bulkhead."""
        self._emit_metric(
            name="resilience_bulkhead_executing",
            value=executing,
            metric_type=MetricType.GAUGE,
            labels={"bulkhead": name},
            description="Callers currently executing",
        )
        self._emit_metric(
            name="resilience_bulkhead_queued",
            value=queued,
            metric_type=MetricType.GAUGE,
            labels={"bulkhead": name},
            description="Callers waiting for a slot",
        )

    def get_all_metrics(self) -> list[MetricValue]:
        """Get all current metrics."""
        with self._lock:
            return list(self._metrics.values())

    def get_value(self, name: str, /, **labels: str) -> float:
        """Get the current value of one metric, 0.0 if never emitted."""
        key = _metric_key(name, labels)
        with self._lock:
            metric = self._metrics.get(key)
            return metric.value if metric else 0.0

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus format."""
        lines = []
        for metric in self.get_all_metrics():
            if metric.description:
                lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.metric_type.value}")
            lines.append(metric.to_prometheus())
        return "\n".join(lines)

    def _emit_metric(
        self,
        name: str,
        value: float,
        metric_type: MetricType,
        labels: dict[str, str],
        description: str = "",
    ) -> None:
        """Emit a metric and notify callbacks."""
        key = _metric_key(name, labels)
        with self._lock:
            if metric_type is MetricType.COUNTER and key in self._metrics:
                value += self._metrics[key].value
            metric = MetricValue(
                name=name,
                value=value,
                metric_type=metric_type,
                labels=labels,
                description=description,
            )
            self._metrics[key] = metric
            callbacks = list(self._callbacks)

        # Notify callbacks
        for callback in callbacks:
            try:
                callback(metric)
            except Exception as e:
                logger.error("Metrics callback error: %s", e)


def _metric_key(name: str, labels: dict[str, str]) -> str:
    return f"{name}:{':'.join(f'{k}={v}' for k, v in sorted(labels.items()))}"

"""Configuration for the resilience runtime.

Defines frozen configuration dataclasses for worker pools, circuit
breakers and bulkheads, plus a loader for TOML configuration files.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class OverflowPolicy(Enum):
    """What a worker pool does when its task queue is full."""

    BLOCK = "block"  # Caller waits for space
    REJECT = "reject"  # Caller gets QueueFullError
    DROP_OLDEST = "drop_oldest"  # Oldest queued task is cancelled


class CircuitState(Enum):
    """Possible states for a circuit breaker."""

    CLOSED = "closed"  # Normal operation - requests allowed
    OPEN = "open"  # Circuit tripped - requests blocked
    HALF_OPEN = "half_open"  # Testing recovery - one trial request


def _check_timeout(name: str, value: float | None) -> None:
    if value is not None and value < 0:
        raise ValueError(f"{name} must be >= 0 or None, got {value}")


@dataclass(frozen=True)
class PoolConfig:
    """Configuration for a worker pool.

    Attributes:
        size: Number of worker threads, fixed for the pool's lifetime.
        queue_capacity: Maximum number of queued (not yet running) tasks.
        overflow_policy: Behavior of submit() when the queue is full.
        submit_timeout_seconds: Bound on how long BLOCK submissions wait.
            None waits indefinitely.
    """

    size: int = 4
    queue_capacity: int = 100
    overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK
    submit_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError(f"pool size must be >= 1, got {self.size}")
        if self.queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {self.queue_capacity}")
        _check_timeout("submit_timeout_seconds", self.submit_timeout_seconds)


@dataclass(frozen=True)
class BreakerConfig:
    """Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before opening the circuit.
        reset_timeout_seconds: Time after the last failure before a trial call.
        failure_exceptions: Exception types counted as failures. Anything
            else raised by the operation propagates without tripping.
    """

    failure_threshold: int = 3
    reset_timeout_seconds: float = 30.0
    failure_exceptions: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.reset_timeout_seconds < 0:
            raise ValueError(
                f"reset_timeout_seconds must be >= 0, got {self.reset_timeout_seconds}"
            )


@dataclass(frozen=True)
class BulkheadConfig:
    """Configuration for a bulkhead.

    Attributes:
        max_concurrent: Callers allowed to execute at the same time.
        max_queue_size: Callers allowed to wait for a slot. 0 means fail fast.
        max_wait_seconds: Bound on time spent waiting for a slot. None waits
            indefinitely.
    """

    max_concurrent: int = 10
    max_queue_size: int = 0
    max_wait_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.max_queue_size < 0:
            raise ValueError(f"max_queue_size must be >= 0, got {self.max_queue_size}")
        _check_timeout("max_wait_seconds", self.max_wait_seconds)


@dataclass(frozen=True)
class RuntimeConfig:
    """Master configuration containing all component settings.

    Loaded from a TOML file via load_runtime_config().
    """

    pool: PoolConfig = field(default_factory=PoolConfig)
    circuit_breaker: BreakerConfig = field(default_factory=BreakerConfig)
    bulkhead: BulkheadConfig = field(default_factory=BulkheadConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pool": {
                "size": self.pool.size,
                "queue_capacity": self.pool.queue_capacity,
                "overflow_policy": self.pool.overflow_policy.value,
                "submit_timeout_seconds": self.pool.submit_timeout_seconds,
            },
            "circuit_breaker": {
                "failure_threshold": self.circuit_breaker.failure_threshold,
                "reset_timeout_seconds": self.circuit_breaker.reset_timeout_seconds,
            },
            "bulkhead": {
                "max_concurrent": self.bulkhead.max_concurrent,
                "max_queue_size": self.bulkhead.max_queue_size,
                "max_wait_seconds": self.bulkhead.max_wait_seconds,
            },
        }


# Default configuration instance for convenience
DEFAULT_CONFIG = RuntimeConfig()


def load_runtime_config(path: Path) -> RuntimeConfig:
    """Load runtime configuration from a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed RuntimeConfig.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: On invalid, empty, or corrupt TOML, or invalid values.
    """
    if not path.exists():
        msg = f"Runtime config not found: {path}"
        raise FileNotFoundError(msg)

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        msg = f"Config file is empty: {path}"
        raise ValueError(msg)

    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ValueError(msg) from exc

    config = parse_runtime_config(data)
    logger.debug("Loaded runtime config from %s", path)
    return config


def parse_runtime_config(data: dict[str, object]) -> RuntimeConfig:
    """Parse raw TOML data into a RuntimeConfig.

    Unknown fields are silently ignored for forward compatibility.
    """
    pool_data = _section(data, "pool")
    breaker_data = _section(data, "circuit_breaker")
    bulkhead_data = _section(data, "bulkhead")

    policy_name = str(pool_data.get("overflow_policy", OverflowPolicy.BLOCK.value))
    try:
        policy = OverflowPolicy(policy_name.lower())
    except ValueError as exc:
        choices = ", ".join(p.value for p in OverflowPolicy)
        msg = f"pool.overflow_policy must be one of: {choices} (got {policy_name!r})"
        raise ValueError(msg) from exc

    try:
        return RuntimeConfig(
            pool=PoolConfig(
                size=int(pool_data.get("size", 4)),
                queue_capacity=int(pool_data.get("queue_capacity", 100)),
                overflow_policy=policy,
                submit_timeout_seconds=_optional_float(
                    pool_data.get("submit_timeout_seconds")
                ),
            ),
            circuit_breaker=BreakerConfig(
                failure_threshold=int(breaker_data.get("failure_threshold", 3)),
                reset_timeout_seconds=float(breaker_data.get("reset_timeout_seconds", 30.0)),
            ),
            bulkhead=BulkheadConfig(
                max_concurrent=int(bulkhead_data.get("max_concurrent", 10)),
                max_queue_size=int(bulkhead_data.get("max_queue_size", 0)),
                max_wait_seconds=_optional_float(bulkhead_data.get("max_wait_seconds")),
            ),
        )
    except (TypeError, ValueError) as exc:
        msg = f"Invalid runtime config: {exc}"
        raise ValueError(msg) from exc


def _section(data: dict[str, object], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] section must be a table"
        raise ValueError(msg)
    return section


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    if not isinstance(value, (int, float, str)) or isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)

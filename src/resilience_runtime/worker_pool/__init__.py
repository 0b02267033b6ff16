"""Worker pool package for parallel task execution.

Re-exports all public names.
"""

from __future__ import annotations

from .pool import PoolStats, WorkerPool
from .task import Task
from .worker import Worker, WorkerStats

__all__ = [
    "PoolStats",
    "Task",
    "Worker",
    "WorkerPool",
    "WorkerStats",
]

"""Unit of work handed from a submitter to a worker."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

from ..future import Future


@dataclass
class Task:
    """A callable paired with the Future that reports its outcome.

    The Future doubles as the cancellation flag: a worker only runs the
    callable if it can move the Future from PENDING to RUNNING.
    """

    fn: Callable[[], Any]
    future: Future[Any]
    name: str
    submitted_at: float = field(default_factory=time.monotonic)

    @property
    def waited_seconds(self) -> float:
        """Get seconds elapsed since submission."""
        return time.monotonic() - self.submitted_at

"""Reusable rendezvous point for a fixed number of parties.

The barrier is generation-counted: each time the last party arrives
a new generation starts, so a waiter from a broken or finished cycle
never silently rejoins the next one.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .exceptions import BrokenBarrierError, OperationTimeoutError
from .monitor import Monitor

logger = logging.getLogger(__name__)

_TRIPPED = "tripped"


@dataclass
class _Generation:
    number: int
    broken: bool = False
    tripping: bool = False  # last party arrived, action running


@dataclass
class _BarrierState:
    count: int
    current: _Generation = field(default_factory=lambda: _Generation(0))


class Barrier:
    """Cyclic barrier for threads.

    Usage:
        barrier = Barrier(3, action=lambda: print("all arrived"))

        # in each of 3 threads
        index = barrier.wait(timeout=5.0)

    Arrival indexes count down: the first arrival gets parties - 1 and
    the last arrival (which runs the action) gets 0. The action runs
    on the last arriving thread, outside the barrier lock, before anyone
    is released. Parties arriving while it runs join the next generation.
    """

    def __init__(self, parties: int, action: Callable[[], None] | None = None) -> None:
        if parties < 1:
            raise ValueError(f"parties must be >= 1, got {parties}")
        self._parties = parties
        self._action = action
        self._monitor: Monitor[_BarrierState] = Monitor(_BarrierState(count=parties), "barrier")

    @property
    def parties(self) -> int:
        """Return the number of parties required to trip the barrier."""
        return self._parties

    @property
    def n_waiting(self) -> int:
        """Return the number of parties currently waiting."""
        return self._monitor.read(lambda s: 0 if s.current.broken else self._parties - s.count)

    @property
    def generation(self) -> int:
        """Return the current generation number."""
        return self._monitor.read(lambda s: s.current.number)

    @property
    def broken(self) -> bool:
        """Return True if the current generation is broken."""
        return self._monitor.read(lambda s: s.current.broken)

    def wait(self, timeout: float | None = None) -> int:
        """Arrive at the barrier and block until every party has arrived.

        Args:
            timeout: Maximum seconds to wait. None waits forever.

        Returns:
            Arrival index, from parties - 1 (first) down to 0 (last).

        Raises:
            BrokenBarrierError: If the barrier is or becomes broken or reset.
            OperationTimeoutError: If the timeout elapsed. The barrier is
                broken for the other waiters of this generation.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        action = self._action
        with self._monitor.guard() as state:
            while state.current.tripping:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise OperationTimeoutError("Barrier.wait", timeout)
                self._monitor.wait(_TRIPPED, remaining)

            generation = state.current
            if generation.broken:
                raise BrokenBarrierError("barrier is broken")

            state.count -= 1
            index = state.count

            if index == 0:
                if action is None:
                    self._next_generation(state)
                    logger.debug("Barrier tripped, generation=%d", state.current.number)
                    return 0
                generation.tripping = True
            else:
                while state.current is generation and not generation.broken:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        self._break(state)
                        raise OperationTimeoutError("Barrier.wait", timeout)
                    self._monitor.wait(_TRIPPED, remaining)

                if generation.broken:
                    raise BrokenBarrierError("barrier broken while waiting")
                return index

        self._trip(generation, action)
        return 0

    def _trip(self, generation: _Generation, action: Callable[[], None]) -> None:
        """Run the action, then complete generation. Called without the mutex."""
        try:
            action()
        except Exception:
            logger.warning("Barrier action failed, breaking barrier")
            with self._monitor.guard():
                generation.tripping = False
                generation.broken = True
                self._monitor.condition(_TRIPPED).notify_all()
            raise

        with self._monitor.guard() as state:
            generation.tripping = False
            if generation.broken or state.current is not generation:
                # Broken, reset or timed out by a waiter while the action ran
                generation.broken = True
                self._monitor.condition(_TRIPPED).notify_all()
                raise BrokenBarrierError("barrier broken while its action ran")
            self._next_generation(state)
            logger.debug("Barrier tripped, generation=%d", state.current.number)

    def _next_generation(self, state: _BarrierState) -> None:
        state.count = self._parties
        state.current = _Generation(state.current.number + 1)
        self._monitor.condition(_TRIPPED).notify_all()

    def _break(self, state: _BarrierState) -> None:
        state.current.broken = True
        self._monitor.condition(_TRIPPED).notify_all()

    def break_barrier(self) -> None:
        """Put the barrier into the broken state.

        Current and future waiters get BrokenBarrierError until reset().
        """
        with self._monitor.guard() as state:
            self._break(state)
        logger.info("Barrier broken")

    def reset(self) -> None:
        """Return the barrier to its initial state.

        Parties currently waiting get BrokenBarrierError; a new generation
        starts so they never rejoin the next cycle.
        """
        with self._monitor.guard() as state:
            if state.count != self._parties:
                state.current.broken = True
            self._next_generation(state)

"""Root conftest.py for pytest configuration.

Provides --run-slow flag to opt in to slow tests (skipped by default)
and shared fixtures for the concurrency tests.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterator

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-slow", action="store_true", default=False, help="Run tests marked @pytest.mark.slow"
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock for time-dependent state machines."""
    return FakeClock()


@pytest.fixture
def spawn() -> Iterator[Callable[..., threading.Thread]]:
    """Start daemon threads and join them at teardown."""
    threads: list[threading.Thread] = []

    def _spawn(target: Callable[..., object], *args: object) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True)
        threads.append(thread)
        thread.start()
        return thread

    yield _spawn

    for thread in threads:
        thread.join(timeout=5.0)

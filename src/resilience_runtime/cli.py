"""CLI for the resilience runtime.

Provides commands for inspecting configuration and for exercising a
worker pool guarded by a bulkhead and a circuit breaker.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections import Counter
from pathlib import Path

import click

from .bulkhead import Bulkhead
from .circuit_breaker import CircuitBreaker
from .config import DEFAULT_CONFIG, RuntimeConfig, load_runtime_config
from .exceptions import (
    BulkheadFullError,
    CircuitOpenError,
    OperationTimeoutError,
    ResilienceError,
    TaskExecutionError,
)
from .future import Future
from .health import get_runtime_health
from .metrics import MetricsCollector
from .worker_pool import WorkerPool

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """Resilience Runtime - worker pools, circuit breakers and bulkheads."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _resolve_config(config_path: str | None) -> RuntimeConfig:
    """Load config from a path, exiting with an error message on failure."""
    if config_path is None:
        return DEFAULT_CONFIG
    try:
        return load_runtime_config(Path(config_path))
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.group()
def config() -> None:
    """Configuration commands."""
    pass


@config.command(name="show")
@click.option("--config", "config_path", type=click.Path(), help="Path to a TOML config file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_show(config_path: str | None, as_json: bool) -> None:
    """Show the resolved runtime configuration."""
    resolved = _resolve_config(config_path)
    data = resolved.to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("\n" + "=" * 60)
    click.echo("Runtime Configuration")
    click.echo("=" * 60)
    for section, values in data.items():
        click.echo(f"\n[{section}]")
        for key, value in values.items():
            click.echo(f"  {key} = {value}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(), help="Path to a TOML config file")
@click.option("--tasks", "-n", default=20, show_default=True, help="Number of tasks to submit")
@click.option(
    "--fail-every",
    default=0,
    show_default=True,
    help="Make every Kth task raise (0 disables failures)",
)
@click.option("--delay", default=0.01, show_default=True, help="Seconds each task sleeps")
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait per result")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def smoke(
    config_path: str | None,
    tasks: int,
    fail_every: int,
    delay: float,
    timeout: float,
    as_json: bool,
) -> None:
    """Run tasks through a pool, bulkhead and circuit breaker and report."""
    resolved = _resolve_config(config_path)
    metrics = MetricsCollector()
    breaker = CircuitBreaker(resolved.circuit_breaker, name="smoke", metrics=metrics)
    bulkhead = Bulkhead(resolved.bulkhead, name="smoke", metrics=metrics)

    def operation(index: int) -> int:
        time.sleep(delay)
        if fail_every and index % fail_every == 0:
            raise RuntimeError(f"task {index} failed")
        return index

    def guarded(index: int) -> int:
        return bulkhead.execute(breaker.execute, operation, index)

    logger.info("Smoke run: %d tasks, fail_every=%d", tasks, fail_every)
    outcomes: Counter[str] = Counter()
    pool = WorkerPool(resolved.pool, name="smoke", metrics=metrics)
    try:
        futures: list[Future[int]] = []
        for index in range(1, tasks + 1):
            try:
                futures.append(pool.submit(guarded, index))
            except ResilienceError as exc:
                outcomes[_classify(exc)] += 1
        for future in futures:
            try:
                error = future.exception(timeout=timeout)
            except OperationTimeoutError:
                outcomes["timed_out"] += 1
                continue
            outcomes[_classify(error) if error else "succeeded"] += 1
        health = get_runtime_health(breakers=[breaker], bulkheads=[bulkhead], pools=[pool])
    finally:
        pool.shutdown(drain=False)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "outcomes": dict(outcomes),
                    "pool": pool.stats().to_dict(),
                    "health": health.to_dict(),
                },
                indent=2,
            )
        )
        return

    click.echo("\n" + "=" * 60)
    click.echo("Smoke Run")
    click.echo("=" * 60)
    for outcome, count in sorted(outcomes.items()):
        click.echo(f"  {outcome}: {count}")
    click.echo(f"\nCircuit: {breaker.state.value} (failures={breaker.failure_count})")
    click.echo(f"Health:  {health.status.value}")
    click.echo("\n" + metrics.export_prometheus())


def _classify(error: BaseException) -> str:
    """Map an error to an outcome label."""
    if isinstance(error, TaskExecutionError):
        error = error.original
    if isinstance(error, CircuitOpenError):
        return "circuit_open"
    if isinstance(error, BulkheadFullError):
        return "bulkhead_full"
    if isinstance(error, ResilienceError):
        return type(error).__name__
    return "failed"


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()

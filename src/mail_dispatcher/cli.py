# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the mail dispatcher.

Usage:
    mail-dispatcher demo [--config dispatcher.ini] [--latency 0.1] [--seed 7]
    mail-dispatcher config [--config dispatcher.ini]

The ``demo`` command runs the reference scenarios against simulated
providers: basic send with fallback, idempotency, rate limiting with
queueing, and circuit breaker activation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from mail_dispatcher.config import DispatcherConfig, load_dispatcher_config
from mail_dispatcher.dispatcher import MailDispatcher
from mail_dispatcher.errors import ConfigurationError, DispatchError
from mail_dispatcher.models import AlreadySubmitted
from mail_dispatcher.providers import MockProvider

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def _load_config(config_path: str | None) -> DispatcherConfig:
    if not config_path:
        return DispatcherConfig()
    return load_dispatcher_config(config_path)


def _describe(outcome: Any) -> str:
    if isinstance(outcome, AlreadySubmitted):
        return outcome.message
    if isinstance(outcome, BaseException):
        return f"[red]{outcome}[/red]"
    return f"[green]{outcome.result}[/green]"


async def _attempt(dispatcher: MailDispatcher, task: dict[str, str]) -> Any:
    try:
        return await dispatcher.send(task)
    except DispatchError as exc:
        return exc


def _task(task_id: str, recipient: str, subject: str, body: str) -> dict[str, str]:
    return {"id": task_id, "recipient": recipient, "subject": subject, "body": body}


async def run_demo(base: DispatcherConfig, latency: float, seed: int | None) -> list[tuple[str, str, str, str]]:
    """Run every demonstration scenario.

    Returns:
        Rows of (scenario, task id, outcome, final status).
    """
    rng = random.Random(seed)
    rows: list[tuple[str, str, str, str]] = []

    def record(scenario: str, dispatcher: MailDispatcher, task_id: str, outcome: Any) -> None:
        status = dispatcher.status_of(task_id)
        rows.append((scenario, task_id, _describe(outcome), status.value if status else "-"))

    # Basic send with fallback, then idempotency on the same dispatcher
    async with MailDispatcher(
        [
            MockProvider("provider-1", success_rate=0.5, latency=latency, rng=rng),
            MockProvider("provider-2", success_rate=1.0, latency=latency * 1.5, rng=rng),
        ],
        base,
        max_retries=1,
        initial_retry_delay=0.05,
    ) as dispatcher:
        task = _task("demo-basic-1", "demo@example.com", "Quick Demo Email", "This is a test email.")
        record("fallback", dispatcher, task["id"], await _attempt(dispatcher, task))

        first = _task("demo-idempotent-1", "idempotent@example.com", "Idempotency Test", "First email.")
        second = dict(first, body="Second email.")
        record("idempotency", dispatcher, first["id"], await _attempt(dispatcher, first))
        record("idempotency", dispatcher, second["id"], await _attempt(dispatcher, second))

    # Rate limiting: one admission per window, the rest waits in the queue
    async with MailDispatcher(
        [MockProvider("provider-1", success_rate=1.0, latency=latency, rng=rng)],
        base,
        rate_limit_window=0.5,
        max_requests_per_window=1,
        initial_retry_delay=0.01,
    ) as dispatcher:
        tasks = [
            _task(f"demo-ratelimit-{i}", f"rl{i}@example.com", f"Rate Limit Test {i}", f"Body {i}")
            for i in range(4)
        ]
        outcomes = await asyncio.gather(*(_attempt(dispatcher, t) for t in tasks))
        for t, outcome in zip(tasks, outcomes, strict=True):
            record("rate limit", dispatcher, t["id"], outcome)

    # Circuit breaker: provider-1 always fails, the third send is blocked without a call
    async with MailDispatcher(
        [MockProvider("provider-1", success_rate=0.0, latency=latency, rng=rng)],
        base,
        max_retries=0,
        circuit_breaker_threshold=2,
        circuit_breaker_timeout=5.0,
    ) as dispatcher:
        for i in range(1, 4):
            task = _task(f"demo-cb-{i}", "cb@example.com", f"Circuit Breaker Test {i}", "Testing provider-1.")
            record("circuit breaker", dispatcher, task["id"], await _attempt(dispatcher, task))
        state = dispatcher.circuit_state(0)
        rows.append(("circuit breaker", "provider-1", f"circuit open: {state.is_open}", "-"))

    return rows


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log every dispatcher state transition.")
def cli(verbose: bool) -> None:
    """Resilient mail dispatcher."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="INI file with a [dispatcher] section.")
@click.option("--latency", type=float, default=0.1, show_default=True, help="Simulated provider latency in seconds.")
@click.option("--seed", type=int, default=None, help="Seed for the simulated providers.")
def demo(config_path: str | None, latency: float, seed: int | None) -> None:
    """Run the demonstration scenarios against simulated providers."""
    try:
        base = _load_config(config_path)
    except (FileNotFoundError, ConfigurationError) as exc:
        print_error(str(exc))
        raise SystemExit(1) from exc

    rows = run_async(run_demo(base, latency, seed))

    table = Table(title="Dispatch demonstration")
    table.add_column("Scenario", style="cyan")
    table.add_column("Task")
    table.add_column("Outcome")
    table.add_column("Status")
    for row in rows:
        table.add_row(*row)
    console.print(table)


@cli.command("config")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="INI file with a [dispatcher] section.")
def show_config(config_path: str | None) -> None:
    """Print the effective dispatcher configuration as JSON."""
    try:
        config = _load_config(config_path)
    except (FileNotFoundError, ConfigurationError) as exc:
        print_error(str(exc))
        raise SystemExit(1) from exc
    console.print_json(json.dumps(config.as_dict(), indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

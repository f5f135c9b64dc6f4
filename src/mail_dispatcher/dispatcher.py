# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Core orchestration logic for the mail dispatcher.

This module provides :class:`MailDispatcher`, which decides for every
submitted task which provider to try, how many times, in what order, whether
to defer it, and how to remember the outcome. It coordinates:

- The idempotency ledger and status store
- Rate-limited admission with an in-process pending queue
- Per-provider circuit breakers
- Exponential backoff retries per provider
- Ordered fallback starting from the last provider that succeeded

All shared state is owned by the dispatcher instance, so independent
dispatchers can coexist in one process.

Example:
    Dispatching a task::

        from mail_dispatcher import MailDispatcher
        from mail_dispatcher.providers import MockProvider

        async with MailDispatcher(
            [MockProvider("primary", success_rate=0.5), MockProvider("backup")],
            max_retries=1,
            initial_retry_delay=0.05,
        ) as dispatcher:
            delivery = await dispatcher.send(
                {"id": "invoice-42", "to": "a@example.com", "subject": "Invoice", "body": "..."}
            )
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .circuit_breaker import HALF_OPEN, CircuitBreakerRegistry, CircuitState
from .config import DispatcherConfig
from .errors import AllProvidersFailed, CircuitOpen, RetryExhausted
from .ledger import IdempotencyLedger, StatusStore
from .logger import get_logger
from .models import AlreadySubmitted, Delivery, MailTask, TaskStatus
from .pending_queue import PendingQueue
from .prometheus import DispatchMetrics
from .providers import ProviderHandle, build_handles
from .rate_limit import RateLimiter
from .retry import BackoffExecutor


class MailDispatcher:
    """Central orchestrator for resilient email sends.

    Attributes:
        config: Effective configuration.
        logger: Logger shared by all sub-components unless they get their own.
        metrics: Prometheus metrics collector.
        providers: Provider handles in fallback order.
    """

    def __init__(
        self,
        providers: Iterable[Any],
        config: DispatcherConfig | None = None,
        *,
        logger=None,
        metrics: DispatchMetrics | None = None,
        executor: BackoffExecutor | None = None,
        clock: Callable[[], float] = time.monotonic,
        **overrides: Any,
    ):
        """Initialize the dispatcher.

        Args:
            providers: Non-empty ordered providers; order is fallback priority.
            config: Dispatcher configuration. Defaults to ``DispatcherConfig()``.
            logger: Logger for every state transition. Defaults to the
                "MailDispatcher" logger. Any object with ``debug``, ``info``,
                ``warning`` and ``error`` methods taking ``(msg, *args)`` in
                ``logging`` style is accepted; it is shared with every
                sub-component.
            metrics: Prometheus metrics collector. If None, creates a new one
                with a private registry.
            executor: Backoff executor used for provider attempts.
            clock: Monotonic clock shared by the rate limiter and breakers.
            **overrides: Individual ``DispatcherConfig`` fields overriding
                ``config``.

        Raises:
            ConfigurationError: If the provider list is empty, a provider is
                not callable, or a configuration value is invalid.
        """
        base = config or DispatcherConfig()
        self.config = base.replace(**overrides) if overrides else base
        self.logger = logger or get_logger()
        self.metrics = metrics or DispatchMetrics()
        self.providers: tuple[ProviderHandle, ...] = build_handles(providers)

        self._executor = executor or BackoffExecutor(logger=self.logger)
        self._circuits = CircuitBreakerRegistry(
            self.providers,
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
            half_open_attempts=self.config.circuit_breaker_half_open_attempts,
            logger=self.logger,
            clock=clock,
        )
        self._rate_limiter = RateLimiter(
            window=self.config.rate_limit_window,
            max_requests=self.config.max_requests_per_window,
            logger=self.logger,
            clock=clock,
        )
        self._ledger = IdempotencyLedger(logger=self.logger)
        self._statuses = StatusStore()
        self._queue = PendingQueue(
            admit=self._rate_limiter.try_admit,
            process=self._run_queued,
            retry_delay=self.config.queue_retry_delay,
            logger=self.logger,
        )
        self._preferred_index = 0

    async def __aenter__(self) -> MailDispatcher:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ------------------------------------------------------------- public API
    async def send(self, task: MailTask | Mapping[str, Any]) -> Delivery | AlreadySubmitted:
        """Dispatch a task to the first provider that accepts it.

        Args:
            task: A ``MailTask`` or a mapping with ``id``, ``recipient`` (or
                ``to``), ``subject`` and ``body``.

        Returns:
            ``Delivery`` on success, or ``AlreadySubmitted`` when the id was
            seen before. A rate-limited task is queued and this call returns
            once the queue has processed it.

        Raises:
            InvalidTask: If a required field is missing or empty.
            AllProvidersFailed: If every provider was skipped or exhausted.
        """
        task = MailTask.from_payload(task)

        if self._ledger.check_and_mark(task.id):
            status = self._statuses.get(task.id)
            self.logger.info(
                "Task %s already submitted (idempotency). Current status: %s",
                task.id,
                status.value if status else "unknown",
            )
            self.metrics.inc_duplicate()
            return AlreadySubmitted(task_id=task.id, status=status)

        if not self._rate_limiter.try_admit():
            self._statuses.set(task.id, TaskStatus.PENDING)
            self.logger.info("Task %s is rate-limited. Queuing...", task.id)
            self.metrics.inc_rate_limited()
            future = self._queue.push(task)
            self.metrics.set_pending(len(self._queue))
            self._queue.schedule_drain()
            return await future

        return await self._process(task)

    def status_of(self, task_id: str) -> TaskStatus | None:
        """Return the latest known status of a task, or None if never seen."""
        return self._statuses.get(task_id)

    def circuit_state(self, provider: ProviderHandle | int) -> CircuitState:
        """Return a copy of a provider's breaker state, by handle or index."""
        handle = self.providers[provider] if isinstance(provider, int) else provider
        return self._circuits.snapshot(handle)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def preferred_provider(self) -> ProviderHandle:
        """Provider the next task will try first."""
        return self.providers[self._preferred_index]

    def clear_idempotency(self) -> None:
        """Housekeeping hook: forget accepted task ids. Never called automatically."""
        self._ledger.clear()

    async def join(self) -> None:
        """Wait until every queued task has reached a terminal outcome."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the scheduled queue retry and any task still waiting in the queue.

        Dropped tasks are marked failed so their ids never stay pending.
        """
        for task in await self._queue.close():
            self._statuses.set(task.id, TaskStatus.FAILED)
        self.metrics.set_pending(0)

    # -------------------------------------------------------------- internals
    async def _run_queued(self, task: MailTask) -> Delivery:
        self.metrics.set_pending(len(self._queue))
        self.logger.info("Processing queued task %s.", task.id)
        return await self._process(task)

    async def _process(self, task: MailTask) -> Delivery:
        self._statuses.set(task.id, TaskStatus.PROCESSING)
        self.logger.info("Task %s added to processing.", task.id)
        try:
            return await self._dispatch(task)
        except AllProvidersFailed:
            raise
        except asyncio.CancelledError:
            self._statuses.set(task.id, TaskStatus.FAILED)
            self.logger.warning("Task %s cancelled during processing.", task.id)
            raise
        except Exception as exc:
            self._statuses.set(task.id, TaskStatus.FAILED)
            self.logger.error("Unhandled error during task %s processing: %s", task.id, exc)
            raise
        finally:
            self._queue.schedule_drain()

    async def _dispatch(self, task: MailTask) -> Delivery:
        last_error: Exception | None = None
        count = len(self.providers)
        start = self._preferred_index

        for offset in range(count):
            provider = self.providers[(start + offset) % count]

            if self._circuits.is_blocking(provider):
                self.logger.info(
                    "Skipping provider %s for task %s because circuit is open.", provider.name, task.id
                )
                self.metrics.inc_circuit_skip(provider.name)
                last_error = CircuitOpen(provider)
                continue

            probing = self._circuits.state_of(provider) == HALF_OPEN
            if offset > 0:
                self.logger.info("Falling back to provider %s for task %s.", provider.name, task.id)

            try:
                result = await self._executor.execute(
                    lambda p=provider: p.send(task.recipient, task.subject, task.body),
                    self.config.max_retries,
                    self.config.initial_retry_delay,
                    label=f"task {task.id} via {provider.name}",
                )
            except asyncio.CancelledError:
                if probing:
                    self._circuits.release_probe(provider)
                raise
            except RetryExhausted as exc:
                last_error = exc.last_error or exc
                self.logger.warning(
                    "Provider %s failed for task %s. Trying next provider...", provider.name, task.id
                )
                self.logger.error("Error for %s with provider %s: %s", task.id, provider.name, last_error)
                self._circuits.record_failure(provider)
                self.metrics.inc_provider_failure(provider.name)
                continue

            self._circuits.record_success(provider)
            self._statuses.set(task.id, TaskStatus.SENT)
            self._preferred_index = provider.index
            self.metrics.inc_sent(provider.name)
            self.logger.info("Task %s successfully sent via provider %s.", task.id, provider.name)
            return Delivery(task_id=task.id, provider=provider.name, result=result)

        self._statuses.set(task.id, TaskStatus.FAILED)
        self.metrics.inc_failed()
        error = AllProvidersFailed(task.id, last_error)
        self.logger.error("%s", error)
        raise error from last_error

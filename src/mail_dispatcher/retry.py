# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exponential backoff executor.

Retries an arbitrary zero-argument operation. The executor knows nothing
about providers, circuits or tasks: the dispatcher wraps each provider call
in a closure and decides what an exhausted retry budget means.

Delay schedule for ``initial_delay = d``::

    attempt 1 fails -> wait d
    attempt 2 fails -> wait 2d
    attempt 3 fails -> wait 4d
    ...

There is no jitter and no cap; callers bound the total wait with
``max_retries``.

Example:
    Retrying a flaky coroutine::

        executor = BackoffExecutor()
        result = await executor.execute(lambda: fetch(), max_retries=3, initial_delay=0.1)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .errors import RetryExhausted
from .logger import get_logger

T = TypeVar("T")


class BackoffExecutor:
    """Runs an operation until it succeeds or its retry budget is spent.

    Attributes:
        logger: Receives one line per attempt, failure and retry wait.
    """

    def __init__(self, logger=None, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """Initialize the executor.

        Args:
            logger: Logger for attempt reporting. Defaults to the
                "BackoffExecutor" dispatcher logger.
            sleep: Coroutine function used to wait between attempts.
                Tests replace it to record delays without waiting.
        """
        self.logger = logger or get_logger("BackoffExecutor")
        self._sleep = sleep

    @staticmethod
    def delay_for(attempt: int, initial_delay: float) -> float:
        """Return the wait that follows failed attempt ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return initial_delay * (2 ** (attempt - 1))

    async def execute(
        self,
        operation: Callable[[], T | Awaitable[T]],
        max_retries: int,
        initial_delay: float,
        *,
        label: str | None = None,
    ) -> T:
        """Call ``operation`` up to ``max_retries + 1`` times.

        Args:
            operation: Zero-argument callable returning a value or an awaitable.
            max_retries: Retries after the first attempt.
            initial_delay: Seconds to wait after the first failure.
            label: Describes the operation in log lines.

        Returns:
            The first successful result.

        Raises:
            RetryExhausted: After the last attempt fails. ``last_error`` holds
                the final underlying exception.
            ValueError: If ``max_retries`` is negative.
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        label = label or getattr(operation, "__name__", "operation")
        total = max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, total + 1):
            self.logger.info("Attempt %d/%d for %s", attempt, total, label)
            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                last_error = exc
                self.logger.error("Attempt %d/%d for %s failed: %s", attempt, total, label, exc)
                if attempt < total:
                    delay = self.delay_for(attempt, initial_delay)
                    self.logger.info(
                        "Retrying %s, attempt %d/%d after %.3fs", label, attempt + 1, total, delay
                    )
                    await self._sleep(delay)

        message = f"Failed after {total} attempts for {label}. Last error: {last_error}"
        self.logger.error(message)
        raise RetryExhausted(message, last_error=last_error, attempts=total) from last_error

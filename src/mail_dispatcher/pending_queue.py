# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FIFO holding area for tasks deferred by the admission controller.

Each queued task carries an ``asyncio.Future`` that the submitting caller
awaits. A single drain loop pops entries while admission allows, runs them
through the dispatcher and publishes each outcome to its future exactly once.

When admission is denied the loop stops and a new pass is scheduled after
``retry_delay`` seconds. Passes are also triggered after every enqueue and
after every completed send, so the backlog moves as soon as capacity frees
up rather than only on the timer.

Example:
    Wiring the queue to a limiter::

        queue = PendingQueue(admit=limiter.try_admit, process=run_task, retry_delay=1.01)
        future = queue.push(task)
        queue.schedule_drain()
        outcome = await future
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .logger import get_logger


@dataclass
class QueueEntry:
    """A deferred task and the future its caller awaits."""

    task: Any
    future: asyncio.Future


class PendingQueue:
    """Single-worker queue drained under admission control.

    Attributes:
        retry_delay: Seconds to wait before draining again after admission
            was denied.
        logger: Receives queue lifecycle messages.
    """

    def __init__(
        self,
        *,
        admit: Callable[[], bool],
        process: Callable[[Any], Awaitable[Any]],
        retry_delay: float,
        logger=None,
    ):
        self._admit = admit
        self._process = process
        self.retry_delay = retry_delay
        self.logger = logger or get_logger("PendingQueue")

        self._entries: deque[QueueEntry] = deque()
        self._current: QueueEntry | None = None
        self._draining = False
        self._closed = False
        self._drain_task: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def draining(self) -> bool:
        return self._draining

    def push(self, task: Any) -> asyncio.Future:
        """Append ``task`` and return the future that will carry its outcome."""
        future = asyncio.get_running_loop().create_future()
        self._entries.append(QueueEntry(task, future))
        self._idle.clear()
        return future

    def schedule_drain(self) -> None:
        """Start a drain pass in the background unless one is already active."""
        if self._closed or self._draining or not self._entries:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self.drain())

    async def drain(self) -> None:
        """Process queued entries while admission allows.

        Entries whose caller stopped waiting are still processed; only the
        publication of their outcome is skipped. Re-entrant calls while a
        pass is active return immediately.
        """
        if self._draining:
            return
        self._draining = True
        try:
            while self._entries:
                if not self._admit():
                    self.logger.info("Rate limited: stopping queue processing temporarily.")
                    break
                entry = self._current = self._entries.popleft()
                try:
                    result = await self._process(entry.task)
                except asyncio.CancelledError:
                    entry.future.cancel()
                    raise
                except Exception as exc:
                    if not entry.future.done():
                        entry.future.set_exception(exc)
                else:
                    if not entry.future.done():
                        entry.future.set_result(result)
                finally:
                    self._current = None
        finally:
            self._draining = False

        if self._entries:
            self._schedule_retry()
        else:
            self._idle.set()

    def _schedule_retry(self) -> None:
        if self._closed or self._retry_handle is not None:
            return
        self.logger.info(
            "Queue still has %d item(s) after rate limit hit. Retrying in %.3fs.",
            len(self._entries),
            self.retry_delay,
        )
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(self.retry_delay, self._on_retry)

    def _on_retry(self) -> None:
        self._retry_handle = None
        self.schedule_drain()

    async def join(self) -> None:
        """Wait until every queued entry has been processed."""
        await self._idle.wait()

    async def close(self) -> list[Any]:
        """Stop draining and cancel the futures of entries still waiting.

        Returns:
            The tasks that were dropped without being processed.
        """
        self._closed = True
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

        task = self._drain_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._current is not None:
            self._current.future.cancel()
        dropped = []
        while self._entries:
            entry = self._entries.popleft()
            entry.future.cancel()
            dropped.append(entry.task)
        if dropped:
            self.logger.warning("Pending queue closed with %d task(s) still waiting.", len(dropped))
        self._idle.set()
        return dropped

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Window-based admission control for new attempt sequences.

The limiter keeps the timestamps of recently admitted attempts in memory and
admits a new one only while fewer than ``max_requests`` fall inside the
window. The budget is shared by every task and provider of a dispatcher.

Bursts straddling a window boundary may briefly reach twice the nominal
rate.

Example:
    Gating work::

        limiter = RateLimiter(window=1.0, max_requests=10)
        if limiter.try_admit():
            await send_now()
        else:
            queue.push(task)
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable

from .logger import get_logger


class RateLimiter:
    """In-memory admission window.

    Attributes:
        window: Length of the window in seconds.
        max_requests: Admissions allowed inside one window.
        logger: Receives a line each time admission is denied.
    """

    def __init__(
        self,
        *,
        window: float = 1.0,
        max_requests: int = 10,
        logger=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self.max_requests = max_requests
        self.logger = logger or get_logger("RateLimiter")
        self._clock = clock
        self._timestamps: deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    def try_admit(self) -> bool:
        """Admit a new attempt if the window has room, recording it.

        Returns:
            True when the attempt was admitted and recorded, False when the
            window is full.
        """
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) >= self.max_requests:
            self.logger.info(
                "Rate limited: too many requests (%d in the last %.3fs).", len(self._timestamps), self.window
            )
            return False
        self._timestamps.append(now)
        return True

    def retry_after(self) -> float:
        """Seconds until the window has room again (0 when it already has)."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            return 0.0
        return max(0.0, self.window - (now - self._timestamps[0]))

    @property
    def in_window(self) -> int:
        """Admissions currently counted against the window."""
        self._prune(self._clock())
        return len(self._timestamps)

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Idempotency ledger and task status store.

Both tables live inside a dispatcher instance and are held for the life of
the process. Nothing is evicted automatically; ``clear()`` exists as a
housekeeping hook for long-running services.
"""

from __future__ import annotations

from .logger import get_logger
from .models import TaskStatus


class IdempotencyLedger:
    """Set of task ids already accepted by the dispatcher."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger("IdempotencyLedger")
        self._seen: set[str] = set()

    def check_and_mark(self, task_id: str) -> bool:
        """Mark ``task_id`` as handled.

        Runs without awaiting, so concurrent submissions of the same id
        cannot both observe it as new.

        Returns:
            True if the id was already marked (state untouched), False if
            this call marked it.
        """
        if task_id in self._seen:
            return True
        self._seen.add(task_id)
        return False

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def clear(self) -> None:
        self.logger.info("Cleaning up idempotency ledger (clearing %d ids).", len(self._seen))
        self._seen.clear()


class StatusStore:
    """Maps task ids to their latest :class:`TaskStatus`."""

    def __init__(self):
        self._statuses: dict[str, TaskStatus] = {}

    def set(self, task_id: str, status: TaskStatus) -> None:
        self._statuses[task_id] = TaskStatus(status)

    def get(self, task_id: str) -> TaskStatus | None:
        return self._statuses.get(task_id)

    def items(self) -> list[tuple[str, TaskStatus]]:
        return list(self._statuses.items())

    def __len__(self) -> int:
        return len(self._statuses)

    def clear(self) -> None:
        self._statuses.clear()

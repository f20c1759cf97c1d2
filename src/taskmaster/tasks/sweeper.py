# src/taskmaster/tasks/sweeper.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.ports import TaskRepo
from .task_models import TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes terminal tasks whose completed_at is older than the retention window."""

    def __init__(self, store: TaskRepo, *, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def sweep(self, retention_seconds: float) -> int:
        cutoff = self._clock() - max(0.0, float(retention_seconds))
        try:
            old = self._store.find_completed_before(TERMINAL_STATUSES, cutoff)
            if not old:
                logger.info("Retention sweep: nothing older than the cutoff.")
                return 0
            deleted = self._store.delete_all(t.id for t in old)
        except Exception:
            # Leaves the store untouched; the next run tries again.
            logger.exception("Retention sweep failed")
            return 0

        logger.info("Retention sweep deleted %d of %d terminal tasks.", deleted, len(old))
        return deleted

# src/taskmaster/tasks/reconciler.py

from __future__ import annotations

"""
Schedule reconciler.

One run:
- select PENDING/SCHEDULED tasks without scheduled_at (PENDING only once analysed),
- keep those whose dependencies are all COMPLETED (others wait for the next run),
- ask the oracle for a start time per task (no call if nothing is left),
- validate every suggestion against the batch that was sent,
- apply each valid suggestion through the lifecycle, one task at a time.

The oracle only suggests; the lifecycle's read-check-write decides whether a
suggestion still applies.
"""

import logging
import time
from collections.abc import Callable

from ..core.ports import ScheduleRequestItem, TaskOracle, TaskRepo
from ..errors import InvalidTaskStateError, OracleError
from .gate import DependencyGate
from .lifecycle import TaskLifecycle
from .task_models import RunOutcome, TaskStatus

logger = logging.getLogger(__name__)

CANDIDATE_STATUSES = (TaskStatus.PENDING, TaskStatus.SCHEDULED)


class ScheduleReconciler:
    def __init__(
        self,
        store: TaskRepo,
        gate: DependencyGate,
        oracle: TaskOracle,
        lifecycle: TaskLifecycle,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._gate = gate
        self._oracle = oracle
        self._lifecycle = lifecycle
        self._clock = clock

    def reconcile(self, reference_ts: float | None = None) -> RunOutcome:
        if reference_ts is None:
            reference_ts = self._clock()
        outcome = RunOutcome()

        candidates = []
        for task in self._store.find_unscheduled(CANDIDATE_STATUSES):
            # PENDING without a priority: create_task is still waiting on the analysis.
            if task.status == TaskStatus.PENDING and task.priority is None:
                logger.debug("Skipping task %s from scheduling: analysis in progress.", task.id)
                continue
            candidates.append(task)
        if not candidates:
            logger.info("No candidate tasks require scheduling.")
            return outcome

        ready = []
        for task in candidates:
            try:
                met = self._gate.met(task)
            except Exception:
                logger.exception("Dependency check failed for task %s; leaving it for the next run", task.id)
                continue
            if met:
                ready.append(task)
            else:
                logger.debug("Skipping task %s from scheduling: dependencies not met.", task.id)

        if not ready:
            logger.info("No candidate tasks have met dependencies.")
            return outcome

        outcome.candidates = len(ready)
        logger.info("Requesting schedule for %d of %d candidate tasks.", len(ready), len(candidates))

        items = [
            ScheduleRequestItem(
                id=t.id,
                title=t.title,
                priority=t.priority,
                duration_minutes=t.estimated_duration_minutes,
                depends_on=t.depends_on,
            )
            for t in ready
        ]

        try:
            suggestions = self._oracle.schedule(reference_ts, items)
        except OracleError as e:
            # The whole batch waits for the next run.
            logger.warning("Schedule suggestion failed (retryable=%s): %s", e.retryable, e)
            outcome.failed = len(ready)
            return outcome

        batch_ids = {t.id for t in ready}
        applied: set[str] = set()

        for s in suggestions:
            if not s.task_id or s.start_at is None:
                logger.warning("Discarding schedule entry with missing fields: %s", s)
                outcome.failed += 1
                continue
            if s.task_id not in batch_ids:
                logger.warning("Discarding schedule entry for unknown task id %s", s.task_id)
                outcome.failed += 1
                continue
            if s.task_id in applied:
                logger.info("Ignoring duplicate schedule entry for task %s", s.task_id)
                outcome.skipped += 1
                continue

            try:
                self._lifecycle.schedule(s.task_id, s.start_at)
            except InvalidTaskStateError as e:
                # Includes DependenciesNotMetError: a concurrent writer got there first.
                logger.info("Skipping schedule for task %s: %s", s.task_id, e)
                outcome.skipped += 1
                continue
            except Exception:
                logger.exception("Failed to apply schedule for task %s", s.task_id)
                outcome.failed += 1
                continue

            applied.add(s.task_id)
            outcome.succeeded += 1

        logger.info("Finished applying schedule suggestion: %s", outcome)
        return outcome

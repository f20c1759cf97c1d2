# src/taskmaster/tasks/lifecycle.py

"""
Task lifecycle manager.

Owns the state machine:

    (new)        -> PENDING
    PENDING      -> SCHEDULED               (enrichment succeeded; no start time yet)
    PENDING      -> SCHEDULED + scheduled_at (reconciler; dependencies met)
    SCHEDULED    -> SCHEDULED + scheduled_at (only while scheduled_at is unset)
    SCHEDULED    -> IN_PROGRESS             (dependencies met; plan present)
    IN_PROGRESS  -> COMPLETED
    non-terminal -> FAILED | CANCELLED

Terminal states accept nothing; completed_at is set exactly when a task
enters one of them.

`apply_transition` is pure. `TaskLifecycle` wraps it in read-check-write:
fetch the freshest row, validate against it, then write conditionally on
the status that was read.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace

from ..core.ports import TaskAnalysis, TaskRepo
from ..errors import DependenciesNotMetError, InvalidTaskStateError, TaskNotFoundError
from .gate import DependencyGate
from .task_models import Task, TaskNote, TaskStatus

logger = logging.getLogger(__name__)

_ALLOWED: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.SCHEDULED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.SCHEDULED: frozenset(
        {TaskStatus.SCHEDULED, TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in _ALLOWED.get(current, frozenset())


def new_task(
    title: str,
    description: str,
    depends_on: Iterable[str] = (),
    *,
    now: float,
    task_id: str | None = None,
) -> Task:
    return Task(
        id=task_id or uuid.uuid4().hex,
        title=title,
        description=description,
        status=TaskStatus.PENDING,
        created_at=float(now),
        depends_on=frozenset(depends_on),
    )


def apply_transition(
    task: Task,
    target: TaskStatus,
    *,
    now: float,
    scheduled_at: float | None = None,
    reason: str | None = None,
) -> Task:
    """
    Return a copy of `task` moved to `target` with the side effects applied.

    Raises InvalidTaskStateError (task untouched) for anything outside the table.
    """
    current = task.status
    if not can_transition(current, target):
        raise InvalidTaskStateError(task.id, current, target)

    if target == TaskStatus.SCHEDULED:
        if scheduled_at is None:
            if current != TaskStatus.PENDING:
                raise InvalidTaskStateError(task.id, current, target, "no start time given")
            return replace(task, status=TaskStatus.SCHEDULED)
        if task.scheduled_at is not None:
            raise InvalidTaskStateError(task.id, current, target, "already has a scheduled time")
        return replace(task, status=TaskStatus.SCHEDULED, scheduled_at=float(scheduled_at))

    if target == TaskStatus.IN_PROGRESS:
        if not task.has_plan:
            raise InvalidTaskStateError(task.id, current, target, "no execution plan")
        return replace(task, status=TaskStatus.IN_PROGRESS, started_at=float(now))

    # COMPLETED / FAILED / CANCELLED
    notes = task.notes
    if reason and reason.strip():
        notes = (*notes, TaskNote(at=float(now), text=reason.strip()))
    return replace(task, status=target, completed_at=float(now), notes=notes)


class TaskLifecycle:
    def __init__(
        self,
        store: TaskRepo,
        gate: DependencyGate,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._gate = gate
        self._clock = clock

    def _load(self, task_id: str) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _commit(self, before: Task, after: Task, *, expect_unscheduled: bool = False) -> Task:
        ok = self._store.update_task(
            after, expected_status=before.status, expect_unscheduled=expect_unscheduled
        )
        if not ok:
            fresh = self._store.get_task(before.id)
            if fresh is None:
                raise TaskNotFoundError(before.id)
            raise InvalidTaskStateError(
                before.id, fresh.status, after.status, "changed by a concurrent writer"
            )
        if before.status != after.status:
            logger.info("Task %s %s -> %s", after.id, before.status.value, after.status.value)
        return after

    # ---- transitions ----

    def mark_enriched(self, task_id: str, analysis: TaskAnalysis) -> Task:
        """PENDING -> SCHEDULED carrying the oracle's analysis (the only write of priority)."""
        task = self._load(task_id)
        after = apply_transition(task, TaskStatus.SCHEDULED, now=self._clock())
        after = replace(
            after,
            priority=analysis.priority,
            estimated_duration_minutes=analysis.estimated_duration_minutes,
            suggested_subtasks=list(analysis.suggested_subtasks),
        )
        return self._commit(task, after)

    def schedule(self, task_id: str, start_at: float) -> Task:
        task = self._load(task_id)
        if task.status not in (TaskStatus.PENDING, TaskStatus.SCHEDULED):
            raise InvalidTaskStateError(task.id, task.status, TaskStatus.SCHEDULED)
        if not self._gate.met(task):
            raise DependenciesNotMetError(task.id, task.status, TaskStatus.SCHEDULED)
        after = apply_transition(task, TaskStatus.SCHEDULED, now=self._clock(), scheduled_at=start_at)
        return self._commit(task, after, expect_unscheduled=True)

    def start(self, task_id: str) -> Task:
        task = self._load(task_id)
        if task.status != TaskStatus.SCHEDULED:
            raise InvalidTaskStateError(task.id, task.status, TaskStatus.IN_PROGRESS)
        if not self._gate.met(task):
            raise DependenciesNotMetError(task.id, task.status, TaskStatus.IN_PROGRESS)
        after = apply_transition(task, TaskStatus.IN_PROGRESS, now=self._clock())
        return self._commit(task, after)

    def complete(self, task_id: str) -> Task:
        task = self._load(task_id)
        after = apply_transition(task, TaskStatus.COMPLETED, now=self._clock())
        return self._commit(task, after)

    def fail(self, task_id: str, reason: str | None = None) -> Task:
        task = self._load(task_id)
        after = apply_transition(task, TaskStatus.FAILED, now=self._clock(), reason=reason)
        return self._commit(task, after)

    def cancel(self, task_id: str, reason: str | None = None) -> Task:
        task = self._load(task_id)
        after = apply_transition(task, TaskStatus.CANCELLED, now=self._clock(), reason=reason)
        return self._commit(task, after)

    # ---- planning data ----

    def set_plan(self, task_id: str, steps: Sequence[str]) -> Task:
        """Store execution steps; allowed while the task is not terminal."""
        task = self._load(task_id)
        if task.status.is_terminal:
            raise InvalidTaskStateError(task.id, task.status, task.status, "task is terminal")
        if task.has_plan:
            logger.warning("Execution plan already exists for task %s. Overwriting.", task.id)
        after = replace(task, execution_steps=[str(s) for s in steps])
        return self._commit(task, after)

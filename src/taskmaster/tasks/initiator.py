# src/taskmaster/tasks/initiator.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.ports import TaskOracle, TaskRepo
from ..errors import DependenciesNotMetError, InvalidTaskStateError, OracleError, TaskNotFoundError
from .gate import DependencyGate
from .lifecycle import TaskLifecycle
from .task_models import RunOutcome, Task, TaskStatus

logger = logging.getLogger(__name__)


class ExecutionInitiator:
    """
    Moves due SCHEDULED tasks to IN_PROGRESS.

    For each task:
    - dependencies unmet -> left SCHEDULED, retried next run
    - no execution plan  -> ask the oracle for one; empty plan is a failure
    - success            -> IN_PROGRESS
    - failure            -> best-effort FAILED with the error appended to notes
    """

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

    def generate_plan(self, task_id: str) -> Task:
        """Ask the oracle for execution steps and store them. Raises OracleError on an empty plan."""
        task = self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED):
            logger.warning("Skipping plan generation for task %s: already %s", task_id, task.status.value)
            return task

        plan = self._oracle.plan(task.title, task.description, task.priority, task.suggested_subtasks)
        if not plan.steps:
            raise OracleError(f"execution plan for task {task_id} is empty")
        return self._lifecycle.set_plan(task_id, plan.steps)

    def initiate(self, task: Task | None) -> Task | None:
        return self._initiate(task)[0]

    def initiate_due(self, now_ts: float | None = None) -> RunOutcome:
        if now_ts is None:
            now_ts = self._clock()
        outcome = RunOutcome()

        due = self._store.find_due(now_ts)
        if not due:
            logger.debug("No tasks are currently due for execution.")
            return outcome

        outcome.candidates = len(due)
        logger.info("Found %d tasks due for execution.", len(due))

        for task in due:
            try:
                updated, errored = self._initiate(task)
            except Exception:
                logger.exception("Initiation crashed for task %s", task.id)
                outcome.failed += 1
                continue

            status = updated.status if updated is not None else None
            if errored:
                # Counted as failed even when the FAILED write itself did not land.
                outcome.failed += 1
            elif status == TaskStatus.IN_PROGRESS:
                outcome.succeeded += 1
            elif status == TaskStatus.SCHEDULED:
                outcome.skipped += 1
            else:
                logger.warning("Initiation of task %s ended in status %s", task.id, status)
                outcome.failed += 1

        logger.info("Initiation summary: %s", outcome)
        return outcome

    def _initiate(self, task: Task | None) -> tuple[Task | None, bool]:
        """Returns the task as it stands afterwards and whether initiation hit an error."""
        if task is None or not task.id:
            logger.warning("Attempted to initiate execution for a task without id.")
            return task, False

        task_id = task.id
        if not self._gate.met(task):
            logger.info("Cannot initiate task %s yet: dependencies not met.", task_id)
            return task, False

        try:
            if not task.has_plan:
                logger.info("No execution plan for task %s. Generating now...", task_id)
                self.generate_plan(task_id)
            return self._lifecycle.start(task_id), False

        except DependenciesNotMetError:
            logger.info("Task %s lost its dependencies before start; retrying next run.", task_id)
            return self._fresh_or(task), False

        except InvalidTaskStateError as e:
            # Someone else moved the task (completed, cancelled, started); not our failure.
            logger.info("Skipping initiation of task %s: %s", task_id, e)
            return self._fresh_or(task), False

        except Exception as e:
            logger.exception("Failed to initiate execution for task %s", task_id)
            self._mark_failed(task_id, f"Execution initiation failed: {e}")
            return self._fresh_or(task), True

    def _mark_failed(self, task_id: str, reason: str) -> None:
        try:
            self._lifecycle.fail(task_id, reason)
            logger.warning("Marked task %s as FAILED due to initiation error.", task_id)
        except Exception:
            logger.exception("Failed to mark task %s as FAILED after initiation error", task_id)

    def _fresh_or(self, task: Task) -> Task:
        try:
            fresh = self._store.get_task(task.id)
        except Exception:
            logger.exception("Could not re-read task %s", task.id)
            return task
        return fresh if fresh is not None else task

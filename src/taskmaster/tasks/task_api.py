# src/taskmaster/tasks/task_api.py

from __future__ import annotations

"""
Task service: the single entry point used by the CLI and the orchestrator.

Creation is all-or-nothing from the caller's view:
validate input -> check dependencies exist -> cycle check -> insert PENDING
-> oracle analysis -> SCHEDULED. Any failure after the insert deletes the
row again before the error propagates, so no PENDING leftovers are visible.
"""

import logging
import time
from collections.abc import Callable, Iterable

from ..core.ports import TaskOracle, TaskRepo
from ..errors import OracleError, TaskNotFoundError
from .gate import DependencyGate
from .graph import DependencyGraphValidator
from .initiator import ExecutionInitiator
from .lifecycle import TaskLifecycle, new_task
from .reconciler import ScheduleReconciler
from .sweeper import RetentionSweeper
from .task_models import RunOutcome, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        store: TaskRepo,
        oracle: TaskOracle,
        *,
        clock: Callable[[], float] = time.time,
        title_max_chars: int = 100,
        description_max_chars: int = 1000,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self._clock = clock
        self._title_max = int(title_max_chars)
        self._description_max = int(description_max_chars)

        self.gate = DependencyGate(store)
        self.graph = DependencyGraphValidator(store)
        self.lifecycle = TaskLifecycle(store, self.gate, clock=clock)
        self.reconciler = ScheduleReconciler(store, self.gate, oracle, self.lifecycle, clock=clock)
        self.initiator = ExecutionInitiator(store, self.gate, oracle, self.lifecycle, clock=clock)
        self.sweeper = RetentionSweeper(store, clock=clock)

    # ---- creation ----

    def _validate_input(self, title: str, description: str) -> tuple[str, str]:
        title = (title or "").strip()
        description = (description or "").strip()
        if not title:
            raise ValueError("Title must not be blank")
        if not description:
            raise ValueError("Description must not be blank")
        if len(title) > self._title_max:
            raise ValueError(f"Title must be at most {self._title_max} characters")
        if len(description) > self._description_max:
            raise ValueError(f"Description must be at most {self._description_max} characters")
        return title, description

    def create_task(
        self,
        title: str,
        description: str,
        depends_on: Iterable[str] = (),
        *,
        task_id: str | None = None,
    ) -> Task:
        """
        Create, enrich and return a SCHEDULED task.

        Raises ValueError (bad input), TaskNotFoundError (unknown dependency),
        CycleDetectedError, OracleError or PersistenceError. Nothing is left
        in the store when any of them is raised.
        """
        title, description = self._validate_input(title, description)
        deps = frozenset(d.strip() for d in depends_on if d and d.strip())

        if task_id is not None and self.store.exists(task_id):
            raise ValueError(f"Task id already exists: {task_id}")

        found = {t.id for t in self.store.find_all_by_id(deps)}
        missing = sorted(deps - found)
        if missing:
            raise TaskNotFoundError(missing[0], what="Dependency task")

        task = new_task(title, description, deps, now=self._clock(), task_id=task_id)
        self.graph.validate(task.id, deps)

        self.store.create_task(task)
        logger.info("Task %s created (PENDING): %r deps=%s", task.id, title, sorted(deps))

        try:
            analysis = self.oracle.analyze(title, description)
            if analysis.priority is None:
                raise OracleError(f"analysis for task {task.id} has no usable priority")
            created = self.lifecycle.mark_enriched(task.id, analysis)
        except Exception:
            logger.warning("Enrichment failed for task %s; removing it.", task.id)
            self._discard(task.id)
            raise

        logger.info(
            "Task %s enriched: priority=%s duration=%s",
            created.id,
            created.priority,
            created.estimated_duration_minutes,
        )
        return created

    def _discard(self, task_id: str) -> None:
        try:
            self.store.delete_task(task_id)
        except Exception:
            logger.exception("Could not remove task %s after failed creation", task_id)

    # ---- queries ----

    def get_task(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        if status is None:
            return self.store.list_tasks()
        return self.store.find_by_status(status)

    def find_due_tasks(self, now_ts: float | None = None) -> list[Task]:
        return self.store.find_due(self._clock() if now_ts is None else now_ts)

    def dependents(self, task_id: str) -> list[str]:
        return self.store.find_dependents(task_id)

    def dependencies_met(self, task_id: str) -> bool:
        return self.gate.met(self.get_task(task_id))

    # ---- single-task transitions ----

    def complete_task(self, task_id: str) -> Task:
        return self.lifecycle.complete(task_id)

    def fail_task(self, task_id: str, reason: str | None = None) -> Task:
        return self.lifecycle.fail(task_id, reason)

    def cancel_task(self, task_id: str, reason: str | None = None) -> Task:
        return self.lifecycle.cancel(task_id, reason)

    def generate_plan(self, task_id: str) -> Task:
        return self.initiator.generate_plan(task_id)

    def delete_task(self, task_id: str) -> None:
        if not self.store.exists(task_id):
            raise TaskNotFoundError(task_id)
        dependents = self.store.find_dependents(task_id)
        if dependents:
            # Their gate stays closed for good; they only leave via fail/cancel.
            logger.warning(
                "Deleting task %s leaves dependents without a prerequisite: %s", task_id, dependents
            )
        if not self.store.delete_task(task_id):
            raise TaskNotFoundError(task_id)
        logger.info("Task %s deleted.", task_id)

    # ---- batch runs ----

    def reconcile(self, reference_ts: float | None = None) -> RunOutcome:
        return self.reconciler.reconcile(reference_ts)

    def initiate(self, task: Task) -> Task | None:
        return self.initiator.initiate(task)

    def initiate_due(self, now_ts: float | None = None) -> RunOutcome:
        return self.initiator.initiate_due(now_ts)

    def sweep(self, retention_seconds: float) -> int:
        return self.sweeper.sweep(retention_seconds)

# src/taskmaster/tasks/gate.py

from __future__ import annotations

import logging

from ..core.ports import TaskRepo
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


class DependencyGate:
    """
    Decides whether every prerequisite of a task is COMPLETED.

    Fail-closed: a dependency id that cannot be resolved counts as unmet.
    """

    def __init__(self, store: TaskRepo) -> None:
        self._store = store

    def met(self, task: Task) -> bool:
        if not task.has_dependencies:
            return True

        dep_ids = task.depends_on
        found = self._store.find_all_by_id(dep_ids)

        if len(found) != len(dep_ids):
            missing = sorted(set(dep_ids) - {t.id for t in found})
            logger.warning(
                "Dependencies missing for task %s: %s. Treating as unmet.", task.id, missing
            )
            return False

        for dep in found:
            if dep.status != TaskStatus.COMPLETED:
                logger.debug(
                    "Dependency not met for task %s: %s is %s", task.id, dep.id, dep.status.value
                )
                return False

        return True

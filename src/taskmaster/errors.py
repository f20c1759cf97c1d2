# src/taskmaster/errors.py

"""
Error taxonomy.

Single-task operations raise these to the caller. Batch operations
(reconciler, initiator, sweeper) catch them per item and only count them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class TaskmasterError(Exception):
    """Base class for all domain errors."""


class TaskNotFoundError(TaskmasterError):
    def __init__(self, task_id: str, *, what: str = "Task") -> None:
        super().__init__(f"{what} not found with id: {task_id}")
        self.task_id = task_id


class CycleDetectedError(TaskmasterError):
    """Adding the proposed dependency edges would close a cycle."""

    def __init__(self, task_id: str, path: Sequence[str] = ()) -> None:
        self.task_id = task_id
        self.path = list(path)
        chain = " -> ".join([task_id, *self.path]) if self.path else task_id
        super().__init__(f"Circular dependency detected for task {task_id}: {chain}")


class InvalidTaskStateError(TaskmasterError):
    def __init__(self, task_id: str, current: Any, requested: Any, detail: str = "") -> None:
        self.task_id = task_id
        self.current = current
        self.requested = requested
        msg = f"Task {task_id} cannot move from {_s(current)} to {_s(requested)}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class DependenciesNotMetError(InvalidTaskStateError):
    def __init__(self, task_id: str, current: Any, requested: Any) -> None:
        super().__init__(task_id, current, requested, "dependencies are not completed")


class OracleError(TaskmasterError):
    """
    The content-generation oracle failed, timed out or returned unusable data.

    retryable=True marks transient failures (timeouts, rate limits, network)
    that only cost the current run.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class PersistenceError(TaskmasterError):
    """Task store read or write failed."""


def _s(v: Any) -> str:
    return str(getattr(v, "name", v))

# src/taskmaster/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    PENDING -> SCHEDULED -> IN_PROGRESS -> COMPLETED | FAILED | CANCELLED
    """

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Accept 'in_progress', 'IN_PROGRESS', 'in-progress'."""
        s = (raw or "").strip().lower().replace("-", "_")
        return cls(s)


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.FAILED}
)


class TaskPriority(StrEnum):
    """Advisory priority: LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TaskPriority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, TaskPriority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, TaskPriority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, TaskPriority):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


@dataclass(frozen=True, slots=True)
class TaskNote:
    """One append-only diagnostic entry."""

    at: float
    text: str


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    status: TaskStatus
    created_at: float

    priority: TaskPriority | None = None
    scheduled_at: float | None = None
    started_at: float | None = None
    completed_at: float | None = None

    estimated_duration_minutes: int | None = None
    suggested_subtasks: list[str] = field(default_factory=list)
    execution_steps: list[str] = field(default_factory=list)

    depends_on: frozenset[str] = frozenset()
    notes: tuple[TaskNote, ...] = ()

    @property
    def has_dependencies(self) -> bool:
        return bool(self.depends_on)

    @property
    def has_plan(self) -> bool:
        return bool(self.execution_steps)


@dataclass(slots=True)
class RunOutcome:
    """Aggregate counts for one batch run (reconciler / initiator)."""

    candidates: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def is_empty(self) -> bool:
        return self.candidates == 0 and self.succeeded == 0 and self.skipped == 0 and self.failed == 0

    def __str__(self) -> str:
        return (
            f"candidates={self.candidates} succeeded={self.succeeded} "
            f"skipped={self.skipped} failed={self.failed}"
        )

# src/taskmaster/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the store and the LLM provider swappable and makes testing easier.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from ..tasks.task_models import Task, TaskPriority, TaskStatus

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


# ---- oracle results ----
# Every field is optional: the oracle's output is a suggestion and the
# caller decides what is usable.


@dataclass(frozen=True, slots=True)
class TaskAnalysis:
    priority: TaskPriority | None
    estimated_duration_minutes: int | None
    suggested_subtasks: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    steps: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScheduleRequestItem:
    id: str
    title: str
    priority: TaskPriority | None
    duration_minutes: int | None
    depends_on: frozenset[str]


@dataclass(frozen=True, slots=True)
class ScheduleSuggestion:
    task_id: str | None
    start_at: float | None


class TaskOracle(Protocol):
    """
    External content-generation service.

    Implementations raise OracleError when the call fails, times out or the
    response cannot be parsed at all.
    """

    def analyze(self, title: str, description: str) -> TaskAnalysis: ...

    def plan(
            self,
            title: str,
            description: str,
            priority: TaskPriority | None,
            subtasks: Sequence[str],
    ) -> ExecutionPlan: ...

    def schedule(
            self,
            reference_ts: float,
            items: Sequence[ScheduleRequestItem],
    ) -> list[ScheduleSuggestion]: ...


class TaskRepo(Protocol):
    def count_tasks(self) -> int: ...
    def create_task(self, task: Task) -> Task: ...
    def get_task(self, task_id: str) -> Task | None: ...
    def exists(self, task_id: str) -> bool: ...
    def find_all_by_id(self, task_ids: Iterable[str]) -> list[Task]: ...
    def list_tasks(self) -> list[Task]: ...
    def find_by_status(self, status: TaskStatus) -> list[Task]: ...
    def find_by_status_in(self, statuses: Iterable[TaskStatus]) -> list[Task]: ...
    def find_unscheduled(self, statuses: Iterable[TaskStatus]) -> list[Task]: ...
    def find_due(self, now_ts: float, status: TaskStatus = TaskStatus.SCHEDULED) -> list[Task]: ...
    def find_completed_before(self, statuses: Iterable[TaskStatus], cutoff_ts: float) -> list[Task]: ...
    def find_dependents(self, task_id: str) -> list[str]: ...
    def update_task(
            self,
            task: Task,
            *,
            expected_status: TaskStatus | None = None,
            expect_unscheduled: bool = False,
    ) -> bool: ...
    def delete_task(self, task_id: str) -> bool: ...
    def delete_all(self, task_ids: Iterable[str]) -> int: ...

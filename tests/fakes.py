# tests/fakes.py

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from taskmaster.core.ports import (
    ChatMessage,
    ExecutionPlan,
    ScheduleRequestItem,
    ScheduleSuggestion,
    TaskAnalysis,
)
from taskmaster.errors import OracleError
from taskmaster.tasks.task_models import TaskPriority


class FakeLLMClient:
    """
    Deterministic LLM client for unit tests.

    - Captures calls for assertions
    - Yields a predefined text as a single chunk, or raises `error`
    """

    def __init__(self, next_text: str = "{}", error: Exception | None = None) -> None:
        self.next_text = next_text
        self.error = error
        self.calls: list[tuple[list[ChatMessage], str]] = []

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        self.calls.append((messages, system_prompt))
        if self.error is not None:
            raise self.error
        yield self.next_text


class FakeClock:
    """Controllable time source (epoch seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


@dataclass(slots=True)
class FakeOracle:
    """
    Scriptable TaskOracle.

    Defaults: MEDIUM/30min analysis, a two-step plan, and every batch item
    scheduled at the reference time.
    """

    analysis: TaskAnalysis = field(
        default_factory=lambda: TaskAnalysis(
            priority=TaskPriority.MEDIUM,
            estimated_duration_minutes=30,
            suggested_subtasks=["first", "second"],
        )
    )
    plan_steps: list[str] = field(default_factory=lambda: ["step one", "step two"])
    schedule_fn: Callable[[float, Sequence[ScheduleRequestItem]], list[ScheduleSuggestion]] | None = None
    on_analyze: Callable[[], object] | None = None

    analyze_error: Exception | None = None
    plan_error: Exception | None = None
    schedule_error: Exception | None = None

    analyze_calls: int = 0
    plan_calls: int = 0
    schedule_calls: list[list[ScheduleRequestItem]] = field(default_factory=list)

    def analyze(self, title: str, description: str) -> TaskAnalysis:
        self.analyze_calls += 1
        if self.on_analyze is not None:
            self.on_analyze()
        if self.analyze_error is not None:
            raise self.analyze_error
        return self.analysis

    def plan(self, title, description, priority, subtasks) -> ExecutionPlan:
        self.plan_calls += 1
        if self.plan_error is not None:
            raise self.plan_error
        return ExecutionPlan(steps=list(self.plan_steps))

    def schedule(self, reference_ts: float, items: Sequence[ScheduleRequestItem]) -> list[ScheduleSuggestion]:
        self.schedule_calls.append(list(items))
        if self.schedule_error is not None:
            raise self.schedule_error
        if self.schedule_fn is not None:
            return self.schedule_fn(reference_ts, items)
        return [ScheduleSuggestion(task_id=it.id, start_at=reference_ts) for it in items]


def oracle_down() -> OracleError:
    return OracleError("oracle unavailable", retryable=True)

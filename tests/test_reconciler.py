# tests/test_reconciler.py

from __future__ import annotations

from dataclasses import replace

from taskmaster.core.ports import ScheduleSuggestion
from taskmaster.tasks.lifecycle import new_task
from taskmaster.tasks.task_models import TaskPriority, TaskStatus

from .fakes import oracle_down


def test_reconcile_assigns_start_times(service, oracle, clock) -> None:
    a = service.create_task("a", "a")
    b = service.create_task("b", "b")

    def plan(ref, items):
        return [ScheduleSuggestion(task_id=it.id, start_at=ref + 60 * i) for i, it in enumerate(items)]

    oracle.schedule_fn = plan
    outcome = service.reconcile()

    assert outcome.candidates == 2
    assert outcome.succeeded == 2
    assert outcome.failed == outcome.skipped == 0
    assert len(oracle.schedule_calls) == 1
    starts = sorted(service.get_task(t.id).scheduled_at for t in (a, b))
    assert starts == [clock(), clock() + 60]
    assert all(service.get_task(t.id).status == TaskStatus.SCHEDULED for t in (a, b))


def test_reconcile_without_candidates_skips_oracle(service, oracle, make_scheduled) -> None:
    make_scheduled("already has a time")

    outcome = service.reconcile()

    assert outcome.is_empty
    assert oracle.schedule_calls == []


def test_tasks_with_unmet_dependencies_wait(service, oracle, make_scheduled) -> None:
    dep = make_scheduled("dep")
    child = service.create_task("child", "c", [dep.id])
    free = service.create_task("free", "f")

    outcome = service.reconcile()

    assert [it.id for it in oracle.schedule_calls[0]] == [free.id]
    assert outcome.succeeded == 1
    assert service.get_task(child.id).scheduled_at is None


def test_only_blocked_candidates_means_no_oracle_call(service, oracle, make_scheduled) -> None:
    dep = make_scheduled("dep")
    service.create_task("child", "c", [dep.id])

    assert service.reconcile().is_empty
    assert oracle.schedule_calls == []


def test_oracle_failure_changes_nothing(service, oracle) -> None:
    a = service.create_task("a", "a")
    oracle.schedule_error = oracle_down()

    outcome = service.reconcile()

    assert outcome.failed == 1
    assert outcome.succeeded == 0
    assert service.get_task(a.id).scheduled_at is None
    assert service.get_task(a.id).status == TaskStatus.SCHEDULED


def test_bad_entries_are_discarded_individually(service, oracle, clock) -> None:
    a = service.create_task("a", "a")
    b = service.create_task("b", "b")

    oracle.schedule_fn = lambda ref, items: [
        ScheduleSuggestion(task_id="not-in-batch", start_at=ref),
        ScheduleSuggestion(task_id=a.id, start_at=None),
        ScheduleSuggestion(task_id=None, start_at=ref),
        ScheduleSuggestion(task_id=b.id, start_at=ref + 5),
        ScheduleSuggestion(task_id=b.id, start_at=ref + 10),
    ]

    outcome = service.reconcile()

    assert outcome.succeeded == 1
    assert outcome.failed == 3
    assert outcome.skipped == 1
    assert service.get_task(a.id).scheduled_at is None
    assert service.get_task(b.id).scheduled_at == clock() + 5


def test_task_changed_during_oracle_call_is_skipped(service, oracle, clock) -> None:
    a = service.create_task("a", "a")

    def cancel_then_suggest(ref, items):
        service.cancel_task(a.id, "user changed mind")
        return [ScheduleSuggestion(task_id=a.id, start_at=ref)]

    oracle.schedule_fn = cancel_then_suggest
    outcome = service.reconcile()

    assert outcome.skipped == 1
    assert outcome.succeeded == 0
    got = service.get_task(a.id)
    assert got.status == TaskStatus.CANCELLED
    assert got.scheduled_at is None


def test_analysed_pending_task_gets_scheduled(service, store, oracle, clock) -> None:
    analysed = replace(
        new_task("p", "pending but analysed", now=clock(), task_id="p"),
        priority=TaskPriority.HIGH,
        estimated_duration_minutes=20,
    )
    store.create_task(analysed)
    store.create_task(new_task("q", "analysis not back yet", now=clock(), task_id="q"))

    outcome = service.reconcile()

    assert outcome.candidates == 1
    assert outcome.succeeded == 1
    sent = oracle.schedule_calls[0]
    assert [it.id for it in sent] == ["p"]
    assert sent[0].priority == TaskPriority.HIGH
    assert sent[0].duration_minutes == 20

    got = store.get_task("p")
    assert got.status == TaskStatus.SCHEDULED
    assert got.scheduled_at == clock()

    waiting = store.get_task("q")
    assert waiting.status == TaskStatus.PENDING
    assert waiting.scheduled_at is None


def test_reconcile_during_create_leaves_new_task_alone(service, oracle) -> None:
    runs = []
    oracle.on_analyze = lambda: runs.append(service.reconcile())

    task = service.create_task("a", "created while the scheduler runs")

    assert runs[0].is_empty
    assert oracle.schedule_calls == []
    got = service.get_task(task.id)
    assert got.status == TaskStatus.SCHEDULED
    assert got.priority == TaskPriority.MEDIUM
    assert got.scheduled_at is None

    oracle.on_analyze = None
    assert service.reconcile().succeeded == 1
    assert service.get_task(task.id).scheduled_at is not None

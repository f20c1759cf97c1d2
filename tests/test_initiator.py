# tests/test_initiator.py

from __future__ import annotations

from dataclasses import replace

import pytest

from taskmaster.errors import OracleError, PersistenceError
from taskmaster.tasks.task_api import TaskService
from taskmaster.tasks.task_models import TaskStatus
from taskmaster.tasks.task_store import TaskStore

from .fakes import oracle_down


def test_due_task_gets_plan_and_starts(service, oracle, make_scheduled, clock) -> None:
    task = make_scheduled("t")

    outcome = service.initiate_due()

    got = service.get_task(task.id)
    assert got.status == TaskStatus.IN_PROGRESS
    assert got.execution_steps == ["step one", "step two"]
    assert got.started_at == clock()
    assert oracle.plan_calls == 1
    assert (outcome.candidates, outcome.succeeded, outcome.skipped, outcome.failed) == (1, 1, 0, 0)


def test_existing_plan_is_reused(service, oracle, make_scheduled) -> None:
    task = make_scheduled("t")
    service.lifecycle.set_plan(task.id, ["mine"])

    service.initiate_due()

    assert service.get_task(task.id).execution_steps == ["mine"]
    assert oracle.plan_calls == 0


def test_future_task_is_not_due(service, make_scheduled, clock) -> None:
    task = make_scheduled("t", start_at=clock() + 600)

    assert service.initiate_due().is_empty
    assert service.get_task(task.id).status == TaskStatus.SCHEDULED

    clock.advance(600)
    assert service.initiate_due().succeeded == 1


def test_unmet_dependency_stays_scheduled(service, oracle, make_scheduled, clock) -> None:
    dep = make_scheduled("dep", start_at=clock() + 3600)
    child = service.create_task("child", "c", [dep.id])
    # Force a start time even though the dependency is open.
    service.store.update_task(replace(service.get_task(child.id), scheduled_at=clock() - 1))

    outcome = service.initiate_due()

    assert outcome.skipped == 1
    assert service.get_task(child.id).status == TaskStatus.SCHEDULED
    assert oracle.plan_calls == 0


def test_empty_plan_fails_task_with_note(service, oracle, make_scheduled) -> None:
    task = make_scheduled("t")
    oracle.plan_steps = []

    outcome = service.initiate_due()

    got = service.get_task(task.id)
    assert got.status == TaskStatus.FAILED
    assert got.completed_at is not None
    assert got.notes and got.notes[-1].text.startswith("Execution initiation failed:")
    assert outcome.failed == 1


def test_one_failure_does_not_stop_the_batch(service, oracle, make_scheduled, clock) -> None:
    bad = make_scheduled("bad", start_at=clock() - 10)
    good = make_scheduled("good", start_at=clock() - 5)
    service.lifecycle.set_plan(good.id, ["ready"])
    oracle.plan_error = oracle_down()

    outcome = service.initiate_due()

    assert service.get_task(bad.id).status == TaskStatus.FAILED
    assert service.get_task(good.id).status == TaskStatus.IN_PROGRESS
    assert (outcome.candidates, outcome.succeeded, outcome.failed) == (2, 1, 1)


def test_initiate_without_id_is_a_no_op(service) -> None:
    assert service.initiate(None) is None


def test_generate_plan_skips_finished_tasks(service, oracle, make_completed) -> None:
    done = make_completed("done")
    calls = oracle.plan_calls

    assert service.generate_plan(done.id).status == TaskStatus.COMPLETED
    assert oracle.plan_calls == calls


def test_generate_plan_raises_on_empty_plan(service, oracle) -> None:
    task = service.create_task("t", "d")
    oracle.plan_steps = []
    with pytest.raises(OracleError):
        service.generate_plan(task.id)
    assert service.get_task(task.id).execution_steps == []


class FailWriteStore(TaskStore):
    """Refuses to persist the FAILED status for one task id."""

    broken_id: str | None = None

    def update_task(self, task, *, expected_status=None, expect_unscheduled=False) -> bool:
        if task.id == self.broken_id and task.status == TaskStatus.FAILED:
            raise PersistenceError("disk is full")
        return super().update_task(
            task, expected_status=expected_status, expect_unscheduled=expect_unscheduled
        )


def test_failed_status_write_is_best_effort(settings, oracle, clock, caplog) -> None:
    store = FailWriteStore(settings.tasks_db_path)
    service = TaskService(store, oracle, clock=clock)
    bad = service.create_task("bad", "no plan, oracle down")
    good = service.create_task("good", "has a plan")
    service.lifecycle.schedule(bad.id, clock() - 10)
    service.lifecycle.schedule(good.id, clock() - 5)
    service.lifecycle.set_plan(good.id, ["ready"])
    store.broken_id = bad.id
    oracle.plan_error = oracle_down()

    outcome = service.initiate_due()

    assert (outcome.candidates, outcome.succeeded, outcome.failed) == (2, 1, 1)
    left = service.get_task(bad.id)
    assert left.status == TaskStatus.SCHEDULED
    assert left.notes == ()
    assert service.get_task(good.id).status == TaskStatus.IN_PROGRESS
    assert "Failed to mark task" in caplog.text

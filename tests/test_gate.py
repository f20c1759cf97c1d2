# tests/test_gate.py

from __future__ import annotations

from taskmaster.tasks.gate import DependencyGate
from taskmaster.tasks.lifecycle import new_task


def test_no_dependencies_always_met(store) -> None:
    assert DependencyGate(store).met(new_task("t", "d", now=1.0))


def test_all_completed_is_met(store, make_completed) -> None:
    a = make_completed("a")
    b = make_completed("b")
    assert DependencyGate(store).met(new_task("t", "d", [a.id, b.id], now=1.0))


def test_one_unfinished_dependency_blocks(store, service, make_completed) -> None:
    a = make_completed("a")
    b = service.create_task("b", "still scheduled")
    assert not DependencyGate(store).met(new_task("t", "d", [a.id, b.id], now=1.0))


def test_missing_dependency_fails_closed(store, make_completed, caplog) -> None:
    a = make_completed("a")
    task = new_task("t", "d", [a.id, "ghost"], now=1.0)
    assert not DependencyGate(store).met(task)
    assert "ghost" in caplog.text


def test_gate_opens_when_prerequisite_completes(service) -> None:
    t1 = service.create_task("t1", "first")
    t2 = service.create_task("t2", "second", [t1.id])
    assert not service.dependencies_met(t2.id)

    service.lifecycle.schedule(t1.id, 1.0)
    service.lifecycle.set_plan(t1.id, ["go"])
    service.lifecycle.start(t1.id)
    service.complete_task(t1.id)

    assert service.dependencies_met(t2.id)

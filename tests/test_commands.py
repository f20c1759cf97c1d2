# tests/test_commands.py

from __future__ import annotations

from taskmaster.cli.commands import CommandRegistry, registry
from taskmaster.tasks.task_models import TaskStatus


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b")

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/b y", emit=lambda _: None) == "h3"
    assert called["h2"] == 1
    assert called["h3"] == 1


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")


def test_create_show_and_list(state) -> None:
    notes: list[str] = []
    out = registry.handle(state, "/create Write report | Quarterly numbers", emit=notes.append) or ""

    assert out.startswith("Task created.")
    assert notes
    (task,) = state.service.list_tasks()
    assert task.title == "Write report"
    assert task.status == TaskStatus.SCHEDULED

    shown = registry.handle(state, f"/show {task.id}") or ""
    assert "Quarterly numbers" in shown
    assert "Dependencies met: yes" in shown

    assert task.id in (registry.handle(state, "/list scheduled") or "")
    assert registry.handle(state, "/list cancelled") == "No tasks."


def test_create_with_dependencies(state) -> None:
    dep = state.service.create_task("dep", "d")
    registry.handle(state, f"/create child | needs dep | {dep.id}")

    child = next(t for t in state.service.list_tasks() if t.title == "child")
    assert child.depends_on == frozenset({dep.id})


def test_domain_errors_become_replies(state) -> None:
    assert (registry.handle(state, "/show missing") or "").startswith("Error:")
    assert (registry.handle(state, "/create | no title") or "").startswith("Error:")
    assert (registry.handle(state, "/create a | b | ghost") or "").startswith("Error:")
    assert "Usage" in (registry.handle(state, "/create only-title") or "")
    assert "Usage" in (registry.handle(state, "/complete") or "")


def test_cancel_and_fail_commands(state) -> None:
    a = state.service.create_task("a", "a")
    b = state.service.create_task("b", "b")

    assert "cancelled" in (registry.handle(state, f"/cancel {a.id} not needed") or "")
    assert "failed" in (registry.handle(state, f"/fail {b.id} blocked upstream") or "")

    got = state.service.get_task(b.id)
    assert got.status == TaskStatus.FAILED
    assert got.notes[-1].text == "blocked upstream"
    assert (registry.handle(state, f"/cancel {a.id}") or "").startswith("Error:")


def test_batch_commands(state) -> None:
    state.service.create_task("t", "d")

    assert "succeeded=1" in (registry.handle(state, "/reconcile") or "")
    assert "succeeded=1" in (registry.handle(state, "/initiate") or "")
    assert registry.handle(state, "/sweep 0") == "Deleted 0 old task(s)."
    assert "SCHEDULED=0" in (registry.handle(state, "/status") or "")

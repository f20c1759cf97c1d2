# tests/test_graph.py

from __future__ import annotations

import pytest

from taskmaster.errors import CycleDetectedError
from taskmaster.tasks.graph import DependencyGraphValidator
from taskmaster.tasks.lifecycle import new_task
from taskmaster.tasks.task_store import TaskStore


class CountingStore:
    """Wraps a TaskStore and counts get_task calls per id."""

    def __init__(self, inner: TaskStore) -> None:
        self.inner = inner
        self.gets: dict[str, int] = {}

    def get_task(self, task_id: str):
        self.gets[task_id] = self.gets.get(task_id, 0) + 1
        return self.inner.get_task(task_id)


def _put(store: TaskStore, task_id: str, *deps: str) -> None:
    store.create_task(new_task(task_id, task_id, deps, now=1.0, task_id=task_id))


def test_no_dependencies_is_trivially_fine(store: TaskStore) -> None:
    DependencyGraphValidator(store).validate("new", [])


def test_chain_and_diamond_are_acyclic(store: TaskStore) -> None:
    _put(store, "a")
    _put(store, "b", "a")
    _put(store, "c", "a")
    _put(store, "d", "b", "c")

    DependencyGraphValidator(store).validate("new", ["d", "b"])


def test_self_dependency_is_a_cycle(store: TaskStore) -> None:
    with pytest.raises(CycleDetectedError) as ei:
        DependencyGraphValidator(store).validate("x", ["x"])
    assert ei.value.task_id == "x"


def test_back_edge_to_candidate_is_a_cycle(store: TaskStore) -> None:
    # b depends on a; now a wants to depend on b.
    _put(store, "a")
    _put(store, "b", "a")

    with pytest.raises(CycleDetectedError) as ei:
        DependencyGraphValidator(store).validate("a", ["b"])
    assert ei.value.path == ["b", "a"]


def test_transitive_cycle_is_found(store: TaskStore) -> None:
    _put(store, "c", "x")
    _put(store, "b", "c")

    with pytest.raises(CycleDetectedError):
        DependencyGraphValidator(store).validate("x", ["b"])


def test_each_node_is_fetched_once(store: TaskStore) -> None:
    _put(store, "a")
    _put(store, "b", "a")
    _put(store, "c", "a", "b")
    _put(store, "d", "a", "b", "c")

    counting = CountingStore(store)
    DependencyGraphValidator(counting).validate("new", ["a", "b", "c", "d"])
    assert counting.gets and max(counting.gets.values()) == 1


def test_deep_chain_does_not_hit_recursion_limit(store: TaskStore) -> None:
    depth = 1500
    _put(store, "n0")
    for i in range(1, depth):
        _put(store, f"n{i}", f"n{i - 1}")

    DependencyGraphValidator(store).validate("new", [f"n{depth - 1}"])
    with pytest.raises(CycleDetectedError):
        DependencyGraphValidator(store).validate("n0", [f"n{depth - 1}"])

# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskmaster.core.state import AppState
from taskmaster.tasks.task_api import TaskService
from taskmaster.tasks.task_models import Task
from taskmaster.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeLLMClient, FakeOracle


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    A SimpleNamespace keeps unit tests isolated from the real environment/.env.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        llm_models=["fake-model"],
        title_max_chars=100,
        description_max_chars=1000,
        retention_seconds=30 * 86400.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    # Real SQLite: store correctness is part of what we test.
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture()
def service(store: TaskStore, oracle: FakeOracle, clock: FakeClock) -> TaskService:
    return TaskService(store, oracle, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, service: TaskService) -> AppState:
    return AppState(
        settings=settings,
        llm=FakeLLMClient(),
        task_store=store,
        service=service,
        offline=True,
    )


@pytest.fixture()
def make_scheduled(service: TaskService, clock: FakeClock) -> Callable[..., Task]:
    """Create a task and give it a start time (defaults to now, i.e. due)."""

    def _make(title: str = "Task", deps: tuple[str, ...] = (), *, start_at: float | None = None) -> Task:
        task = service.create_task(title, f"{title} description", deps)
        return service.lifecycle.schedule(task.id, clock() if start_at is None else start_at)

    return _make


@pytest.fixture()
def make_completed(service: TaskService, make_scheduled) -> Callable[..., Task]:
    """Drive a fresh task all the way to COMPLETED."""

    def _make(title: str = "Done") -> Task:
        task = make_scheduled(title)
        service.lifecycle.set_plan(task.id, ["do it"])
        service.lifecycle.start(task.id)
        return service.complete_task(task.id)

    return _make

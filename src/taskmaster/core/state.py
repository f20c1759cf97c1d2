# src/taskmaster/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_api import TaskService
from ..tasks.task_store import TaskStore
from .ports import LLMClient


@dataclass
class AppState:
    # Settings are kept on the state so commands can read limits/intervals.
    settings: Any

    llm: LLMClient
    task_store: TaskStore
    service: TaskService
    offline: bool = False

    # Serializes console commands against each other; the store handles
    # concurrency with the orchestrator thread.
    lock: threading.Lock = field(default_factory=threading.Lock)

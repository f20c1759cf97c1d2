# src/taskmaster/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (LLM/oracle/store/service).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LLMClient
from ..core.state import AppState
from ..llm.client import OpenAILLMClient, friendly_llm_error_message
from ..llm.offline import OfflineLLMClient
from ..oracle.llm_oracle import LLMTaskOracle
from ..tasks.task_api import TaskService
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    Without a usable LLM configuration the app runs against the offline client.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    llm_client: LLMClient
    offline = False
    try:
        llm_client = OpenAILLMClient(settings)
    except Exception as e:
        logger.warning("%s Running in offline mode.", friendly_llm_error_message(e))
        llm_client = OfflineLLMClient()
        offline = True

    store = TaskStore(settings.tasks_db_path)
    service = TaskService(
        store,
        LLMTaskOracle(llm_client),
        title_max_chars=settings.title_max_chars,
        description_max_chars=settings.description_max_chars,
    )

    return AppState(
        settings=settings,
        llm=llm_client,
        task_store=store,
        service=service,
        offline=offline,
    )

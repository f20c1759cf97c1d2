# src/taskmaster/core/chat.py

"""
Free-form chat with the configured model.

Stateless: every question is sent alone, with a short list of open tasks in
the system prompt so the model can refer to them. Task state is never changed
from here; connectors decide how to display the streamed text.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Final

from ..tasks.task_models import Task
from .ports import ChatMessage
from .state import AppState

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT: Final[str] = """
You are the taskmaster assistant, a helpful AI for a personal task manager.

- Answer the user's question directly and briefly.
- Match the user's language.
- You may refer to the open tasks listed below, but you cannot create, change
  or schedule tasks yourself. Point the user to the slash commands for that
  (/create, /plan, /complete, /cancel, /help).
- If you are unsure, say so.
""".strip()

MAX_CONTEXT_TASKS = 10


def _format_task_line(t: Task) -> str:
    prio = t.priority.value if t.priority is not None else "-"
    return f"- [{t.status.value}] {t.title} (priority {prio})"


def build_system_prompt(state: AppState) -> str:
    try:
        open_tasks = [t for t in state.service.list_tasks() if not t.status.is_terminal]
    except Exception:
        logger.exception("Could not load tasks for the chat prompt; answering without them.")
        open_tasks = []

    if not open_tasks:
        return CHAT_SYSTEM_PROMPT + "\n\nOpen tasks: none."

    lines = [_format_task_line(t) for t in open_tasks[:MAX_CONTEXT_TASKS]]
    if len(open_tasks) > MAX_CONTEXT_TASKS:
        lines.append(f"- ... and {len(open_tasks) - MAX_CONTEXT_TASKS} more")
    return CHAT_SYSTEM_PROMPT + "\n\nOpen tasks:\n" + "\n".join(lines)


def stream_reply(state: AppState, user_text: str) -> Iterable[str]:
    """
    Stream the model's answer to one question.

    LLM errors propagate as RuntimeError from the client; the caller turns
    them into a user-facing message.
    """
    text = (user_text or "").strip()
    if not text:
        return

    messages: list[ChatMessage] = [{"role": "user", "content": text}]
    logger.debug("Chat request (%d chars).", len(text))
    for chunk in state.llm.stream_chat(messages, build_system_prompt(state)):
        if chunk:
            yield chunk


def ask(state: AppState, user_text: str) -> str:
    return "".join(stream_reply(state, user_text)).strip()

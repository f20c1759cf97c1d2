# src/taskmaster/llm/offline.py

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timedelta

from ..core.ports import ChatMessage

_PRIORITY_ORDER = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}


class OfflineLLMClient:
    """
    Offline deterministic LLM client used for demos when no external API is configured.

    Behavior:
    - Analysis prompts -> MEDIUM priority, 30 minutes, no subtasks
    - Planning prompts -> a three-step generic plan
    - Scheduling prompts -> back-to-back slots from the reference time,
      highest priority first
    - Chat prompts -> a short canned answer that echoes the question
    """

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        sp = (system_prompt or "").lower()
        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        if "task analysis module" in sp:
            yield json.dumps(
                {"priority": "MEDIUM", "estimatedDurationMinutes": 30, "suggestedSubtasks": []}
            )
            return

        if "execution planning module" in sp:
            yield json.dumps(
                {"executionSteps": ["Review the task", "Do the work", "Verify the result"]}
            )
            return

        if "task scheduling module" in sp:
            yield json.dumps({"scheduledTasks": self._schedule(user_text)})
            return

        if "taskmaster assistant" in sp:
            yield (
                "Offline mode: no language model is configured, so I cannot answer "
                f"\"{user_text.strip()}\". Task commands still work; see /help."
            )
            return

        yield "{}"

    @staticmethod
    def _schedule(user_text: str) -> list[dict[str, str]]:
        try:
            payload = json.loads(user_text)
            start = datetime.fromisoformat(str(payload["referenceTime"]))
            tasks = list(payload.get("tasks") or [])
        except (ValueError, KeyError, TypeError):
            return []

        tasks.sort(key=lambda t: _PRIORITY_ORDER.get(str(t.get("priority") or "").upper(), 4))
        out: list[dict[str, str]] = []
        cursor = start
        for t in tasks:
            out.append({"taskId": str(t.get("taskId")), "suggestedStartTime": cursor.isoformat()})
            cursor += timedelta(minutes=int(t.get("estimatedDurationMinutes") or 30))
        return out

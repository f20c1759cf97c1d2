# src/taskmaster/oracle/llm_oracle.py

"""
Content-generation oracle on top of a chat LLM.

Three calls: analyze, plan, schedule. The LLM is asked for strict JSON, but
its output is treated as an untrusted suggestion:
- the JSON object is cut out of any surrounding prose,
- key aliases are tolerated,
- every field is coerced independently; a bad field becomes None/empty
  instead of poisoning the whole result.

OracleError is raised only when the call itself fails or nothing parseable
comes back.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..core.ports import (
    ExecutionPlan,
    LLMClient,
    ScheduleRequestItem,
    ScheduleSuggestion,
    TaskAnalysis,
)
from ..errors import OracleError
from ..llm.client import is_transient_error
from ..tasks.task_models import TaskPriority

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = """
You are a task analysis module.

Given a task title and description, determine:
1. priority: one of LOW, MEDIUM, HIGH, CRITICAL. Consider urgency, importance and keywords.
2. estimatedDurationMinutes: the time needed in minutes, as an integer.
3. suggestedSubtasks: key subtasks or steps, as a list of strings. Use [] if none are obvious.

Output format:
Return STRICT JSON only. No extra text. No Markdown.
{"priority": "...", "estimatedDurationMinutes": 0, "suggestedSubtasks": []}
""".strip()

PLAN_SYSTEM_PROMPT = """
You are an execution planning module.

Given a task, produce a concise, step-by-step plan of concrete, actionable steps.
A simple task may need only one or two steps; break complex tasks down logically.

Output format:
Return STRICT JSON only. No extra text. No Markdown.
{"executionSteps": ["...", "..."]}
""".strip()

SCHEDULE_SYSTEM_PROMPT = """
You are a task scheduling module.

Schedule the given tasks efficiently, back-to-back, starting from the reference time.
Consider priorities (CRITICAL > HIGH > MEDIUM > LOW), estimated durations and dependencies.
All listed dependencies are already satisfied.
Only return entries for task ids present in the input.
Times are ISO-8601 local date-times (YYYY-MM-DDTHH:MM:SS).

Output format:
Return STRICT JSON only. No extra text. No Markdown.
{"scheduledTasks": [{"taskId": "...", "suggestedStartTime": "YYYY-MM-DDTHH:MM:SS"}]}
""".strip()

_PRIORITY_ALIASES = {
    "urgent": TaskPriority.CRITICAL,
    "highest": TaskPriority.CRITICAL,
    "normal": TaskPriority.MEDIUM,
    "med": TaskPriority.MEDIUM,
    "lowest": TaskPriority.LOW,
}


def _extract_json(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.strip("`")
        if raw.lower().startswith("json"):
            raw = raw[4:]
        raw = raw.strip()
    if (raw.startswith("{") and raw.endswith("}")) or (raw.startswith("[") and raw.endswith("]")):
        return raw
    first = raw.find("{")
    last = raw.rfind("}")
    if first != -1 and last != -1 and last > first:
        return raw[first : last + 1]
    return raw


def _pick(obj: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
    return None


def _coerce_priority(v: Any) -> TaskPriority | None:
    s = str(v or "").strip().lower()
    if not s:
        return None
    if s in _PRIORITY_ALIASES:
        return _PRIORITY_ALIASES[s]
    try:
        return TaskPriority(s)
    except ValueError:
        return None


def _coerce_minutes(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    try:
        n = int(round(float(v)))
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def _coerce_str_list(v: Any) -> list[str]:
    if not isinstance(v, list):
        return []
    return [str(x).strip() for x in v if x is not None and str(x).strip()]


def _coerce_start(v: Any) -> float | None:
    """ISO-8601 string (naive = local time) or epoch seconds."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    s = str(v).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s).timestamp()
    except ValueError:
        return None


def format_local(ts: float) -> str:
    return datetime.fromtimestamp(ts).replace(microsecond=0).isoformat()


class LLMTaskOracle:
    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    def _ask(self, what: str, system_prompt: str, user_message: str) -> Any:
        raw = ""
        try:
            for piece in self._llm.stream_chat(
                [{"role": "user", "content": user_message}], system_prompt
            ):
                raw += piece
        except Exception as e:
            logger.warning("Oracle %s call failed: %s", what, e)
            raise OracleError(f"{what} call failed: {e}", retryable=is_transient_error(e)) from e

        raw = raw.strip()
        if not raw:
            raise OracleError(f"{what} returned no content", retryable=True)

        logger.debug("Oracle %s raw response: %r", what, raw[:2000])
        try:
            return json.loads(_extract_json(raw))
        except ValueError as e:
            logger.warning("Oracle %s JSON parse failed. Raw=%r", what, raw[:500])
            raise OracleError(f"{what} returned unparseable output") from e

    def analyze(self, title: str, description: str) -> TaskAnalysis:
        data = self._ask(
            "analyze",
            ANALYSIS_SYSTEM_PROMPT,
            f'Task Title: "{title}"\nTask Description: "{description}"',
        )
        if not isinstance(data, dict):
            raise OracleError("analyze returned a non-object")

        analysis = TaskAnalysis(
            priority=_coerce_priority(_pick(data, "priority", "Priority")),
            estimated_duration_minutes=_coerce_minutes(
                _pick(data, "estimatedDurationMinutes", "estimated_duration_minutes", "durationMinutes", "duration")
            ),
            suggested_subtasks=_coerce_str_list(
                _pick(data, "suggestedSubtasks", "suggested_subtasks", "subtasks")
            ),
        )
        logger.info(
            "Oracle analysis: priority=%s duration=%s subtasks=%d",
            analysis.priority,
            analysis.estimated_duration_minutes,
            len(analysis.suggested_subtasks),
        )
        return analysis

    def plan(
        self,
        title: str,
        description: str,
        priority: TaskPriority | None,
        subtasks: Sequence[str],
    ) -> ExecutionPlan:
        user_message = "\n".join(
            [
                f'Task Title: "{title}"',
                f'Task Description: "{description}"',
                f"Task Priority: {priority.name if priority is not None else 'Not specified'}",
                f"Suggested Subtasks (for context): {', '.join(subtasks) if subtasks else 'None suggested'}",
            ]
        )
        data = self._ask("plan", PLAN_SYSTEM_PROMPT, user_message)
        if isinstance(data, list):
            steps = _coerce_str_list(data)
        elif isinstance(data, dict):
            steps = _coerce_str_list(_pick(data, "executionSteps", "execution_steps", "steps"))
        else:
            raise OracleError("plan returned a non-object")
        logger.info("Oracle plan: %d steps", len(steps))
        return ExecutionPlan(steps=steps)

    def schedule(
        self,
        reference_ts: float,
        items: Sequence[ScheduleRequestItem],
    ) -> list[ScheduleSuggestion]:
        payload = {
            "referenceTime": format_local(reference_ts),
            "tasks": [
                {
                    "taskId": it.id,
                    "title": it.title,
                    "priority": it.priority.name if it.priority is not None else None,
                    "estimatedDurationMinutes": it.duration_minutes or 0,
                    "dependsOn": sorted(it.depends_on),
                }
                for it in items
            ],
        }
        data = self._ask(
            "schedule",
            SCHEDULE_SYSTEM_PROMPT,
            json.dumps(payload, ensure_ascii=False, indent=2),
        )

        if isinstance(data, dict):
            entries = _pick(data, "scheduledTasks", "scheduled_tasks", "schedule", "tasks")
        else:
            entries = data
        if entries is None:
            logger.warning("Oracle schedule response has no entries list.")
            return []
        if not isinstance(entries, list):
            raise OracleError("schedule entries are not a list")

        out: list[ScheduleSuggestion] = []
        for e in entries:
            if not isinstance(e, dict):
                out.append(ScheduleSuggestion(task_id=None, start_at=None))
                continue
            tid = _pick(e, "taskId", "task_id", "id")
            tid_s = str(tid).strip() if tid is not None else ""
            out.append(
                ScheduleSuggestion(
                    task_id=tid_s or None,
                    start_at=_coerce_start(
                        _pick(e, "suggestedStartTime", "suggested_start_time", "startTime", "start")
                    ),
                )
            )
        logger.info("Oracle schedule: %d entries", len(out))
        return out

# src/taskmaster/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.chat import ask
from ..core.state import AppState
from ..errors import TaskmasterError
from ..tasks.task_models import Task, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /create, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Domain errors (not found, invalid state, cycle, oracle) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except (TaskmasterError, ValueError) as e:
            logger.info("/%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _short(task: Task) -> str:
    prio = task.priority.name if task.priority is not None else "-"
    return f"{task.id}  [{task.status.name}]  {prio:<8}  {_fmt_ts(task.scheduled_at)}  {task.title}"


def format_task(task: Task) -> str:
    lines = [
        f"Task {task.id}",
        f"  Title: {task.title}",
        f"  Description: {task.description}",
        f"  Status: {task.status.name}",
        f"  Priority: {task.priority.name if task.priority is not None else '-'}",
        f"  Estimated duration: {task.estimated_duration_minutes or '-'} min",
        f"  Created: {_fmt_ts(task.created_at)}",
        f"  Scheduled: {_fmt_ts(task.scheduled_at)}",
        f"  Started: {_fmt_ts(task.started_at)}",
        f"  Completed: {_fmt_ts(task.completed_at)}",
        f"  Depends on: {', '.join(sorted(task.depends_on)) or '-'}",
    ]
    if task.suggested_subtasks:
        lines.append("  Suggested subtasks:")
        lines.extend(f"    - {s}" for s in task.suggested_subtasks)
    if task.execution_steps:
        lines.append("  Execution plan:")
        lines.extend(f"    {i}. {s}" for i, s in enumerate(task.execution_steps, start=1))
    if task.notes:
        lines.append("  Notes:")
        lines.extend(f"    [{_fmt_ts(n.at)}] {n.text}" for n in task.notes)
    return "\n".join(lines)


def _need_id(args: list[str], usage: str) -> str:
    if not args:
        raise ValueError(f"Usage: {usage}")
    return args[0]


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    counts = {s: 0 for s in TaskStatus}
    for t in state.service.list_tasks():
        counts[t.status] += 1
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    mode = "OFFLINE (deterministic stub)" if state.offline else f"LLM ({models})"
    per_status = "  ".join(f"{s.name}={n}" for s, n in counts.items())
    return (
        "Status:\n"
        f"  Oracle: {mode}\n"
        f"  Store: {getattr(state.settings, 'tasks_db_path', '-')}\n"
        f"  Tasks: {per_status}"
    )


def cmd_create(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /create <title> | <description> [| dep1,dep2]
    """
    parts = [p.strip() for p in " ".join(args).split("|")]
    if len(parts) < 2:
        return "Usage: /create <title> | <description> [| dep1,dep2]"

    title, description = parts[0], parts[1]
    deps = [d.strip() for d in parts[2].replace(" ", ",").split(",")] if len(parts) > 2 else []

    if emit:
        with contextlib.suppress(Exception):
            emit("[TASK] Analyzing task (may take a while)...")

    task = state.service.create_task(title, description, [d for d in deps if d])
    return "Task created.\n" + format_task(task)


def cmd_list(state: AppState, args: list[str]) -> str:
    status = TaskStatus.parse(args[0]) if args else None
    tasks = state.service.list_tasks(status)
    if not tasks:
        return "No tasks."
    return "\n".join([f"Tasks ({len(tasks)}):", *(_short(t) for t in tasks)])


def cmd_show(state: AppState, args: list[str]) -> str:
    task = state.service.get_task(_need_id(args, "/show <id>"))
    deps_met = state.service.dependencies_met(task.id)
    dependents = state.service.dependents(task.id)
    return (
        format_task(task)
        + f"\n  Dependencies met: {'yes' if deps_met else 'no'}"
        + f"\n  Dependents: {', '.join(dependents) or '-'}"
    )


def cmd_plan(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task_id = _need_id(args, "/plan <id>")
    if emit:
        with contextlib.suppress(Exception):
            emit("[TASK] Generating execution plan...")
    task = state.service.generate_plan(task_id)
    return format_task(task)


def cmd_complete(state: AppState, args: list[str]) -> str:
    task = state.service.complete_task(_need_id(args, "/complete <id>"))
    return f"Task {task.id} completed."


def cmd_fail(state: AppState, args: list[str]) -> str:
    task_id = _need_id(args, "/fail <id> [reason]")
    reason = " ".join(args[1:]).strip() or None
    task = state.service.fail_task(task_id, reason)
    return f"Task {task.id} marked as failed."


def cmd_cancel(state: AppState, args: list[str]) -> str:
    task_id = _need_id(args, "/cancel <id> [reason]")
    reason = " ".join(args[1:]).strip() or None
    task = state.service.cancel_task(task_id, reason)
    return f"Task {task.id} cancelled."


def cmd_delete(state: AppState, args: list[str]) -> str:
    task_id = _need_id(args, "/delete <id>")
    dependents = state.service.dependents(task_id)
    state.service.delete_task(task_id)
    if dependents:
        return f"Task {task_id} deleted. Dependents now blocked: {', '.join(dependents)}"
    return f"Task {task_id} deleted."


def cmd_reconcile(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[TASK] Requesting schedule...")
    outcome = state.service.reconcile()
    if outcome.is_empty:
        return "Nothing to schedule."
    return f"Scheduling run: {outcome}"


def cmd_initiate(state: AppState, args: list[str]) -> str:
    outcome = state.service.initiate_due()
    if outcome.is_empty:
        return "No tasks are due."
    return f"Execution run: {outcome}"


def cmd_sweep(state: AppState, args: list[str]) -> str:
    """
    /sweep          -> use configured retention
    /sweep <days>   -> override retention for this run
    """
    if args:
        try:
            days = float(args[0])
        except ValueError:
            return "Usage: /sweep [days]"
        retention = max(0.0, days) * 86400.0
    else:
        retention = float(getattr(state.settings, "retention_seconds", 30 * 86400.0))
    deleted = state.service.sweep(retention)
    return f"Deleted {deleted} old task(s)."


def cmd_ask(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /ask <question> -> free-form answer from the model (does not change tasks).
    """
    question = " ".join(args).strip()
    if not question:
        return "Usage: /ask <question>"
    if emit is not None:
        emit("[LLM] Thinking...")
    answer = ask(state, question)
    return answer or "[LLM] Empty reply."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show oracle mode and task counts.")
registry.register(
    "create", cmd_create, help_text="Create a task: /create <title> | <description> [| dep1,dep2]."
)
registry.register("list", cmd_list, help_text="List tasks: /list [status].", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register("plan", cmd_plan, help_text="Generate an execution plan: /plan <id>.")
registry.register("complete", cmd_complete, help_text="Mark an in-progress task done: /complete <id>.")
registry.register("fail", cmd_fail, help_text="Mark a task failed: /fail <id> [reason].")
registry.register("cancel", cmd_cancel, help_text="Cancel a task: /cancel <id> [reason].")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("reconcile", cmd_reconcile, help_text="Run the scheduling pass now.")
registry.register("initiate", cmd_initiate, help_text="Start all due tasks now.")
registry.register("sweep", cmd_sweep, help_text="Delete old finished tasks: /sweep [days].")
registry.register("ask", cmd_ask, help_text="Ask the model a free-form question: /ask <question>.")

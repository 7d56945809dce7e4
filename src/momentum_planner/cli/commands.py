# src/momentum_planner/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.state import AppState
from ..errors import PlannerError
from ..tasks.task_models import Task, format_clock

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

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
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_task_line(t: Task) -> str:
    when = f"{t.start_time.strftime('%Y-%m-%d %H:%M')}-{format_clock(t.end_time)}"
    flag = " (reminded)" if t.reminded else ""
    return f"  [{t.id}] {when} {t.title} - {t.status.value}{flag}"


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_tasks(state: AppState, args: list[str]) -> str:
    try:
        tasks = state.task_store.list_tasks()
    except PlannerError as e:
        return f"Failed to list tasks: {e}"
    if not tasks:
        return "No tasks scheduled."
    return "\n".join(["Tasks:", *(_format_task_line(t) for t in tasks)])


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    try:
        total = state.task_store.count_tasks()
    except PlannerError:
        total = -1
    mode = "OFFLINE" if state.offline else "ONLINE"
    models = ", ".join(getattr(s, "llm_models", []) or []) or "-"
    return (
        f"LLM: {mode} ({models})\n"
        f"Tasks: {total} in {getattr(s, 'tasks_db_path', '?')}\n"
        f"History: {len(state.agent.history) - 1} message(s), window {state.agent.max_history}"
    )


def cmd_clear(state: AppState, args: list[str]) -> str:
    state.agent.reset()
    return "Conversation cleared."


def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <task id>"
    # Times are unchanged, so an overlap that was already accepted must not block this.
    return state.gateway.call(
        "update_task", {"id": args[0], "status": "completed", "allow_overlap": True}
    )


def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit is not None:
        emit("Exporting tasks...")
    payload = {"filename": args[0]} if args else {}
    return state.gateway.call("export_tasks", payload)


registry.register("help", cmd_help, "Show this help", aliases=["h", "?"])
registry.register("tasks", cmd_tasks, "List scheduled tasks", aliases=["list", "ls"])
registry.register("status", cmd_status, "Show LLM mode, task count and history size")
registry.register("clear", cmd_clear, "Forget the conversation (tasks are kept)", aliases=["reset"])
registry.register("done", cmd_done, "Mark a task completed: /done <id>")
registry.register("export", cmd_export, "Export tasks to markdown: /export [filename]")

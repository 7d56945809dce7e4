# src/momentum_planner/tools/gateway.py

"""
Tool gateway: the closed catalog of planner operations the model may call.

Every call returns text. Store/validation/conflict failures are converted to
"Error: ..." results so the agent can relay them to the model without
aborting the turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.ports import TaskRepo
from ..errors import ConflictError, PersistenceError, PlannerError, ValidationError
from ..tasks.task_export import DEFAULT_EXPORT_FILENAME, export_markdown
from ..tasks.task_models import TaskStatus, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], str]

_TIME_HINT = "RFC 3339 with the same UTC offset as the current time, e.g. 2024-05-01T14:00:00+08:00"


@dataclass(slots=True, frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    handler: ToolHandler

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def to_openai_format(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties or {}, "required": required or []}


# ---- argument coercion ----


def _arg_int(args: dict[str, Any], name: str) -> int:
    raw = args.get(name)
    if isinstance(raw, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValidationError(f"{name} is required and must be a number")


def _arg_str(args: dict[str, Any], name: str) -> str | None:
    raw = args.get(name)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{name} must be a string")
    return raw


def _arg_bool(args: dict[str, Any], name: str) -> bool:
    raw = args.get(name, False)
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}
    if isinstance(raw, int | float):
        return bool(raw)
    return False


class ToolGateway:
    """
    Registry of planner tools backed by a TaskRepo.

    lenient_update_times restores the old update_task behaviour where a
    malformed optional start_time/end_time is silently ignored instead of
    being rejected.
    """

    def __init__(
        self,
        store: TaskRepo,
        *,
        export_dir: str | Path = ".",
        lenient_update_times: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._export_dir = Path(export_dir)
        self._lenient_update_times = lenient_update_times
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._tools: dict[str, ToolSpec] = {}
        self._register_default_tools()

    # ---- catalog ----

    def _register_default_tools(self) -> None:
        self.register(
            ToolSpec(
                name="current_time",
                description="Return the current local time in RFC 3339 format with timezone offset",
                parameters=_schema(),
                handler=self._current_time,
            )
        )
        self.register(
            ToolSpec(
                name="add_task",
                description="Add a new task to the schedule",
                parameters=_schema(
                    {
                        "title": {"type": "string", "description": "The title of the task"},
                        "description": {"type": "string", "description": "Detailed description of the task"},
                        "start_time": {"type": "string", "description": f"Start time, {_TIME_HINT}"},
                        "end_time": {"type": "string", "description": f"End time, {_TIME_HINT}"},
                        "allow_overlap": {
                            "type": "boolean",
                            "description": "Set to true to allow scheduling even if there is a conflict",
                        },
                    },
                    ["title", "start_time", "end_time"],
                ),
                handler=self._add_task,
            )
        )
        self.register(
            ToolSpec(
                name="list_tasks",
                description="List all scheduled tasks ordered by start time",
                parameters=_schema(),
                handler=self._list_tasks,
            )
        )
        self.register(
            ToolSpec(
                name="update_task",
                description="Update an existing task; only the provided fields change",
                parameters=_schema(
                    {
                        "id": {"type": "integer", "description": "The ID of the task to update"},
                        "title": {"type": "string", "description": "The new title of the task"},
                        "description": {"type": "string", "description": "The new description"},
                        "status": {
                            "type": "string",
                            "enum": [s.value for s in TaskStatus],
                            "description": "The new status",
                        },
                        "start_time": {"type": "string", "description": f"The new start time, {_TIME_HINT}"},
                        "end_time": {"type": "string", "description": f"The new end time, {_TIME_HINT}"},
                        "allow_overlap": {
                            "type": "boolean",
                            "description": "Set to true to allow scheduling even if there is a conflict",
                        },
                    },
                    ["id"],
                ),
                handler=self._update_task,
            )
        )
        self.register(
            ToolSpec(
                name="delete_task",
                description="Delete a task by ID",
                parameters=_schema(
                    {"id": {"type": "integer", "description": "The ID of the task to delete"}},
                    ["id"],
                ),
                handler=self._delete_task,
            )
        )
        self.register(
            ToolSpec(
                name="export_tasks",
                description="Export scheduled tasks to a markdown file",
                parameters=_schema(
                    {
                        "filename": {
                            "type": "string",
                            "description": f"The filename to save to (default: {DEFAULT_EXPORT_FILENAME})",
                        }
                    }
                ),
                handler=self._export_tasks,
            )
        )

    def register(self, tool: ToolSpec) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def openai_tools(self) -> list[dict[str, Any]]:
        return [t.to_openai_format() for t in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    # ---- dispatch ----

    def call(self, name: str, args: dict[str, Any] | None = None) -> str:
        """Run one tool. Never raises; failures come back as "Error: ..." text."""
        tool = self._tools.get(name)
        if tool is None:
            return f"Error: unknown tool '{name}'"

        args = dict(args or {})
        for param in tool.required:
            if args.get(param) in (None, ""):
                return f"Error: missing required argument '{param}'"

        try:
            result = tool.handler(args)
        except PlannerError as e:
            logger.info("Tool %s rejected: %s", name, e)
            return f"Error: {e}"
        except Exception as e:
            logger.exception("Tool %s crashed", name)
            return f"Error: {name} failed unexpectedly ({e.__class__.__name__}: {e})"

        logger.debug("Tool %s ok", name)
        return result

    # ---- handlers ----

    def _current_time(self, args: dict[str, Any]) -> str:
        return json.dumps({"local_time": format_timestamp(self._clock())})

    def _check_conflict(self, start: datetime, end: datetime, exclude_id: int, allow_overlap: bool) -> None:
        if allow_overlap:
            return
        conflict = self._store.find_overlap(start, end, exclude_id)
        if conflict is not None:
            raise ConflictError(conflict)

    def _add_task(self, args: dict[str, Any]) -> str:
        title = _arg_str(args, "title") or ""
        description = _arg_str(args, "description") or ""
        start = parse_timestamp(args.get("start_time"), field="start_time")
        end = parse_timestamp(args.get("end_time"), field="end_time")

        self._check_conflict(start, end, 0, _arg_bool(args, "allow_overlap"))

        task = self._store.create(title, description, start, end)
        return f"Task added: ID={task.id}, Title={task.title}"

    def _list_tasks(self, args: dict[str, Any]) -> str:
        tasks = self._store.list_tasks()
        return json.dumps([t.to_dict() for t in tasks], ensure_ascii=False, indent=2)

    def _optional_time(self, args: dict[str, Any], name: str) -> datetime | None:
        raw = args.get(name)
        if raw in (None, ""):
            return None
        try:
            return parse_timestamp(raw, field=name)
        except ValidationError:
            if self._lenient_update_times:
                logger.info("update_task: ignoring unparsable %s=%r", name, raw)
                return None
            raise

    def _update_task(self, args: dict[str, Any]) -> str:
        task_id = _arg_int(args, "id")
        task = self._store.get(task_id)

        title = _arg_str(args, "title")
        if title:
            task.title = title
        description = _arg_str(args, "description")
        if description is not None:
            task.description = description
        status = _arg_str(args, "status")
        if status:
            task.status = TaskStatus.parse(status)

        start = self._optional_time(args, "start_time")
        end = self._optional_time(args, "end_time")
        if start is not None:
            task.start_time = start
        if end is not None:
            task.end_time = end

        self._check_conflict(task.start_time, task.end_time, task.id, _arg_bool(args, "allow_overlap"))

        self._store.update(task)
        return f"Task {task_id} updated successfully"

    def _delete_task(self, args: dict[str, Any]) -> str:
        task_id = _arg_int(args, "id")
        self._store.delete(task_id)
        return f"Task {task_id} deleted successfully"

    def _export_tasks(self, args: dict[str, Any]) -> str:
        filename = (_arg_str(args, "filename") or "").strip() or DEFAULT_EXPORT_FILENAME
        base = self._export_dir.expanduser().resolve()
        path = (base / Path(filename).expanduser()).resolve()
        if not path.is_relative_to(base):
            raise ValidationError(f"export path {filename!r} is outside the export directory {base}")
        tasks = self._store.list_tasks()
        try:
            written = export_markdown(tasks, path, now=self._clock())
        except OSError as e:
            raise PersistenceError(f"Failed to export tasks to {path}: {e}") from e
        return f"Tasks exported to {written}"

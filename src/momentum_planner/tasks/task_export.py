# src/momentum_planner/tasks/task_export.py

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from .task_models import Task, format_clock

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_FILENAME = "plan.md"


def render_markdown(tasks: Iterable[Task], *, now: datetime | None = None) -> str:
    """Render tasks as a small markdown plan (one section per task)."""
    if now is None:
        now = datetime.now().astimezone()

    lines = ["# Momentum Plan", "", f"Generated at: {now.strftime('%a, %d %b %Y %H:%M:%S %z')}", ""]
    for t in tasks:
        start = format_clock(t.start_time)
        end = format_clock(t.end_time)
        day = t.start_time.strftime("%Y-%m-%d")
        lines.append(f"## {t.title}")
        lines.append(f"- **ID**: {t.id}")
        lines.append(f"- **Time**: {day} {start} - {end}")
        lines.append(f"- **Status**: {t.status.value}")
        if t.description:
            lines.append(f"- **Description**: {t.description}")
        lines.append("")
    return "\n".join(lines)


def export_markdown(tasks: Iterable[Task], path: str | Path, *, now: datetime | None = None) -> Path:
    """
    Write tasks to a markdown document at `path`.

    The file is written to a temp sibling first and then moved into place,
    so a crashed export never leaves a half-written plan behind.
    """
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(render_markdown(tasks, now=now), "utf-8")
    os.replace(tmp, path)
    logger.info("Exported tasks to %s", path)
    return path

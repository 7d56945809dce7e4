# src/momentum_planner/notify.py

"""
Notification sinks for due-task reminders.

The reminder scheduler only knows the Notifier port (core/ports.py);
which sink is used is decided in cli/bootstrap.py.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from datetime import datetime
from typing import TextIO

from plyer import notification as desktop_notification

from .core.ports import Notifier
from .errors import UpstreamError
from .tasks.task_models import Task, format_clock

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Momentum Reminder"


def reminder_body(task: Task) -> str:
    start = format_clock(task.start_time)
    end = format_clock(task.end_time)
    body = f"'{task.title}' starts at {start} (until {end})"
    if task.description:
        body += f"\n{task.description}"
    return body


class ConsoleNotifier:
    """Print reminders into the interactive console (the REPL keeps running)."""

    def __init__(self, stream: TextIO | None = None, prompt: str = "") -> None:
        self._stream = stream
        self._prompt = prompt

    def notify(self, title: str, body: str) -> None:
        out = self._stream or sys.stdout
        ts = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")
        lines = body.splitlines() or [""]
        out.write(f"\n\n[{ts}] [REMINDER] {title}: {lines[0]}\n")
        for extra in lines[1:]:
            out.write(f"   {extra}\n")
        if self._prompt:
            out.write(f"\n{self._prompt}")
        out.flush()


class LoggingNotifier:
    """Headless sink: reminders only go to the log."""

    def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body.replace("\n", " | "))


class DesktopNotifier:
    """OS notification popup (libnotify / Windows toast / macOS) through plyer."""

    def __init__(self, app_name: str = "Momentum", timeout_seconds: int = 10) -> None:
        self._app_name = app_name
        self._timeout = timeout_seconds

    def notify(self, title: str, body: str) -> None:
        try:
            desktop_notification.notify(
                title=title,
                message=body,
                app_name=self._app_name,
                timeout=self._timeout,
            )
        except NotImplementedError as e:
            raise UpstreamError("no desktop notification backend available on this system") from e


class FanoutNotifier:
    """
    Deliver to every sink; a failing sink is logged and does not stop the others.

    Raises UpstreamError only when no sink succeeded, so the scheduler retries.
    """

    def __init__(self, sinks: Sequence[Notifier]) -> None:
        self._sinks = list(sinks)

    def notify(self, title: str, body: str) -> None:
        delivered = 0
        last_error: Exception | None = None
        for sink in self._sinks:
            try:
                sink.notify(title, body)
                delivered += 1
            except Exception as e:
                last_error = e
                logger.warning("Notification sink %s failed: %s", sink.__class__.__name__, e)
        if delivered == 0 and self._sinks:
            raise UpstreamError(f"all notification sinks failed: {last_error}") from last_error

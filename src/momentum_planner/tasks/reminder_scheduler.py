# src/momentum_planner/tasks/reminder_scheduler.py

from __future__ import annotations

"""
Reminder scheduler.

A small polling loop that:
- fetches due, unreminded, not-completed tasks,
- shows a notification for each through an injected Notifier port,
- marks the task reminded once the notification went out.

Every failure is per-task: it is logged and the batch continues. A task whose
notification failed stays unreminded, so the next tick tries again.
"""

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..core.ports import Notifier, TaskRepo
from ..notify import REMINDER_TITLE, reminder_body
from .task_models import Task

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def _notify_with_retry(
        notifier: Notifier,
        task: Task,
        *,
        retries: int,
        backoff_seconds: float,
        sleep: Sleep,
) -> bool:
    body = reminder_body(task)
    for attempt in range(retries + 1):
        try:
            notifier.notify(REMINDER_TITLE, body)
            return True
        except Exception:
            logger.exception("notify failed task_id=%s attempt=%d", task.id, attempt + 1)
            if attempt < retries:
                await sleep(backoff_seconds * (2**attempt))
    return False


async def run_reminder_tick(
        task_store: TaskRepo,
        notifier: Notifier,
        *,
        notify_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        now_ts: float | None = None,
        sleep: Sleep = asyncio.sleep,
) -> int:
    """One poll: notify every due task. Returns how many tasks were marked reminded."""
    try:
        tasks = task_store.due_reminders(0, now_ts=now_ts)
    except Exception:
        logger.exception("due_reminders failed")
        return 0

    sent = 0
    for task in tasks:
        delivered = await _notify_with_retry(
            notifier,
            task,
            retries=max(0, int(notify_retries)),
            backoff_seconds=max(0.0, float(retry_backoff_seconds)),
            sleep=sleep,
        )
        if not delivered:
            continue

        try:
            task_store.mark_reminded(task.id)
        except Exception:
            logger.exception("mark_reminded failed task_id=%s", task.id)
            continue

        sent += 1
        logger.info("Reminder sent task_id=%s title=%r", task.id, task.title)
    return sent


async def run_reminder_scheduler(
        task_store: TaskRepo,
        notifier: Notifier,
        *,
        interval_seconds: float = 10.0,
        notify_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Simple polling scheduler.

    Every interval_seconds run one reminder tick. Runs until stop_event is set
    or the coroutine is cancelled.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while stop_event is None or not stop_event.is_set():
        t0 = time.monotonic()
        await run_reminder_tick(
            task_store,
            notifier,
            notify_retries=notify_retries,
            retry_backoff_seconds=retry_backoff_seconds,
        )
        logger.debug("Reminder tick done in %.3fs", time.monotonic() - t0)

        if stop_event is None:
            await asyncio.sleep(sleep_s)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)


@dataclass(slots=True)
class ReminderBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Reminder loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_reminders_in_background(
        task_store: TaskRepo,
        notifier: Notifier,
        *,
        interval_seconds: float = 10.0,
        notify_retries: int = 2,
) -> ReminderBackgroundRunner | None:
    """
    Start the reminder poller in a background thread with its own event loop
    (the console REPL blocks on input()).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_reminder_scheduler(
                    task_store,
                    notifier,
                    interval_seconds=interval_seconds,
                    notify_retries=notify_retries,
                    stop_event=stop_event,
                )
            )
        except Exception:
            logger.exception("Reminder scheduler crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="momentum-reminders", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Reminder thread did not initialize properly.")
        return None

    logger.info("Reminder thread started (interval=%.1fs).", interval_seconds)
    return ReminderBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)

# src/momentum_planner/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the reminder poller in a background thread,
- the console REPL in the main thread.
"""

from __future__ import annotations

import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..errors import ValidationError
from ..logging_setup import parse_level, setup_logging
from ..tasks.reminder_scheduler import start_reminders_in_background

logger = logging.getLogger(__name__)


def _handle_sigterm(signum, _frame) -> None:
    logger.info("Signal %s received, shutting down...", signum)
    raise KeyboardInterrupt


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as e:
        raise SystemExit(f"Configuration error: {e}") from e

    level = parse_level(settings.log_level)
    # The console shows WARNING+ unless DEBUG is asked for; the file always gets everything.
    console_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    state = create_initial_state(settings=settings)

    try:
        signal.signal(signal.SIGTERM, _handle_sigterm)
    except (OSError, ValueError):
        # Some platforms may not support SIGTERM.
        logger.debug("SIGTERM handler not installed.", exc_info=True)

    reminders = start_reminders_in_background(
        state.task_store,
        state.notifier,
        interval_seconds=settings.reminder_interval_seconds,
        notify_retries=settings.reminder_notify_retries,
    )

    try:
        run_console_loop(state)
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if reminders is not None:
            reminders.stop()
            reminders.join(timeout=5.0)
        state.task_store.close()
        logger.info("Bye.")
        print("Bye!")


if __name__ == "__main__":
    main()

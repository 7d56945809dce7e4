# src/momentum_planner/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "momentum_planner"
LOG_FILENAME = "momentum.log"

# Components that print while the user is typing at the prompt.
BACKGROUND_LOGGERS = ("momentum_planner.tasks.reminder_scheduler",)

# Chatty HTTP stack: kept out of the log file below WARNING as well.
NOISY_LIBRARIES = ("httpx", "httpcore", "openai")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive console readable:
    - app logs pass at the handler level
    - background components only at WARNING+ (they interleave with the prompt)
    - third-party and captured Python warnings only at ERROR+
    """

    def __init__(self, background: tuple[str, ...] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._background = background

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
            if name.startswith(self._background):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    """Map "debug"/"INFO"/"20" to a logging level; unknown names give `default`."""
    if not name:
        return default
    raw = name.strip()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/momentum",
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Configure root logging once, before the first log call:
    - stderr handler, filtered for interactive use
    - rotating file handler with full detail for debugging

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    log_to_file = RotatingFileHandler(
        str(log_file), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    log_to_file.setLevel(file_level)
    log_to_file.setFormatter(fmt)
    root.addHandler(log_to_file)

    # warnings.warn(...) -> 'py.warnings' logger
    logging.captureWarnings(True)

    for lib in NOISY_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)

    return log_file

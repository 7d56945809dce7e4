# src/momentum_planner/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: a missing API key only switches the app
  to the offline LLM client.
- Unprefixed LLM_API_KEY / LLM_BASE_URL / LLM_MODEL are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from .errors import ValidationError

ENV_PREFIX = "MOMENTUM"

DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_MODELS = ["deepseek-chat"]


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- LLM (OpenAI-compatible) ----
    llm_api_key: str | None
    llm_base_url: str
    llm_models: list[str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float
    llm_max_retries: int
    llm_retry_backoff_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    export_dir: Path

    # ---- Agent loop ----
    max_history: int
    max_tool_rounds: int
    turn_timeout_seconds: float
    streaming: bool
    lenient_update_times: bool

    # ---- Reminders ----
    reminder_interval_seconds: float
    reminder_notify_retries: int
    desktop_notifications: bool

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "momentum")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        llm_api_key = _first_env(_k("LLM_API_KEY"), "LLM_API_KEY", default=None)
        llm_base_url = _first_env(_k("LLM_BASE_URL"), "LLM_BASE_URL", default=DEFAULT_BASE_URL) or DEFAULT_BASE_URL
        single_model = _first_env("LLM_MODEL", default=None)
        llm_models = _env_list(_k("LLM_MODELS"), [single_model] if single_model else DEFAULT_MODELS)

        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 60.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/momentum"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        export_dir = _env_path(_k("EXPORT_DIR"), Path("."))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            llm_connect_timeout_seconds=connect_timeout,
            llm_read_timeout_seconds=max(read_timeout, connect_timeout),
            llm_max_retries=_env_int(_k("LLM_MAX_RETRIES"), 2),
            llm_retry_backoff_seconds=_env_float(_k("LLM_RETRY_BACKOFF_SECONDS"), 1.0),
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            export_dir=export_dir,
            max_history=_env_int(_k("MAX_HISTORY"), 20),
            max_tool_rounds=_env_int(_k("MAX_TOOL_ROUNDS"), 10),
            turn_timeout_seconds=_env_float(_k("TURN_TIMEOUT_SECONDS"), 0.0),
            streaming=_env_bool(_k("STREAMING"), True),
            lenient_update_times=_env_bool(_k("LENIENT_UPDATE_TIMES"), False),
            reminder_interval_seconds=_env_float(_k("REMINDER_INTERVAL_SECONDS"), 10.0),
            reminder_notify_retries=_env_int(_k("REMINDER_NOTIFY_RETRIES"), 2),
            desktop_notifications=_env_bool(_k("DESKTOP_NOTIFICATIONS"), True),
        )

    def validate(self) -> Settings:
        """Reject values the rest of the app cannot work with."""
        if not self.llm_base_url.strip():
            raise ValidationError("LLM base URL is not set. Set MOMENTUM_LLM_BASE_URL in your .env.")
        if not [m for m in self.llm_models if m.strip()]:
            raise ValidationError("LLM model list is empty. Set MOMENTUM_LLM_MODELS in your .env.")
        if self.max_history < 2:
            raise ValidationError("MOMENTUM_MAX_HISTORY must be at least 2")
        if self.max_tool_rounds < 1:
            raise ValidationError("MOMENTUM_MAX_TOOL_ROUNDS must be at least 1")
        if self.reminder_interval_seconds <= 0:
            raise ValidationError("MOMENTUM_REMINDER_INTERVAL_SECONDS must be positive")
        if self.llm_max_retries < 0 or self.reminder_notify_retries < 0:
            raise ValidationError("retry counts must not be negative")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings.from_env().validate()

# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from momentum_planner.cli.bootstrap import create_initial_state
from momentum_planner.core.state import AppState
from momentum_planner.tasks.task_store import TaskStore
from momentum_planner.tools.gateway import ToolGateway

from .fakes import NOW, FakeNotifier, ScriptedLLMClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="momentum",
        log_level="INFO",
        # LLM (offline by default: no key)
        llm_api_key=None,
        llm_base_url="https://llm.invalid/v1",
        llm_models=["test-model"],
        llm_max_retries=0,
        llm_retry_backoff_seconds=0.0,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        export_dir=tmp_path / "exports",
        # Agent loop
        max_history=20,
        max_tool_rounds=10,
        turn_timeout_seconds=0.0,
        streaming=False,
        lenient_update_times=False,
        # Reminders
        reminder_interval_seconds=10.0,
        reminder_notify_retries=0,
        desktop_notifications=False,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    """Real SQLite store: its correctness is part of what we want to test."""
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def gateway(store: TaskStore, settings: SimpleNamespace) -> ToolGateway:
    return ToolGateway(store, export_dir=settings.export_dir, clock=lambda: NOW)


@pytest.fixture()
def llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture()
def state(settings: SimpleNamespace, llm: ScriptedLLMClient) -> AppState:
    """AppState wired through the real composition root with deterministic fakes."""
    return create_initial_state(settings=settings, llm=llm, notifier=FakeNotifier())

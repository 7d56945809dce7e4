# tests/test_bootstrap.py

from __future__ import annotations

from momentum_planner.cli.bootstrap import create_initial_state
from momentum_planner.llm.offline import OfflineLLMClient
from momentum_planner.notify import ConsoleNotifier


def test_missing_api_key_falls_back_to_offline_client(settings) -> None:
    state = create_initial_state(settings=settings)

    assert state.offline is True
    assert isinstance(state.agent.llm, OfflineLLMClient)
    assert isinstance(state.notifier, ConsoleNotifier)
    assert settings.tasks_db_path.exists()


def test_offline_client_echoes_user_text(settings) -> None:
    state = create_initial_state(settings=settings)

    answer = state.agent.chat("plan my day")

    assert answer.startswith("Offline demo mode")
    assert answer.endswith("You said: plan my day")
    assert state.task_store.count_tasks() == 0


def test_agent_and_commands_share_one_store(state) -> None:
    out = state.gateway.call(
        "add_task",
        {"title": "x", "start_time": "2024-05-01T10:00:00+08:00", "end_time": "2024-05-01T11:00:00+08:00"},
    )

    assert out.startswith("Task added")
    assert state.agent.gateway is state.gateway
    assert state.task_store.count_tasks() == 1

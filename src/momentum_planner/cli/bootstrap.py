# src/momentum_planner/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/gateway/LLM/agent/notifier).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.agent import PlannerAgent
from ..core.ports import LLMClient, Notifier
from ..core.state import AppState
from ..errors import UpstreamError
from ..llm.client import OpenAILLMClient
from ..llm.offline import OfflineLLMClient
from ..notify import ConsoleNotifier, DesktopNotifier, FanoutNotifier
from ..tasks.task_store import TaskStore
from ..tools.gateway import ToolGateway

logger = logging.getLogger(__name__)

PROMPT = ">>> You: "


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_notifier(settings) -> Notifier:
    console = ConsoleNotifier(prompt=PROMPT)
    if not getattr(settings, "desktop_notifications", False):
        return console
    return FanoutNotifier([console, DesktopNotifier(app_name=str(getattr(settings, "app_name", "momentum")))])


def create_initial_state(
    *,
    settings=None,
    llm: LLMClient | None = None,
    notifier: Notifier | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings/LLM/notifier injectable makes the app easier to test and
    avoids hidden global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    offline = False
    if llm is None:
        try:
            llm = OpenAILLMClient(settings)
        except UpstreamError as e:
            logger.warning("LLM unavailable (%s); using offline client.", e)
            llm = OfflineLLMClient()
            offline = True

    store = TaskStore(settings.tasks_db_path)
    gateway = ToolGateway(
        store,
        export_dir=settings.export_dir,
        lenient_update_times=bool(getattr(settings, "lenient_update_times", False)),
    )
    agent = PlannerAgent(
        llm,
        gateway,
        max_history=int(getattr(settings, "max_history", 20)),
        max_tool_rounds=int(getattr(settings, "max_tool_rounds", 10)),
        turn_timeout_seconds=float(getattr(settings, "turn_timeout_seconds", 0.0)),
    )

    return AppState(
        settings=settings,
        task_store=store,
        gateway=gateway,
        agent=agent,
        notifier=notifier or _build_notifier(settings),
        offline=offline,
    )

# src/momentum_planner/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.task_store import TaskStore
from ..tools.gateway import ToolGateway
from .agent import PlannerAgent
from .ports import Notifier


@dataclass
class AppState:
    """
    Everything a connector needs for one running app.

    The single TaskStore instance is shared by the agent (through the
    gateway) and by the reminder thread.
    """

    settings: Any

    task_store: TaskStore
    gateway: ToolGateway
    agent: PlannerAgent
    notifier: Notifier

    offline: bool = False

# src/momentum_planner/errors.py

"""
Error taxonomy shared by the store, the tool gateway and the agent loop.

Store and gateway errors are turned into user-facing text at the gateway
boundary; UpstreamError and AgentTurnError are turn-fatal for the agent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .tasks.task_models import Task


class PlannerError(Exception):
    """Base class for all planner errors."""


class NotFoundError(PlannerError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"task with ID {task_id} not found")
        self.task_id = task_id


class ValidationError(PlannerError):
    """Malformed timestamp, empty title, bad argument type, ..."""


class ConflictError(PlannerError):
    def __init__(self, conflict: Task) -> None:
        from .tasks.task_models import format_clock

        super().__init__(
            f"Time conflict with existing task: '{conflict.title}' (ID: {conflict.id}) "
            f"from {format_clock(conflict.start_time)} to {format_clock(conflict.end_time)}. "
            "Set allow_overlap=true to force."
        )
        self.conflict = conflict


class PersistenceError(PlannerError):
    """Storage unavailable or a write failed."""


class UpstreamError(PlannerError):
    """The language model or the notification collaborator failed."""


class AgentTurnError(PlannerError):
    """A turn was aborted (tool-round cap or deadline exceeded)."""


def friendly_error_message(err: Exception) -> str:
    msg = str(err).strip() or err.__class__.__name__
    if "API key is not set" in msg:
        return "LLM is not configured (missing API key). Set MOMENTUM_LLM_API_KEY in .env (see .env.example)."
    if "model list is empty" in msg:
        return "LLM is not configured (no models). Set MOMENTUM_LLM_MODELS in .env (see .env.example)."
    if "base URL is not set" in msg:
        return "LLM is not configured (missing base URL). Set MOMENTUM_LLM_BASE_URL in .env (see .env.example)."
    return msg

# src/momentum_planner/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/LLM providers/notification sinks swappable and makes testing easier.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

ChatMessage = dict[str, Any]
# OpenAI-style chat messages: {"role": "...", "content": "...", ["tool_calls" | "tool_call_id"]}.

TokenCallback = Callable[[str], None]


@dataclass(slots=True, frozen=True)
class ToolCall:
    """One tool invocation requested by the model; arguments are the raw JSON text."""

    id: str
    name: str
    arguments: str


@dataclass(slots=True)
class LLMReply:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_message(self) -> ChatMessage:
        """Assistant turn as it must be echoed back in the next request."""
        msg: ChatMessage = {"role": "assistant", "content": self.content or ""}
        if self.tool_calls:
            msg["tool_calls"] = [
                {
                    "id": c.id,
                    "type": "function",
                    "function": {"name": c.name, "arguments": c.arguments},
                }
                for c in self.tool_calls
            ]
        return msg


class LLMClient(Protocol):
    """Chat completion client (OpenAI-compatible) with tool calling."""

    def complete(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> LLMReply: ...

    def stream_complete(
            self,
            messages: list[ChatMessage],
            tools: list[dict[str, Any]],
            on_token: TokenCallback,
    ) -> LLMReply: ...


class Notifier(Protocol):
    """Fire-and-forget "show a notification with a title and body"."""

    def notify(self, title: str, body: str) -> None: ...


class TaskRepo(Protocol):
    def create(self, title: str, description: str, start: datetime, end: datetime) -> Any: ...
    def list_tasks(self) -> list[Any]: ...
    def get(self, task_id: int) -> Any: ...
    def update(self, task: Any) -> None: ...
    def delete(self, task_id: int) -> None: ...
    def find_overlap(self, start: datetime, end: datetime, exclude_id: int = 0) -> Any | None: ...

    # Reminder scheduler API
    def due_reminders(self, within_seconds: float = 0.0, *, now_ts: float | None = None) -> list[Any]: ...
    def mark_reminded(self, task_id: int) -> None: ...

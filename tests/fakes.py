# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from momentum_planner.core.ports import ChatMessage, LLMReply, TokenCallback, ToolCall
from momentum_planner.errors import UpstreamError

TZ = timezone(timedelta(hours=8))
NOW = datetime(2024, 5, 1, 9, 0, tzinfo=TZ)


def at(hour: int, minute: int = 0, *, day: int = 1) -> datetime:
    """Wall-clock time on the fixed test day (UTC+08:00)."""
    return datetime(2024, 5, day, hour, minute, tzinfo=TZ)


def tool_call(name: str, arguments: str = "{}", call_id: str | None = None) -> ToolCall:
    return ToolCall(id=call_id or f"call_{name}", name=name, arguments=arguments)


class ScriptedLLMClient:
    """
    Deterministic LLM client for unit tests.

    - Returns the scripted replies in order (an Exception entry is raised instead)
    - Captures a snapshot of every request for assertions
    - When the script runs out, keeps returning the last reply
    """

    def __init__(self, replies: list[LLMReply | Exception] | None = None) -> None:
        self.replies: list[LLMReply | Exception] = list(replies or [LLMReply(content="ok")])
        self.calls: list[tuple[list[ChatMessage], list[dict[str, Any]]]] = []

    def _next(self) -> LLMReply:
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, Exception):
            raise item
        return item

    def complete(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> LLMReply:
        self.calls.append(([dict(m) for m in messages], tools))
        return self._next()

    def stream_complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]],
        on_token: TokenCallback,
    ) -> LLMReply:
        reply = self.complete(messages, tools)
        for word in reply.content.split(" "):
            if word:
                on_token(word + " ")
        return reply


class FailingLLMClient(ScriptedLLMClient):
    def __init__(self, message: str = "LLM network/timeout error.") -> None:
        super().__init__([UpstreamError(message)])


@dataclass(slots=True)
class SentNotification:
    title: str
    body: str


@dataclass(slots=True)
class FakeNotifier:
    """Records notifications; fails for titles/bodies containing any of fail_on, or the first fail_times calls."""

    sent: list[SentNotification] = field(default_factory=list)
    fail_on: tuple[str, ...] = ()
    fail_times: int = 0
    attempts: int = 0

    def notify(self, title: str, body: str) -> None:
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise UpstreamError("notification backend unavailable")
        if any(s in body for s in self.fail_on):
            raise UpstreamError(f"cannot show notification: {body[:20]}")
        self.sent.append(SentNotification(title=title, body=body))

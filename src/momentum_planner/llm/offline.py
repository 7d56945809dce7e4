# src/momentum_planner/llm/offline.py

from __future__ import annotations

from typing import Any

from ..core.ports import ChatMessage, LLMReply, TokenCallback


class OfflineLLMClient:
    """
    Offline deterministic LLM client used for demos when no API key is configured.

    It never requests tools, so the planner stays read-only; slash commands
    (/tasks, /export) still work against the real store.
    """

    def complete(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> LLMReply:
        user_text = ""
        for m in reversed(messages):
            if m.get("role") == "user":
                user_text = str(m.get("content") or "")
                break

        return LLMReply(
            content=(
                "Offline demo mode: no language model is configured.\n"
                "Set MOMENTUM_LLM_API_KEY (and optionally MOMENTUM_LLM_MODELS) to enable planning.\n\n"
                f"You said: {user_text}"
            )
        )

    def stream_complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]],
        on_token: TokenCallback,
    ) -> LLMReply:
        reply = self.complete(messages, tools)
        on_token(reply.content)
        return reply

# src/momentum_planner/core/agent.py

"""
Agent tool-orchestration loop.

One user turn:
  refresh system prompt (current time) -> append user turn -> ask the model
  -> dispatch requested tools one by one, feeding results back -> repeat until
  the model answers without tool calls.

Key invariants:
- history[0] is always the system turn, regenerated every turn;
- tool invocations are dispatched strictly in order, so a later call in the
  same turn observes the effects of earlier ones;
- the number of model calls per turn is capped (max_tool_rounds), an optional
  deadline bounds the whole turn;
- the history is a sliding window of max_history messages that always starts
  at a user turn, so a tool result never loses its assistant tool-call turn;
- if a turn fails, any assistant tool-call turn that was not fully answered is
  rolled back; the user turn stays so the next turn can retry.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..errors import AgentTurnError
from ..tools.gateway import ToolGateway
from .persona import build_system_prompt
from .ports import ChatMessage, LLMClient, LLMReply, TokenCallback, ToolCall

logger = logging.getLogger(__name__)


class PlannerAgent:
    def __init__(
        self,
        llm: LLMClient,
        gateway: ToolGateway,
        *,
        max_history: int = 20,
        max_tool_rounds: int = 10,
        turn_timeout_seconds: float = 0.0,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.llm = llm
        self.gateway = gateway
        self.max_history = max(2, int(max_history))
        self.max_tool_rounds = max(1, int(max_tool_rounds))
        self.turn_timeout_seconds = max(0.0, float(turn_timeout_seconds))
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._monotonic = monotonic
        self.history: list[ChatMessage] = [{"role": "system", "content": build_system_prompt(self._clock())}]
        self._turn_start = 1

    # ---- public API ----

    def chat(self, user_text: str) -> str:
        """Run one turn and return the model's final answer."""
        return self._run_turn(user_text, on_token=None)

    def chat_stream(
        self,
        user_text: str,
        on_token: TokenCallback,
        on_done: Callable[[str], None] | None = None,
    ) -> str:
        """Same turn as chat(), delivering content tokens as they are produced."""
        answer = self._run_turn(user_text, on_token=on_token)
        if on_done is not None:
            on_done(answer)
        return answer

    def reset(self) -> None:
        del self.history[1:]
        self._turn_start = 1

    # ---- turn state machine ----

    def _run_turn(self, user_text: str, *, on_token: TokenCallback | None) -> str:
        self.history[0] = {"role": "system", "content": build_system_prompt(self._clock())}
        self.history.append({"role": "user", "content": user_text})
        self._turn_start = len(self.history) - 1

        deadline = None
        if self.turn_timeout_seconds > 0:
            deadline = self._monotonic() + self.turn_timeout_seconds

        tools = self.gateway.openai_tools()

        try:
            for round_no in range(1, self.max_tool_rounds + 1):
                self._check_deadline(deadline, "model call")
                self._prune_history()

                reply = self._request(tools, on_token)
                self.history.append(reply.to_message())

                if not reply.tool_calls:
                    logger.info("Turn finished after %d model call(s)", round_no)
                    return reply.content

                for call in reply.tool_calls:
                    self._check_deadline(deadline, f"tool {call.name}")
                    result = self._dispatch(call)
                    self.history.append({"role": "tool", "tool_call_id": call.id, "content": result})

            raise AgentTurnError(
                f"The model kept requesting tools after {self.max_tool_rounds} rounds; turn aborted."
            )
        except Exception:
            self._rollback_unanswered_tool_calls()
            raise

    def _request(self, tools: list[dict[str, Any]], on_token: TokenCallback | None) -> LLMReply:
        messages = list(self.history)
        if on_token is None:
            return self.llm.complete(messages, tools)
        return self.llm.stream_complete(messages, tools, on_token)

    def _dispatch(self, call: ToolCall) -> str:
        logger.info("Calling tool: %s", call.name)
        raw = (call.arguments or "").strip()
        try:
            args = json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            logger.info("Tool %s: malformed arguments %r", call.name, raw)
            return f"Error: failed to parse tool arguments: {e}"
        if not isinstance(args, dict):
            return "Error: tool arguments must be a JSON object"
        return self.gateway.call(call.name, args)

    def _check_deadline(self, deadline: float | None, step: str) -> None:
        if deadline is not None and self._monotonic() > deadline:
            raise AgentTurnError(
                f"Turn exceeded {self.turn_timeout_seconds:.0f}s before {step}; remaining steps skipped."
            )

    # ---- history management ----

    def _prune_history(self) -> None:
        body = self.history[1:]
        if len(body) <= self.max_history:
            return

        turn_start = self._turn_start - 1
        start = len(body) - self.max_history
        cut = next(
            (i for i in range(start, len(body)) if body[i].get("role") == "user"),
            turn_start,
        )
        # The turn in progress is never cut.
        cut = min(cut, turn_start)
        if cut <= 0:
            return

        logger.debug("History pruned: dropped %d message(s)", cut)
        del self.history[1 : cut + 1]
        self._turn_start -= cut

    def _rollback_unanswered_tool_calls(self) -> None:
        for idx in range(len(self.history) - 1, 0, -1):
            msg = self.history[idx]
            if msg.get("role") != "assistant" or not msg.get("tool_calls"):
                continue
            answered = sum(1 for m in self.history[idx + 1 :] if m.get("role") == "tool")
            if answered < len(msg["tool_calls"]):
                logger.debug("Rolling back %d unanswered tool call(s)", len(msg["tool_calls"]) - answered)
                del self.history[idx:]
            return

# tests/test_agent.py

from __future__ import annotations

import json

import pytest

from momentum_planner.core.agent import PlannerAgent
from momentum_planner.core.ports import LLMReply
from momentum_planner.errors import AgentTurnError, UpstreamError
from momentum_planner.tasks.task_store import TaskStore
from momentum_planner.tools.gateway import ToolGateway

from .fakes import NOW, ScriptedLLMClient, tool_call


def _agent(llm: ScriptedLLMClient, gateway: ToolGateway, **kw) -> PlannerAgent:
    return PlannerAgent(llm, gateway, clock=lambda: NOW, **kw)


def test_plain_answer_without_tools(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient([LLMReply(content="Hello! What should we plan?")])
    agent = _agent(llm, gateway)

    assert agent.chat("hi") == "Hello! What should we plan?"

    assert [m["role"] for m in agent.history] == ["system", "user", "assistant"]
    assert len(llm.calls) == 1
    messages, tools = llm.calls[0]
    assert messages[-1] == {"role": "user", "content": "hi"}
    assert {t["function"]["name"] for t in tools} >= {"add_task", "list_tasks"}


def test_system_prompt_carries_current_time_and_offset(gateway: ToolGateway) -> None:
    agent = _agent(ScriptedLLMClient(), gateway)

    agent.chat("hi")

    system = agent.history[0]
    assert system["role"] == "system"
    assert "2024-05-01T09:00:00+08:00" in system["content"]
    assert "(+08:00)" in system["content"]


def test_system_prompt_is_refreshed_every_turn(gateway: ToolGateway) -> None:
    times = iter([NOW, NOW, NOW.replace(hour=17)])
    agent = PlannerAgent(ScriptedLLMClient(), gateway, clock=lambda: next(times))

    agent.chat("one")
    assert "T09:00:00" in agent.history[0]["content"]
    agent.chat("two")
    assert "T17:00:00" in agent.history[0]["content"]
    assert sum(1 for m in agent.history if m["role"] == "system") == 1


def test_tools_run_in_order_and_see_earlier_effects(gateway: ToolGateway, store: TaskStore) -> None:
    add_args = json.dumps(
        {"title": "Gym", "start_time": "2024-05-01T18:00:00+08:00", "end_time": "2024-05-01T19:00:00+08:00"}
    )
    llm = ScriptedLLMClient(
        [
            LLMReply(
                content="",
                tool_calls=[tool_call("add_task", add_args, "c1"), tool_call("list_tasks", "{}", "c2")],
            ),
            LLMReply(content="Gym is on the calendar at 18:00."),
        ]
    )
    agent = _agent(llm, gateway)

    answer = agent.chat("schedule gym at 6pm")

    assert answer == "Gym is on the calendar at 18:00."
    assert store.count_tasks() == 1

    roles = [m["role"] for m in agent.history]
    assert roles == ["system", "user", "assistant", "tool", "tool", "assistant"]
    add_result, list_result = agent.history[3], agent.history[4]
    assert add_result == {"role": "tool", "tool_call_id": "c1", "content": "Task added: ID=1, Title=Gym"}
    assert list_result["tool_call_id"] == "c2"
    assert [t["title"] for t in json.loads(list_result["content"])] == ["Gym"]

    # The second request carries the assistant tool-call turn and both results.
    second_request, _ = llm.calls[1]
    assert second_request[2]["tool_calls"][0]["function"]["name"] == "add_task"
    assert second_request[-1]["tool_call_id"] == "c2"


def test_tool_errors_are_fed_back_not_raised(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient(
        [
            LLMReply(content="", tool_calls=[tool_call("delete_task", '{"id": 7}')]),
            LLMReply(content="There is no task 7."),
        ]
    )
    agent = _agent(llm, gateway)

    assert agent.chat("delete 7") == "There is no task 7."
    assert agent.history[3]["content"] == "Error: task with ID 7 not found"


def test_malformed_tool_arguments_become_error_result(gateway: ToolGateway, store: TaskStore) -> None:
    llm = ScriptedLLMClient(
        [
            LLMReply(content="", tool_calls=[tool_call("add_task", '{"title": "x", ')]),
            LLMReply(content="Sorry, let me retry later."),
        ]
    )
    agent = _agent(llm, gateway)

    assert agent.chat("add x") == "Sorry, let me retry later."
    assert agent.history[3]["content"].startswith("Error: failed to parse tool arguments")
    assert store.count_tasks() == 0


def test_non_object_arguments_are_rejected(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient(
        [LLMReply(content="", tool_calls=[tool_call("list_tasks", "[1, 2]")]), LLMReply(content="ok")]
    )
    agent = _agent(llm, gateway)

    agent.chat("list")

    assert agent.history[3]["content"] == "Error: tool arguments must be a JSON object"


def test_tool_round_cap_aborts_turn(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient([LLMReply(content="", tool_calls=[tool_call("current_time")])])
    agent = _agent(llm, gateway, max_tool_rounds=3)

    with pytest.raises(AgentTurnError) as ei:
        agent.chat("loop forever")

    assert "3 rounds" in str(ei.value)
    assert len(llm.calls) == 3
    # Completed tool rounds stay; every assistant tool-call turn is fully answered.
    assert agent.history[1] == {"role": "user", "content": "loop forever"}
    assert [m["role"] for m in agent.history[2:]] == ["assistant", "tool"] * 3


def test_upstream_failure_keeps_user_turn(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient([UpstreamError("LLM is rate-limited. Try again later.")])
    agent = _agent(llm, gateway)

    with pytest.raises(UpstreamError):
        agent.chat("plan my week")

    assert agent.history[-1] == {"role": "user", "content": "plan my week"}

    llm.replies = [LLMReply(content="Here is your week.")]
    assert agent.chat("try again") == "Here is your week."
    assert [m["content"] for m in agent.history if m["role"] == "user"] == ["plan my week", "try again"]


def test_deadline_rolls_back_unanswered_tool_calls(gateway: ToolGateway, store: TaskStore) -> None:
    ticks = iter([0.0, 1.0, 100.0, 100.0, 100.0])
    add_args = json.dumps(
        {"title": "x", "start_time": "2024-05-01T10:00:00+08:00", "end_time": "2024-05-01T11:00:00+08:00"}
    )
    llm = ScriptedLLMClient([LLMReply(content="", tool_calls=[tool_call("add_task", add_args)])])
    agent = PlannerAgent(
        llm, gateway, clock=lambda: NOW, turn_timeout_seconds=30, monotonic=lambda: next(ticks)
    )

    with pytest.raises(AgentTurnError) as ei:
        agent.chat("add x")

    assert "exceeded" in str(ei.value)
    assert store.count_tasks() == 0
    assert [m["role"] for m in agent.history] == ["system", "user"]


def test_history_window_starts_at_user_turn(gateway: ToolGateway) -> None:
    agent = _agent(ScriptedLLMClient([LLMReply(content="ok")]), gateway, max_history=4)

    for i in range(5):
        agent.chat(f"message {i}")

    body = agent.history[1:]
    assert len(body) <= 4
    assert body[0]["role"] == "user"
    assert agent.history[0]["role"] == "system"
    assert body[-2] == {"role": "user", "content": "message 4"}


def test_pruning_never_orphans_tool_results(gateway: ToolGateway) -> None:
    replies = []
    for _ in range(4):
        replies.append(LLMReply(content="", tool_calls=[tool_call("current_time")]))
        replies.append(LLMReply(content="done"))
    agent = _agent(ScriptedLLMClient(replies), gateway, max_history=5)

    for i in range(4):
        agent.chat(f"what time is it {i}")
        body = agent.history[1:]
        assert body[0]["role"] == "user"
        for idx, msg in enumerate(body):
            if msg["role"] == "tool":
                assert body[idx - 1]["role"] in ("assistant", "tool")


def test_chat_stream_delivers_tokens_and_on_done(gateway: ToolGateway) -> None:
    llm = ScriptedLLMClient([LLMReply(content="All set for tomorrow")])
    agent = _agent(llm, gateway)
    tokens: list[str] = []
    done: list[str] = []

    answer = agent.chat_stream("plan tomorrow", tokens.append, done.append)

    assert answer == "All set for tomorrow"
    assert "".join(tokens).strip() == "All set for tomorrow"
    assert done == ["All set for tomorrow"]


def test_chat_stream_skips_on_done_when_turn_fails(gateway: ToolGateway) -> None:
    agent = _agent(ScriptedLLMClient([UpstreamError("boom")]), gateway)
    done: list[str] = []

    with pytest.raises(UpstreamError):
        agent.chat_stream("x", lambda _: None, done.append)

    assert done == []


def test_reset_keeps_only_system_turn(gateway: ToolGateway) -> None:
    agent = _agent(ScriptedLLMClient(), gateway)
    agent.chat("a")
    agent.chat("b")

    agent.reset()

    assert [m["role"] for m in agent.history] == ["system"]

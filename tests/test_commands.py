# tests/test_commands.py

from __future__ import annotations

from momentum_planner.cli.commands import CommandRegistry, registry
from momentum_planner.core.ports import LLMReply

from .fakes import at


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return f"h2 {args}"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a", aliases=["aa"])
    reg.register("b", h3, "b")

    assert reg.handle(state, "/a x y") == "h2 ['x', 'y']"
    assert reg.handle(state, "/AA") == "h2 []"
    assert reg.handle(state, "/b", emit=notes.append) == "h3"
    assert called == {"h2": 2, "h3": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_help_lists_builtin_commands(state) -> None:
    text = registry.handle(state, "/help") or ""
    for name in ("/help", "/tasks", "/status", "/clear", "/export"):
        assert name in text
    # Aliases route but are not listed twice.
    assert "/ls" not in text
    assert registry.handle(state, "/?") == text


def test_tasks_command_lists_store_contents(state) -> None:
    assert registry.handle(state, "/tasks") == "No tasks scheduled."

    state.task_store.create("Write", "", at(10), at(11))
    t = state.task_store.create("Run", "", at(7), at(8))
    state.task_store.mark_reminded(t.id)

    text = registry.handle(state, "/ls") or ""
    lines = text.splitlines()
    assert lines[0] == "Tasks:"
    assert lines[1] == f"  [{t.id}] 2024-05-01 07:00-08:00 Run - pending (reminded)"
    assert lines[2].endswith("2024-05-01 10:00-11:00 Write - pending")


def test_status_reports_mode_and_counts(state) -> None:
    state.task_store.create("x", "", at(10), at(11))
    text = registry.handle(state, "/status") or ""
    assert "LLM: ONLINE (test-model)" in text
    assert "Tasks: 1 in" in text
    assert "window 20" in text


def test_clear_resets_conversation_but_keeps_tasks(state, llm) -> None:
    llm.replies = [LLMReply(content="noted")]
    state.agent.chat("remember this")
    state.task_store.create("x", "", at(10), at(11))

    assert registry.handle(state, "/clear") == "Conversation cleared."

    assert [m["role"] for m in state.agent.history] == ["system"]
    assert state.task_store.count_tasks() == 1


def test_export_command_uses_gateway(state, settings) -> None:
    state.task_store.create("x", "", at(10), at(11))
    notes: list[str] = []

    out = registry.handle(state, "/export week.md", emit=notes.append) or ""

    assert notes == ["Exporting tasks..."]
    assert out == f"Tasks exported to {(settings.export_dir / 'week.md').resolve()}"
    assert "## x" in (settings.export_dir / "week.md").read_text("utf-8")


def test_done_marks_task_completed_even_with_accepted_overlap(state) -> None:
    a = state.task_store.create("A", "", at(10), at(11))
    state.task_store.create("B", "", at(10, 30), at(11, 30))

    assert registry.handle(state, f"/done {a.id}") == f"Task {a.id} updated successfully"
    assert state.task_store.get(a.id).status == "completed"
    assert registry.handle(state, "/done") == "Usage: /done <task id>"
    assert registry.handle(state, "/done 99") == "Error: task with ID 99 not found"

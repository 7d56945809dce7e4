# src/momentum_planner/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.bootstrap import PROMPT
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..errors import AgentTurnError, UpstreamError, friendly_error_message

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _run_turn(state: AppState, user_input: str, app_name: str) -> None:
    streaming = bool(getattr(state.settings, "streaming", True))
    printed = {"any": False}

    def on_token(piece: str) -> None:
        if not piece:
            return
        if not printed["any"]:
            print(f"\r[{_ts_local()}] <<< {app_name}: ", end="", flush=True)
            printed["any"] = True
        print(piece, end="", flush=True)

    print("Thinking...", end="", flush=True)
    try:
        if streaming:
            answer = state.agent.chat_stream(user_input, on_token)
        else:
            answer = state.agent.chat(user_input)
    except (UpstreamError, AgentTurnError) as e:
        msg = friendly_error_message(e)
        logger.info("Turn failed: %s", msg)
        print(f"\r[{_ts_local()}] [LLM] {msg}")
        return

    if printed["any"]:
        # Already streamed.
        print("\n")
        return

    if not answer.strip():
        print(f"\r[{_ts_local()}] [LLM] No output (model produced no content).")
        return

    print(f"\r[{_ts_local()}] <<< {app_name}: {answer}\n")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (offline=%s).", state.offline)
    _print_ts("[CONSOLE] Describe your goals. Use /help for commands. Use /exit to quit.\n")

    app_name = str(getattr(state.settings, "app_name", "momentum"))

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(PROMPT).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {PROMPT}{user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit", "exit", "quit"):
            logger.info("Console exit command received.")
            break

        try:
            cmd_response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            print(f"[{_ts_local()}] {cmd_response}")
            continue

        try:
            _run_turn(state, user_input, app_name)
        except Exception:
            logger.exception("Console chat handler crashed.")
            _print_ts("Internal error while generating a reply.")

    logger.info("Console connector finished.")

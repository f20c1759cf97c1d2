# src/taskmaster/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.chat import stream_reply
from ..core.state import AppState
from ..llm.client import friendly_llm_error_message

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (offline=%s).", state.offline)
    _print_ts("[CONSOLE] Type a question to chat, or use /help for task commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate feedback for slow oracle calls.
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if user_input.startswith("/"):
            try:
                with state.lock:
                    response = command_registry.handle(state, user_input, emit=emit)
            except RuntimeError as e:
                msg = friendly_llm_error_message(e)
                logger.info("LLM runtime error: %s", msg)
                response = f"[LLM] {msg}"
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."
            _print_ts(response or "Empty reply.")
            continue

        # Plain text: stream the model's answer as it arrives.
        app_name = getattr(state.settings, "app_name", "taskmaster")
        printed = False
        try:
            for piece in stream_reply(state, user_input):
                if not printed:
                    print(f"[{_ts_local()}] <<< {app_name}: ", end="", flush=True)
                    printed = True
                print(piece, end="", flush=True)
            if printed:
                print()
            else:
                _print_ts("[LLM] Empty reply.")
        except RuntimeError as e:
            if printed:
                print()
            msg = friendly_llm_error_message(e)
            logger.info("LLM runtime error: %s", msg)
            _print_ts(f"[LLM] {msg}")
        except Exception:
            if printed:
                print()
            logger.exception("Console chat handler crashed.")
            _print_ts("Internal error while talking to the model.")

    logger.info("Console connector finished.")

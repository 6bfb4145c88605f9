# src/taskmate/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.errors import StoreError, TaskmateError
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _prompt(state: AppState) -> str:
    who = state.actor.label if state.actor is not None else "?"
    unread = state.board.notifications.unread_count if state.board is not None else 0
    badge = f" ({unread})" if unread else ""
    return f"{who}{badge} >>> "


async def run_console_loop(state: AppState) -> None:
    """
    Interactive REPL. Input is read in a worker thread so change feeds keep
    flowing into the board while the prompt is waiting.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, _prompt(state))).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not line.startswith("/"):
            line = "/add " + line

        try:
            reply = await command_registry.handle(state, line)
        except StoreError as e:
            logger.info("Store error kind=%s: %s", e.kind.value, e)
            reply = f"Store error ({e.kind.value}): {e}"
        except (TaskmateError, ValueError, RuntimeError) as e:
            reply = str(e)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            _print_ts(reply)

    logger.info("Console connector finished.")

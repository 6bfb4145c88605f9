# src/taskmate/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts a session for the configured
user, then runs the console connector (or just keeps the feeds alive until
Ctrl+C / SIGTERM when the console is disabled).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from .bootstrap import create_initial_state, end_session, start_session

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    await end_session(state)
    try:
        state.store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def _run(state: AppState) -> None:
    settings = state.settings
    try:
        await start_session(state, settings.user_email, settings.user_name)

        if settings.console_enabled:
            await run_console_loop(state)
            return

        logger.info("Console disabled. Keeping feeds open. Press Ctrl+C to stop.")
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Some platforms do not support signal handlers in the loop.
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop.set)
        await stop.wait()
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()

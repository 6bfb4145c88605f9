# src/taskmate/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite store into AppState,
- starts / switches / ends a user session (one TaskBoard per acting user).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.errors import StoreError
from ..core.models import Actor
from ..core.state import AppState
from ..storage.sqlite_store import SqliteRemoteStore
from ..tasks.task_board import TaskBoard

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    return AppState(
        settings=settings,
        store=SqliteRemoteStore(settings.db_path),
    )


async def refresh_users(state: AppState) -> None:
    try:
        state.users = await state.store.list_users()
    except StoreError:
        logger.exception("Failed to refresh user directory.")
        state.users = []


async def start_session(state: AppState, email: str, name: str | None = None) -> Actor:
    """
    Switch the acting user: close the previous board (if any), make sure the
    user exists in the directory, then open a fresh board for them.
    """
    await end_session(state)

    user = await state.store.get_user_by_email(email)
    if user is None:
        user = await state.store.add_user(email, name)

    actor = Actor.from_user(user)
    limit = int(getattr(state.settings, "notification_limit", 20))
    board = TaskBoard(state.store, actor, notification_limit=limit)
    await board.open()

    state.actor = actor
    state.board = board
    await refresh_users(state)
    logger.info("Session started for %s (%s)", actor.label, actor.id)
    return actor


async def end_session(state: AppState) -> None:
    board = state.board
    if board is None:
        return
    state.board = None
    state.actor = None
    try:
        await board.close()
    except Exception:
        logger.exception("Failed to close task board.")

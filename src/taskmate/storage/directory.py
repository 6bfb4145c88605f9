# src/taskmate/storage/directory.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.errors import StoreError
from ..core.models import User
from ..core.ports import UserDirectory

logger = logging.getLogger(__name__)


def display_label(user: User | None, fallback: str = "unknown user") -> str:
    if user is None:
        return fallback
    return user.name or user.email or user.id


def find_user(users: Iterable[User], ref: str | None) -> User | None:
    """Match by id, or by email case-insensitively."""
    if not ref:
        return None
    needle = ref.strip()
    lowered = needle.lower()
    for u in users:
        if u.id == needle or u.email.lower() == lowered:
            return u
    return None


def assignment_candidates(users: Iterable[User], actor_id: str) -> list[User]:
    """Everyone except the acting user. May well be empty."""
    return [u for u in users if u.id != actor_id]


async def load_assignment_candidates(directory: UserDirectory, actor_id: str) -> list[User]:
    """
    Fetch directory users that the actor could assign a task to.

    An unreachable directory is treated like an empty one: the caller simply
    has nobody to pick, and task creation still works unassigned.
    """
    try:
        users = await directory.list_users()
    except StoreError:
        logger.exception("list_users failed; no assignment candidates available")
        return []
    candidates = assignment_candidates(users, actor_id)
    if not candidates:
        logger.info("No assignment candidates available for user=%s", actor_id)
    return candidates

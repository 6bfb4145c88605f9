# src/taskmate/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .models import Actor, FilterMode, User

if TYPE_CHECKING:
    from ..storage.sqlite_store import SqliteRemoteStore
    from ..tasks.task_board import TaskBoard


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: SqliteRemoteStore

    # Set once a session is started (see cli.bootstrap.start_session).
    actor: Actor | None = None
    board: TaskBoard | None = None

    filter_mode: FilterMode = FilterMode.ALL
    users: list[User] = field(default_factory=list)

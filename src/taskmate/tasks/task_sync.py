# src/taskmate/tasks/task_sync.py

from __future__ import annotations

"""
Task synchronizer.

Owns the canonical in-memory collection of tasks visible to one actor:
- remote change-feed events (inserted / updated / deleted),
- acknowledged local writes (upsert_local / remove_local),
- wholesale snapshots at (re)connect.

Only confirmed state lives here. Nothing is applied before the store has
acknowledged the write, so there is never anything to roll back.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from ..core.models import TASKS_TABLE, ChangeEvent, ChangeKind, FilterMode, Task
from .task_filter import filter_tasks

logger = logging.getLogger(__name__)


def _snapshot_key(task: Task) -> tuple[float, int]:
    ts = task.created_at.timestamp() if task.created_at is not None else float("-inf")
    return ts, task.id


class TaskSynchronizer:
    def __init__(self, *, name: str = "tasks") -> None:
        self._name = name
        # Display order: most recent first. Position lookup by id is linear; the
        # collection is one user's task list.
        self._items: list[Task] = []
        self._closed = False

    # ---- reads ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, task_id: int) -> Task | None:
        idx = self._index_of(task_id)
        return self._items[idx] if idx is not None else None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, task_id: object) -> bool:
        return isinstance(task_id, int) and self._index_of(task_id) is not None

    def visible(self, mode: FilterMode | str, now: datetime, *, viewer_id: str | None = None) -> list[Task]:
        return filter_tasks(self._items, mode, now, viewer_id=viewer_id)

    # ---- mutations ----

    def load_snapshot(self, rows: Iterable[Mapping[str, Any] | Task]) -> None:
        if self._guard("load_snapshot"):
            return
        tasks = [r if isinstance(r, Task) else Task.from_row(r) for r in rows]

        # Last occurrence of an id wins.
        by_id: dict[int, Task] = {}
        for t in tasks:
            by_id[t.id] = t

        self._items = sorted(by_id.values(), key=_snapshot_key, reverse=True)
        logger.info("%s snapshot loaded: %d task(s)", self._name, len(self._items))

    def apply_remote_event(self, event: ChangeEvent) -> None:
        if self._guard("apply_remote_event"):
            return
        if event.table != TASKS_TABLE:
            logger.debug("%s ignoring event for table=%s", self._name, event.table)
            return

        if event.kind == ChangeKind.DELETED:
            task_id = event.row_id
            if task_id is None:
                logger.warning("%s delete event without id ignored", self._name)
                return
            self._remove(task_id)
            return

        try:
            task = Task.from_row(event.row)
        except (KeyError, TypeError, ValueError):
            logger.warning("%s malformed %s event ignored: %r", self._name, event.kind.value, event.row)
            return

        if event.kind == ChangeKind.INSERTED:
            self._upsert(task)
        elif event.kind == ChangeKind.UPDATED:
            idx = self._index_of(task.id)
            if idx is None:
                logger.debug("%s update for unknown id=%s ignored", self._name, task.id)
                return
            self._items[idx] = task

    def upsert_local(self, task: Task) -> None:
        if self._guard("upsert_local"):
            return
        self._upsert(task)

    def remove_local(self, task_id: int) -> None:
        if self._guard("remove_local"):
            return
        self._remove(task_id)

    def close(self) -> None:
        """After close every mutation is a no-op; late results are discarded."""
        self._closed = True
        logger.debug("%s synchronizer closed", self._name)

    # ---- internals ----

    def _guard(self, op: str) -> bool:
        if self._closed:
            logger.debug("%s closed; %s discarded", self._name, op)
            return True
        return False

    def _index_of(self, task_id: int) -> int | None:
        for i, t in enumerate(self._items):
            if t.id == task_id:
                return i
        return None

    def _upsert(self, task: Task) -> None:
        idx = self._index_of(task.id)
        if idx is None:
            self._items.insert(0, task)
        else:
            self._items[idx] = task

    def _remove(self, task_id: int) -> None:
        idx = self._index_of(task_id)
        if idx is not None:
            del self._items[idx]

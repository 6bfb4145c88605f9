# src/taskmate/tasks/task_board.py

from __future__ import annotations

"""
Task board: the owning view for one actor.

Wires together
- one TaskSynchronizer (canonical collection),
- one AssignmentValidator (create / assign with the missing-user fallback),
- one change-feed subscription for tasks the actor owns or is assigned,
- one NotificationFeed for the actor's inbox.

close() tears all of it down: subscriptions are closed, pumps cancelled and
the synchronizer stops accepting results from writes still in flight.
"""

import asyncio
import logging
from datetime import datetime

from ..core.errors import StoreError, StoreErrorKind, TaskPermissionError
from ..core.feed import pump_events
from ..core.models import TASKS_TABLE, Actor, FilterMode, Task
from ..core.ports import RemoteStore, Subscription
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.feed import DEFAULT_LIMIT, NotificationFeed
from .assignment import AssignmentResult, AssignmentValidator
from .task_sync import TaskSynchronizer

logger = logging.getLogger(__name__)


class TaskBoard:
    def __init__(
        self,
        store: RemoteStore,
        actor: Actor,
        *,
        dispatcher: NotificationDispatcher | None = None,
        notification_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._store = store
        self.actor = actor
        self.sync = TaskSynchronizer(name=f"tasks:{actor.id}")
        self.validator = AssignmentValidator(
            store,
            dispatcher if dispatcher is not None else NotificationDispatcher(store),
            self.sync,
        )
        self.notifications = NotificationFeed(store, actor.id, limit=notification_limit)
        self._subscription: Subscription | None = None
        self._pump: asyncio.Task[None] | None = None
        self._opened = False

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self.sync.tasks

    def visible(self, mode: FilterMode | str = FilterMode.ALL, now: datetime | None = None) -> list[Task]:
        return self.sync.visible(mode, now or datetime.now().astimezone(), viewer_id=self.actor.id)

    # ---- lifecycle ----

    async def open(self) -> None:
        """
        Subscribe before loading the snapshot so nothing committed in between is
        lost; queued events are applied after the snapshot, in order.
        """
        if self._opened:
            return
        me = self.actor.id
        self._subscription = self._store.subscribe(
            TASKS_TABLE,
            lambda row: row.get("user_id") == me or row.get("assigned_to") == me,
        )
        try:
            await self.reload()
            self._pump = asyncio.create_task(
                pump_events(self._subscription, self.sync.apply_remote_event, name=f"tasks:{me}")
            )
            await self.notifications.open()
        except BaseException:
            logger.warning("Task board open failed user=%s; tearing down", me)
            await self.close()
            raise
        self._opened = True
        logger.info("Task board opened user=%s tasks=%d", me, len(self.sync))

    async def reload(self) -> None:
        me = self.actor.id
        rows = await self._store.select(
            TASKS_TABLE,
            match_any={"user_id": me, "assigned_to": me},
            order_by="inserted_at",
            descending=True,
        )
        self.sync.load_snapshot(rows)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
        self.sync.close()
        await self.notifications.close()
        self._opened = False
        logger.info("Task board closed user=%s", self.actor.id)

    async def __aenter__(self) -> TaskBoard:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ---- intents ----

    async def create_task(
        self,
        description: str,
        assignee: str | None = None,
        due_date: datetime | None = None,
    ) -> AssignmentResult:
        return await self.validator.create_task(description, assignee, due_date, actor=self.actor)

    async def set_assignee(self, task_id: int, assignee: str | None) -> AssignmentResult:
        self._require_participant(task_id)
        return await self.validator.set_assignee(task_id, assignee, actor=self.actor)

    async def set_due_date(self, task_id: int, due_date: datetime | None) -> Task:
        self._require_participant(task_id)
        return await self._update_one(task_id, {"due_date": due_date})

    async def toggle_complete(self, task_id: int) -> Task:
        current = self._require_participant(task_id)
        return await self._update_one(task_id, {"is_complete": not current.is_complete})

    async def delete_task(self, task_id: int) -> None:
        current = self._known(task_id)
        if current.creator_id != self.actor.id:
            raise TaskPermissionError(f"only the creator can delete task {task_id}")
        await self._store.delete(TASKS_TABLE, task_id)
        self.sync.remove_local(task_id)
        logger.info("Task %s deleted by %s", task_id, self.actor.id)

    # ---- internals ----

    def _known(self, task_id: int) -> Task:
        task = self.sync.get(task_id)
        if task is None:
            raise StoreError(f"task {task_id} not found", kind=StoreErrorKind.NOT_FOUND)
        return task

    def _require_participant(self, task_id: int) -> Task:
        task = self._known(task_id)
        if self.actor.id not in (task.owner_id, task.assignee_id):
            raise TaskPermissionError(f"task {task_id} can only be changed by its owner or assignee")
        return task

    async def _update_one(self, task_id: int, patch: dict) -> Task:
        rows = await self._store.update(TASKS_TABLE, patch, match_all={"id": task_id})
        if not rows:
            raise StoreError(f"task {task_id} not found", kind=StoreErrorKind.NOT_FOUND)
        task = Task.from_row(rows[0])
        self.sync.upsert_local(task)
        logger.debug("Task %s updated fields=%s", task_id, ",".join(patch))
        return task

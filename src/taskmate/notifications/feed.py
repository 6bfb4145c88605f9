# src/taskmate/notifications/feed.py

from __future__ import annotations

"""
Per-recipient notification feed.

Holds the newest `limit` notifications of one user, merged with a live
INSERT-only subscription. Read-state changes come only from mark_read /
mark_all_read on this instance; remote UPDATE events are not consumed.
"""

import asyncio
import logging
from dataclasses import replace

from ..core.feed import pump_events
from ..core.models import NOTIFICATIONS_TABLE, ChangeEvent, ChangeKind, Notification
from ..core.ports import RemoteStore, Subscription

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


class NotificationFeed:
    def __init__(self, store: RemoteStore, recipient_id: str, *, limit: int = DEFAULT_LIMIT) -> None:
        self._store = store
        self._recipient = recipient_id
        self._limit = max(1, int(limit))
        self._items: list[Notification] = []
        self._unread = 0
        self._subscription: Subscription | None = None
        self._pump: asyncio.Task[None] | None = None
        self._closed = False

    # ---- reads ----

    @property
    def recipient_id(self) -> str:
        return self._recipient

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    @property
    def unread_count(self) -> int:
        return self._unread

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- lifecycle ----

    async def open(self) -> None:
        """Subscribe, load the initial page, then start consuming inserts."""
        recipient = self._recipient
        self._subscription = self._store.subscribe(
            NOTIFICATIONS_TABLE,
            lambda row: row.get("user_id") == recipient,
            events=[ChangeKind.INSERTED],
        )
        try:
            await self.load()
        except BaseException:
            await self.close()
            raise
        self._pump = asyncio.create_task(
            pump_events(self._subscription, self.apply_remote_event, name=f"notifications:{recipient}")
        )

    async def load(self) -> None:
        rows = await self._store.select(
            NOTIFICATIONS_TABLE,
            match_all={"user_id": self._recipient},
            order_by="created_at",
            descending=True,
            limit=self._limit,
        )
        if self._closed:
            return
        self._items = [Notification.from_row(r) for r in rows]
        self._recount()
        logger.info(
            "Notifications loaded user=%s total=%d unread=%d",
            self._recipient,
            len(self._items),
            self._unread,
        )

    async def close(self) -> None:
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
        logger.debug("Notification feed closed user=%s", self._recipient)

    # ---- feed ----

    def apply_remote_event(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        if event.table != NOTIFICATIONS_TABLE or event.kind != ChangeKind.INSERTED:
            return
        if event.row.get("user_id") != self._recipient:
            return
        self._add(Notification.from_row(event.row))

    def _add(self, note: Notification) -> None:
        if any(n.id == note.id for n in self._items):
            logger.debug("Duplicate notification %s ignored", note.id)
            return
        self._items.insert(0, note)
        del self._items[self._limit :]
        self._recount()

    # ---- read state ----

    async def mark_read(self, notification_id: int) -> None:
        """Raises StoreError on failure; local state is then untouched."""
        await self._store.update(
            NOTIFICATIONS_TABLE,
            {"is_read": True},
            match_all={"id": notification_id, "user_id": self._recipient},
        )
        if self._closed:
            return
        self._set_read(lambda n: n.id == notification_id)

    async def mark_all_read(self) -> None:
        """Raises StoreError on failure; local state is then untouched."""
        await self._store.update(
            NOTIFICATIONS_TABLE,
            {"is_read": True},
            match_all={"user_id": self._recipient, "is_read": False},
        )
        if self._closed:
            return
        self._set_read(lambda n: True)
        logger.info("All notifications marked read user=%s", self._recipient)

    def _set_read(self, pick) -> None:
        self._items = [replace(n, is_read=True) if pick(n) and not n.is_read else n for n in self._items]
        self._recount()

    def _recount(self) -> None:
        self._unread = sum(1 for n in self._items if not n.is_read)

# src/taskmate/core/feed.py

from __future__ import annotations

"""
Change feed plumbing.

- QueueSubscription: a Subscription backed by an asyncio.Queue, closed explicitly.
- FeedHub: fan-out of committed changes to every open subscription whose
  table, event kind and row predicate match.
- pump_events: drains a subscription into a handler, strictly in arrival order.

Cancel the pump task (or close the subscription) to stop it.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Collection

from .models import ChangeEvent, ChangeKind
from .ports import ALL_CHANGES, RowPredicate, Subscription

logger = logging.getLogger(__name__)

_CLOSED = object()


class QueueSubscription:
    def __init__(
        self,
        table: str,
        predicate: RowPredicate | None = None,
        *,
        events: Collection[ChangeKind] = ALL_CHANGES,
        on_close: Callable[[QueueSubscription], None] | None = None,
    ) -> None:
        self.table = table
        self.predicate = predicate
        self.events = frozenset(events)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table or event.kind not in self.events:
            return False
        if self.predicate is None:
            return True
        try:
            return bool(self.predicate(event.row))
        except Exception:
            logger.exception("Subscription predicate failed table=%s kind=%s", self.table, event.kind)
            return False

    def offer(self, event: ChangeEvent) -> bool:
        """Queue the event if it matches. Returns True when queued."""
        if self._closed or not self.matches(event):
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake up a pending iterator.
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)
        logger.debug("Subscription closed table=%s", self.table)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while not self._closed:
            item = await self._queue.get()
            if self._closed or not isinstance(item, ChangeEvent):
                return
            yield item


class FeedHub:
    """In-process broadcaster used by store adapters that have no native feed."""

    def __init__(self) -> None:
        self._subs: list[QueueSubscription] = []

    def subscribe(
        self,
        table: str,
        predicate: RowPredicate | None = None,
        *,
        events: Collection[ChangeKind] = ALL_CHANGES,
    ) -> QueueSubscription:
        sub = QueueSubscription(table, predicate, events=events, on_close=self._remove)
        self._subs.append(sub)
        logger.debug(
            "Subscribed table=%s events=%s total=%d",
            table,
            ",".join(sorted(e.value for e in sub.events)),
            len(self._subs),
        )
        return sub

    def _remove(self, sub: QueueSubscription) -> None:
        try:
            self._subs.remove(sub)
        except ValueError:
            pass

    def publish(self, event: ChangeEvent) -> int:
        delivered = 0
        for sub in list(self._subs):
            if sub.offer(event):
                delivered += 1
        logger.debug(
            "Published %s table=%s id=%s delivered=%d",
            event.kind.value,
            event.table,
            event.row_id,
            delivered,
        )
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def close_all(self) -> None:
        for sub in list(self._subs):
            sub.close()


async def pump_events(
    subscription: Subscription,
    handler: Callable[[ChangeEvent], None],
    *,
    name: str = "feed",
) -> None:
    """
    Deliver events to `handler` one at a time, in arrival order.
    A handler failure is logged and the pump moves on to the next event.
    """
    logger.debug("Pump %s started", name)
    try:
        async for event in subscription:
            try:
                handler(event)
            except Exception:
                logger.exception("Pump %s handler failed kind=%s id=%s", name, event.kind.value, event.row_id)
    finally:
        logger.debug("Pump %s stopped", name)

# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from taskmate.core.errors import StoreError, StoreErrorKind
from taskmate.core.models import ChangeEvent, ChangeKind, Row
from taskmate.core.ports import ALL_CHANGES, RowPredicate, Subscription
from taskmate.storage.sqlite_store import SqliteRemoteStore


@dataclass(slots=True)
class DispatchCall:
    task_id: int
    recipient: str
    task_title: str
    actor_label: str


@dataclass(slots=True)
class RecordingDispatcher:
    """
    Fake notification sink used by validator tests.

    - Captures calls for assertions
    - `fail=True` makes every call raise, like a crashing transport
    """

    calls: list[DispatchCall] = field(default_factory=list)
    fail: bool = False

    async def notify_assignment(
        self,
        task_id: int,
        recipient: str,
        task_title: str,
        actor_label: str,
    ) -> object:
        self.calls.append(DispatchCall(task_id, recipient, task_title, actor_label))
        if self.fail:
            raise RuntimeError("dispatch transport down")
        return object()


class FaultyStore:
    """
    Wraps a real store and injects failures.

    fail_next("insert", StoreError(...)) makes the next insert raise that error
    without touching the wrapped store; `table=` restricts it to one table.
    Calls are recorded per operation.
    """

    def __init__(self, inner: SqliteRemoteStore) -> None:
        self.inner = inner
        self.calls: list[tuple[str, str]] = []
        self._faults: dict[str, list[tuple[str | None, Exception]]] = {}

    def fail_next(self, op: str, error: Exception | None = None, *, table: str | None = None) -> None:
        err = error or StoreError("service unavailable", kind=StoreErrorKind.UNAVAILABLE)
        self._faults.setdefault(op, []).append((table, err))

    def _maybe_fail(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        pending = self._faults.get(op, [])
        for i, (only, err) in enumerate(pending):
            if only is None or only == table:
                del pending[i]
                raise err

    def count(self, op: str, table: str | None = None) -> int:
        return sum(1 for o, t in self.calls if o == op and (table is None or t == table))

    async def select(self, table: str, **kwargs: Any) -> list[Row]:
        self._maybe_fail("select", table)
        return await self.inner.select(table, **kwargs)

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        self._maybe_fail("insert", table)
        return await self.inner.insert(table, row)

    async def update(self, table: str, patch: Mapping[str, Any], *, match_all: Mapping[str, Any]) -> list[Row]:
        self._maybe_fail("update", table)
        return await self.inner.update(table, patch, match_all=match_all)

    async def delete(self, table: str, row_id: int) -> None:
        self._maybe_fail("delete", table)
        await self.inner.delete(table, row_id)

    def subscribe(
        self,
        table: str,
        predicate: RowPredicate | None = None,
        *,
        events: Collection[ChangeKind] = ALL_CHANGES,
    ) -> Subscription:
        return self.inner.subscribe(table, predicate, events=events)


def task_row(
    task_id: int,
    *,
    owner: str = "u-alice",
    assignee: str | None = None,
    due: datetime | None = None,
    complete: bool = False,
    created: datetime | None = None,
    text: str | None = None,
) -> Row:
    return {
        "id": task_id,
        "task": text or f"task number {task_id}",
        "user_id": owner,
        "created_by": owner,
        "assigned_to": assignee,
        "due_date": due.isoformat() if due else None,
        "is_complete": complete,
        "inserted_at": (created or datetime(2024, 1, 1, 12, 0)).isoformat(),
    }


async def next_event(sub: Subscription, timeout: float = 1.0) -> ChangeEvent:
    return await asyncio.wait_for(sub.__aiter__().__anext__(), timeout)


async def wait_until(cond: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until `cond()` holds (feeds deliver asynchronously)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)

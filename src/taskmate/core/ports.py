# src/taskmate/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the remote store and user directory swappable and makes testing easier.
"""

from collections.abc import AsyncIterator, Callable, Collection, Mapping
from typing import Any, Protocol

from .models import ChangeEvent, ChangeKind, Row, User

RowPredicate = Callable[[Row], bool]

ALL_CHANGES: frozenset[ChangeKind] = frozenset(ChangeKind)


class Subscription(Protocol):
    """
    Cancellable stream of change events.

    Iterating yields events in the order the store emitted them.
    Iteration ends once close() has been called.
    """

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...
    def close(self) -> None: ...

    @property
    def closed(self) -> bool: ...


class RemoteStore(Protocol):
    """
    Row-level CRUD + change feed over named tables.

    Every method may raise StoreError; adapters classify failures into
    StoreErrorKind so the core never inspects message text.
    """

    async def select(
            self,
            table: str,
            *,
            match_all: Mapping[str, Any] | None = None,
            match_any: Mapping[str, Any] | None = None,
            order_by: str | None = None,
            descending: bool = False,
            limit: int | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def update(
            self,
            table: str,
            patch: Mapping[str, Any],
            *,
            match_all: Mapping[str, Any],
    ) -> list[Row]: ...

    async def delete(self, table: str, row_id: int) -> None: ...

    def subscribe(
            self,
            table: str,
            predicate: RowPredicate | None = None,
            *,
            events: Collection[ChangeKind] = ALL_CHANGES,
    ) -> Subscription: ...


class UserDirectory(Protocol):
    """
    Black-box "list users" call.

    May return an empty list when the caller lacks privilege; that means
    "no assignment candidates", not an error.
    """

    async def list_users(self) -> list[User]: ...


class NotificationSink(Protocol):
    """What the assignment validator needs from the notification dispatcher."""

    async def notify_assignment(
            self,
            task_id: int,
            recipient: str,
            task_title: str,
            actor_label: str,
    ) -> Any: ...

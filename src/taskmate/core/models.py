# src/taskmate/core/models.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

Row = dict[str, Any]
# Plain column -> value mapping, as exchanged with the remote store.

TASKS_TABLE = "todos"
NOTIFICATIONS_TABLE = "notifications"
USERS_TABLE = "users"


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_ts(raw: Any) -> datetime | None:
    """
    Best-effort timestamp coercion for values coming out of the store.

    Accepts datetime, date (midnight), ISO-8601 strings (with or without a
    trailing 'Z') and None. Anything unparseable becomes None.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    try:
        return datetime.fromisoformat(str(raw).strip())
    except ValueError:
        return None


def format_ts(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


class FilterMode(StrEnum):
    ALL = "all"
    ASSIGNED_TO_ME = "assignedToMe"
    CREATED_BY_ME = "createdByMe"
    OVERDUE = "overdue"
    DUE_TODAY = "dueToday"

    @classmethod
    def parse(cls, raw: str | None) -> FilterMode:
        """Lenient lookup by value or name; unknown input maps to ALL."""
        if not raw:
            return cls.ALL
        s = str(raw).strip()
        try:
            return cls(s)
        except ValueError:
            pass
        key = s.replace("-", "_").upper()
        for mode in cls:
            if mode.name == key or mode.value.lower() == s.lower():
                return mode
        return cls.ALL


class ChangeKind(StrEnum):
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """
    One row-level change delivered by a change feed.

    `row` is the new row for inserted/updated, the old row for deleted.
    """

    table: str
    kind: ChangeKind
    row: Row

    @property
    def row_id(self) -> int | None:
        raw = self.row.get("id")
        try:
            return int(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None

    @classmethod
    def inserted(cls, table: str, row: Mapping[str, Any]) -> ChangeEvent:
        return cls(table=table, kind=ChangeKind.INSERTED, row=dict(row))

    @classmethod
    def updated(cls, table: str, row: Mapping[str, Any]) -> ChangeEvent:
        return cls(table=table, kind=ChangeKind.UPDATED, row=dict(row))

    @classmethod
    def deleted(cls, table: str, row_id: int, old: Mapping[str, Any] | None = None) -> ChangeEvent:
        row = dict(old or {})
        row["id"] = row_id
        return cls(table=table, kind=ChangeKind.DELETED, row=row)


@dataclass(slots=True, frozen=True)
class Task:
    id: int
    description: str
    owner_id: str
    creator_id: str
    assignee_id: str | None
    due_date: datetime | None
    is_complete: bool
    created_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Task:
        owner = str(row.get("user_id") or "")
        return cls(
            id=int(row["id"]),
            description=str(row.get("task") or ""),
            owner_id=owner,
            creator_id=str(row.get("created_by") or owner),
            assignee_id=row.get("assigned_to") or None,
            due_date=parse_ts(row.get("due_date")),
            is_complete=bool(row.get("is_complete") or False),
            created_at=parse_ts(row.get("inserted_at")),
        )

    def to_row(self) -> Row:
        return {
            "id": self.id,
            "task": self.description,
            "user_id": self.owner_id,
            "created_by": self.creator_id,
            "assigned_to": self.assignee_id,
            "due_date": format_ts(self.due_date),
            "is_complete": self.is_complete,
            "inserted_at": format_ts(self.created_at),
        }

    @property
    def title(self) -> str:
        return self.description.strip() or "Untitled task"


@dataclass(slots=True, frozen=True)
class Notification:
    id: int
    recipient_id: str
    task_id: int
    message: str
    is_read: bool
    created_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Notification:
        return cls(
            id=int(row["id"]),
            recipient_id=str(row.get("user_id") or ""),
            task_id=int(row.get("task_id") or 0),
            message=str(row.get("message") or ""),
            is_read=bool(row.get("is_read") or False),
            created_at=parse_ts(row.get("created_at")),
        )


@dataclass(slots=True, frozen=True)
class User:
    """Read-only projection of a directory entry."""

    id: str
    email: str
    name: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> User:
        return cls(
            id=str(row["id"]),
            email=str(row.get("email") or ""),
            name=row.get("name") or None,
        )


@dataclass(slots=True, frozen=True)
class Actor:
    """The authenticated user on whose behalf the core acts."""

    id: str
    label: str

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(id=user.id, label=user.email or user.name or "A user")

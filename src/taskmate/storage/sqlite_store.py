# src/taskmate/storage/sqlite_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import uuid
from collections.abc import Collection, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..core.errors import StoreError, StoreErrorKind
from ..core.feed import FeedHub, QueueSubscription
from ..core.models import (
    NOTIFICATIONS_TABLE,
    TASKS_TABLE,
    USERS_TABLE,
    ChangeEvent,
    ChangeKind,
    Row,
    User,
    utcnow,
)
from ..core.ports import ALL_CHANGES, RowPredicate

logger = logging.getLogger(__name__)

_COLUMNS: dict[str, frozenset[str]] = {
    USERS_TABLE: frozenset({"id", "email", "name", "created_at"}),
    TASKS_TABLE: frozenset(
        {"id", "task", "user_id", "created_by", "assigned_to", "due_date", "is_complete", "inserted_at"}
    ),
    NOTIFICATIONS_TABLE: frozenset({"id", "user_id", "task_id", "message", "is_read", "created_at"}),
}

# Columns the store assigns itself on insert.
_CREATED_COLUMN = {
    USERS_TABLE: "created_at",
    TASKS_TABLE: "inserted_at",
    NOTIFICATIONS_TABLE: "created_at",
}

_BOOL_COLUMNS = frozenset({"is_complete", "is_read"})


def _classify(exc: sqlite3.Error) -> StoreErrorKind:
    code = getattr(exc, "sqlite_errorcode", None)
    if code == sqlite3.SQLITE_CONSTRAINT_FOREIGNKEY:
        return StoreErrorKind.REFERENTIAL_INTEGRITY
    if isinstance(exc, sqlite3.IntegrityError):
        return StoreErrorKind.CONSTRAINT
    if isinstance(exc, sqlite3.OperationalError):
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.OTHER


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SqliteRemoteStore:
    """
    SQLite-backed remote store with an in-process change feed.

    Plays the part of the hosted backend: row CRUD over the `users`, `todos`
    and `notifications` tables, foreign keys enforced, and every committed
    write published to matching subscriptions.

    Thread-safety:
    - each blocking call opens its own SQLite connection and runs in a worker thread
    - writes are serialized so change events go out in commit order
    """

    def __init__(self, db_path: str | Path = "taskmate.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._hub = FeedHub()
        self._write_lock = asyncio.Lock()
        self._ensure_schema()
        try:
            total = self.count_rows(TASKS_TABLE)
        except sqlite3.Error:
            total = -1
        logger.info("SqliteRemoteStore ready db=%s tasks=%s", self._db_path, total)

    def close(self) -> None:
        """Close every open subscription (connections are short-lived)."""
        self._hub.close_all()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        # Per-connection setting in SQLite; without it REFERENCES is not enforced.
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS todos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task TEXT NOT NULL CHECK (length(trim(task)) > 0),
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    is_complete INTEGER NOT NULL DEFAULT 0,
                    inserted_at TEXT NOT NULL
                )
                """
            )

            # Migrations (safe): columns added after the first release.
            cur.execute("PRAGMA table_info(todos)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE todos ADD COLUMN {name} {decl}")
                logger.info("SqliteRemoteStore migration: added column todos.%s", name)

            add_col("assigned_to", "TEXT REFERENCES users(id) ON DELETE SET NULL")
            add_col("due_date", "TEXT")
            add_col("created_by", "TEXT REFERENCES users(id)")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    task_id INTEGER NOT NULL REFERENCES todos(id) ON DELETE CASCADE,
                    message TEXT NOT NULL CHECK (length(message) > 0),
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_todos_owner ON todos(user_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_todos_assignee ON todos(assigned_to)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_recipient "
                "ON notifications(user_id, created_at)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _check_columns(table: str, names: Collection[str]) -> None:
        allowed = _COLUMNS.get(table)
        if allowed is None:
            raise StoreError(f"unknown table: {table}", kind=StoreErrorKind.NOT_FOUND)
        unknown = [n for n in names if n not in allowed]
        if unknown:
            raise StoreError(
                f"unknown column(s) for {table}: {', '.join(sorted(unknown))}",
                kind=StoreErrorKind.CONSTRAINT,
            )

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Row:
        out: Row = {}
        for key in row.keys():
            val = row[key]
            out[key] = bool(val) if key in _BOOL_COLUMNS and val is not None else val
        return out

    @staticmethod
    def _where(match_all: Mapping[str, Any] | None, match_any: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        def cond(col: str, val: Any) -> str:
            if val is None:
                return f"{col} IS NULL"
            params.append(_encode(val))
            return f"{col} = ?"

        for col, val in (match_all or {}).items():
            clauses.append(cond(col, val))

        if match_any:
            ors = [cond(col, val) for col, val in match_any.items()]
            clauses.append("(" + " OR ".join(ors) + ")")

        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _run(self, fn, *args: Any) -> Any:
        try:
            return fn(*args)
        except StoreError:
            raise
        except sqlite3.Error as e:
            kind = _classify(e)
            logger.debug("SQLite error kind=%s: %s", kind.value, e)
            raise StoreError(str(e), kind=kind) from e

    # ---- blocking bodies (run in worker threads) ----

    def _select_sync(
        self,
        table: str,
        match_all: Mapping[str, Any] | None,
        match_any: Mapping[str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Row]:
        cols = list(match_all or {}) + list(match_any or {})
        if order_by:
            cols.append(order_by)
        self._check_columns(table, cols)

        where, params = self._where(match_all, match_any)
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} {direction}, id {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            return [self._row_to_dict(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _insert_sync(self, table: str, row: Mapping[str, Any]) -> Row:
        data = {k: v for k, v in row.items() if k != "id" or table == USERS_TABLE}
        created_col = _CREATED_COLUMN.get(table)
        if created_col is not None:
            data[created_col] = utcnow()
        self._check_columns(table, data)

        names = list(data)
        placeholders = ", ".join("?" for _ in names)
        sql = f"INSERT INTO {table}({', '.join(names)}) VALUES ({placeholders})"

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, [_encode(data[n]) for n in names])
            conn.commit()
            if table == USERS_TABLE:
                key: Any = data["id"]
            else:
                key = cur.lastrowid
                if key is None:
                    raise StoreError(f"SQLite did not return lastrowid for {table} insert")
            fetched = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (key,)).fetchone()
            return self._row_to_dict(fetched)
        finally:
            conn.close()

    def _update_sync(self, table: str, patch: Mapping[str, Any], match_all: Mapping[str, Any]) -> list[Row]:
        if not match_all:
            raise StoreError("update requires a non-empty match", kind=StoreErrorKind.CONSTRAINT)
        fields = {k: v for k, v in patch.items() if k != "id"}
        if not fields:
            raise StoreError("update requires a non-empty patch", kind=StoreErrorKind.CONSTRAINT)
        self._check_columns(table, list(fields) + list(match_all))

        where, where_params = self._where(match_all, None)
        sets = ", ".join(f"{k} = ?" for k in fields)

        conn = self._get_conn()
        try:
            ids = [r["id"] for r in conn.execute(f"SELECT id FROM {table}{where}", where_params).fetchall()]
            if not ids:
                return []
            id_marks = ", ".join("?" for _ in ids)
            conn.execute(
                f"UPDATE {table} SET {sets} WHERE id IN ({id_marks})",
                [_encode(v) for v in fields.values()] + ids,
            )
            conn.commit()
            cur = conn.execute(f"SELECT * FROM {table} WHERE id IN ({id_marks}) ORDER BY id", ids)
            return [self._row_to_dict(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _delete_sync(self, table: str, row_id: Any) -> Row | None:
        self._check_columns(table, ["id"])
        conn = self._get_conn()
        try:
            old = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
            if old is None:
                return None
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            conn.commit()
            return self._row_to_dict(old)
        finally:
            conn.close()

    # ---- public API (RemoteStore) ----

    async def select(
        self,
        table: str,
        *,
        match_all: Mapping[str, Any] | None = None,
        match_any: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        return await asyncio.to_thread(
            self._run, self._select_sync, table, match_all, match_any, order_by, descending, limit
        )

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        async with self._write_lock:
            created = await asyncio.to_thread(self._run, self._insert_sync, table, row)
            logger.debug("Inserted %s id=%s", table, created.get("id"))
            self._hub.publish(ChangeEvent.inserted(table, created))
            return created

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        *,
        match_all: Mapping[str, Any],
    ) -> list[Row]:
        async with self._write_lock:
            rows = await asyncio.to_thread(self._run, self._update_sync, table, patch, match_all)
            logger.debug("Updated %s rows=%d fields=%s", table, len(rows), ",".join(patch))
            for r in rows:
                self._hub.publish(ChangeEvent.updated(table, r))
            return rows

    async def delete(self, table: str, row_id: int) -> None:
        async with self._write_lock:
            old = await asyncio.to_thread(self._run, self._delete_sync, table, row_id)
            if old is None:
                logger.debug("Delete %s id=%s: no such row", table, row_id)
                return
            logger.debug("Deleted %s id=%s", table, row_id)
            self._hub.publish(ChangeEvent.deleted(table, row_id, old))

    def subscribe(
        self,
        table: str,
        predicate: RowPredicate | None = None,
        *,
        events: Collection[ChangeKind] = ALL_CHANGES,
    ) -> QueueSubscription:
        self._check_columns(table, [])
        return self._hub.subscribe(table, predicate, events=events)

    @property
    def subscriber_count(self) -> int:
        return self._hub.subscriber_count

    # ---- user directory ----

    async def list_users(self) -> list[User]:
        rows = await self.select(USERS_TABLE, order_by="email")
        return [User.from_row(r) for r in rows]

    async def add_user(self, email: str, name: str | None = None, *, user_id: str | None = None) -> User:
        email = (email or "").strip().lower()
        if not email:
            raise StoreError("email is required", kind=StoreErrorKind.CONSTRAINT)
        row = await self.insert(
            USERS_TABLE,
            {"id": user_id or str(uuid.uuid4()), "email": email, "name": (name or "").strip() or None},
        )
        logger.info("User added id=%s email=%s", row["id"], email)
        return User.from_row(row)

    async def get_user_by_email(self, email: str) -> User | None:
        rows = await self.select(USERS_TABLE, match_all={"email": (email or "").strip().lower()}, limit=1)
        return User.from_row(rows[0]) if rows else None

    # ---- diagnostics ----

    def count_rows(self, table: str) -> int:
        self._check_columns(table, [])
        conn = self._get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            return int(n)
        finally:
            conn.close()

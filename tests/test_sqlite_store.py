# tests/test_sqlite_store.py

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from taskmate.core.errors import StoreError, StoreErrorKind
from taskmate.core.models import NOTIFICATIONS_TABLE, TASKS_TABLE, ChangeKind
from taskmate.storage.sqlite_store import SqliteRemoteStore

from .fakes import next_event


def _todo(owner: str, text: str = "write tests", assignee: str | None = None) -> dict:
    return {"task": text, "user_id": owner, "created_by": owner, "assigned_to": assignee}


@pytest.mark.asyncio
async def test_unknown_assignee_is_classified_as_referential_integrity(store, alice) -> None:
    with pytest.raises(StoreError) as exc:
        await store.insert(TASKS_TABLE, _todo(alice.id, assignee="ghost-user"))
    assert exc.value.kind == StoreErrorKind.REFERENTIAL_INTEGRITY
    assert store.count_rows(TASKS_TABLE) == 0


@pytest.mark.asyncio
async def test_other_constraint_failures_are_not_referential(store, alice) -> None:
    with pytest.raises(StoreError) as exc:
        await store.insert(TASKS_TABLE, _todo(alice.id, text="   "))
    assert exc.value.kind == StoreErrorKind.CONSTRAINT

    with pytest.raises(StoreError) as exc2:
        await store.insert(TASKS_TABLE, {**_todo(alice.id), "colour": "red"})
    assert exc2.value.kind == StoreErrorKind.CONSTRAINT


@pytest.mark.asyncio
async def test_insert_assigns_id_and_timestamp(store, alice, bob) -> None:
    row = await store.insert(TASKS_TABLE, _todo(alice.id, assignee=bob.id))
    assert row["id"] > 0
    assert row["inserted_at"]
    assert row["assigned_to"] == bob.id
    assert row["is_complete"] is False


@pytest.mark.asyncio
async def test_select_match_any_and_order(store, alice, bob, carol) -> None:
    first = await store.insert(TASKS_TABLE, _todo(alice.id, "alice first"))
    await store.insert(TASKS_TABLE, _todo(carol.id, "carol only"))
    assigned = await store.insert(TASKS_TABLE, _todo(carol.id, "carol for alice", assignee=alice.id))

    rows = await store.select(
        TASKS_TABLE,
        match_any={"user_id": alice.id, "assigned_to": alice.id},
        order_by="inserted_at",
        descending=True,
    )
    assert [r["id"] for r in rows] == [assigned["id"], first["id"]]


@pytest.mark.asyncio
async def test_update_returns_rows_and_empty_match(store, alice) -> None:
    row = await store.insert(TASKS_TABLE, _todo(alice.id))
    updated = await store.update(TASKS_TABLE, {"is_complete": True}, match_all={"id": row["id"]})
    assert len(updated) == 1 and updated[0]["is_complete"] is True

    assert await store.update(TASKS_TABLE, {"is_complete": True}, match_all={"id": 999}) == []

    with pytest.raises(StoreError):
        await store.update(TASKS_TABLE, {"is_complete": True}, match_all={})


@pytest.mark.asyncio
async def test_change_feed_respects_predicate_and_kinds(store, alice, bob) -> None:
    mine = store.subscribe(TASKS_TABLE, lambda r: r.get("user_id") == alice.id)
    inserts_only = store.subscribe(TASKS_TABLE, events=[ChangeKind.INSERTED])

    await store.insert(TASKS_TABLE, _todo(bob.id, "bob's own task"))
    row = await store.insert(TASKS_TABLE, _todo(alice.id))
    await store.update(TASKS_TABLE, {"is_complete": True}, match_all={"id": row["id"]})
    await store.delete(TASKS_TABLE, row["id"])

    kinds = [(await next_event(mine)).kind for _ in range(3)]
    assert kinds == [ChangeKind.INSERTED, ChangeKind.UPDATED, ChangeKind.DELETED]

    first = await next_event(inserts_only)
    second = await next_event(inserts_only)
    assert [first.row["user_id"], second.row["user_id"]] == [bob.id, alice.id]
    with pytest.raises(asyncio.TimeoutError):
        await next_event(inserts_only, timeout=0.05)

    mine.close()
    inserts_only.close()


@pytest.mark.asyncio
async def test_delete_event_carries_old_row(store, alice) -> None:
    row = await store.insert(TASKS_TABLE, _todo(alice.id))
    sub = store.subscribe(TASKS_TABLE, lambda r: r.get("user_id") == alice.id, events=[ChangeKind.DELETED])

    await store.delete(TASKS_TABLE, row["id"])
    await store.delete(TASKS_TABLE, row["id"])  # already gone: no second event

    ev = await next_event(sub)
    assert ev.row_id == row["id"]
    with pytest.raises(asyncio.TimeoutError):
        await next_event(sub, timeout=0.05)
    sub.close()


@pytest.mark.asyncio
async def test_closed_subscription_stops_iteration(store, alice) -> None:
    sub = store.subscribe(TASKS_TABLE)
    assert store.subscriber_count == 1
    sub.close()
    sub.close()
    assert store.subscriber_count == 0

    await store.insert(TASKS_TABLE, _todo(alice.id))
    received = [ev async for ev in sub]
    assert received == []


@pytest.mark.asyncio
async def test_deleting_a_task_cascades_to_notifications(store, alice, bob) -> None:
    row = await store.insert(TASKS_TABLE, _todo(alice.id, assignee=bob.id))
    await store.insert(
        NOTIFICATIONS_TABLE,
        {"user_id": bob.id, "task_id": row["id"], "message": "hello", "is_read": False},
    )
    assert store.count_rows(NOTIFICATIONS_TABLE) == 1

    await store.delete(TASKS_TABLE, row["id"])
    assert store.count_rows(NOTIFICATIONS_TABLE) == 0


@pytest.mark.asyncio
async def test_users_directory(store) -> None:
    assert await store.list_users() == []
    u = await store.add_user("  Dana@Example.com ", "Dana")
    assert u.email == "dana@example.com"
    assert (await store.get_user_by_email("DANA@example.com")) == u

    with pytest.raises(StoreError) as exc:
        await store.add_user("dana@example.com")
    assert exc.value.kind == StoreErrorKind.CONSTRAINT


def test_schema_setup_is_repeatable(tmp_path: Path) -> None:
    path = tmp_path / "again.sqlite3"
    SqliteRemoteStore(path)
    again = SqliteRemoteStore(path)
    assert again.count_rows(TASKS_TABLE) == 0


@pytest.mark.asyncio
async def test_events_queued_before_close_are_dropped(store, alice) -> None:
    sub = store.subscribe(TASKS_TABLE)
    await store.insert(TASKS_TABLE, _todo(alice.id))
    await store.insert(TASKS_TABLE, _todo(alice.id, "second task"))

    sub.close()

    assert [ev async for ev in sub] == []

# tests/test_notification_feed.py

from __future__ import annotations

import pytest

from taskmate.core.errors import StoreError
from taskmate.core.models import NOTIFICATIONS_TABLE, TASKS_TABLE, ChangeEvent
from taskmate.notifications.dispatcher import NotificationDispatcher, assignment_message
from taskmate.notifications.feed import NotificationFeed

from .fakes import FaultyStore, wait_until


async def _task_for(store, owner: str, assignee: str) -> int:
    row = await store.insert(
        TASKS_TABLE,
        {"task": "Prepare slides", "user_id": owner, "created_by": owner, "assigned_to": assignee},
    )
    return row["id"]


async def _notify(store, recipient: str, task_id: int, message: str, *, is_read: bool = False) -> dict:
    return await store.insert(
        NOTIFICATIONS_TABLE,
        {"user_id": recipient, "task_id": task_id, "message": message, "is_read": is_read},
    )


def test_assignment_message_format_and_fallbacks() -> None:
    assert assignment_message("alice@example.com", "Buy milk") == 'alice@example.com assigned you a task: "Buy milk"'
    assert assignment_message("", "  ") == 'A user assigned you a task: "Untitled task"'


@pytest.mark.asyncio
async def test_load_is_capped_and_newest_first(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    for i in range(5):
        await _notify(store, bob.id, task_id, f"note {i}", is_read=(i == 0))

    feed = NotificationFeed(store, bob.id, limit=3)
    await feed.load()

    assert [n.message for n in feed.notifications] == ["note 4", "note 3", "note 2"]
    assert feed.unread_count == 3


@pytest.mark.asyncio
async def test_live_inserts_for_recipient_only(store, alice, bob, carol) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    feed = NotificationFeed(store, bob.id)
    await feed.open()
    try:
        assert feed.notifications == ()

        await NotificationDispatcher(store).notify_assignment(task_id, carol.id, "Prepare slides", alice.label)
        note = await NotificationDispatcher(store).notify_assignment(task_id, bob.id, "Prepare slides", alice.label)
        assert note is not None

        await wait_until(lambda: feed.unread_count == 1)
        assert [n.id for n in feed.notifications] == [note.id]
        assert feed.notifications[0].message == 'alice@example.com assigned you a task: "Prepare slides"'
    finally:
        await feed.close()


@pytest.mark.asyncio
async def test_duplicate_insert_is_ignored(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    row = await _notify(store, bob.id, task_id, "hello")
    feed = NotificationFeed(store, bob.id)
    await feed.load()

    feed.apply_remote_event(ChangeEvent.inserted(NOTIFICATIONS_TABLE, row))

    assert len(feed.notifications) == 1
    assert feed.unread_count == 1


@pytest.mark.asyncio
async def test_live_insert_past_the_cap_drops_the_oldest(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    first = await _notify(store, bob.id, task_id, "first")
    second = await _notify(store, bob.id, task_id, "second")
    feed = NotificationFeed(store, bob.id, limit=2)
    await feed.open()
    try:
        third = await _notify(store, bob.id, task_id, "third")
        await wait_until(lambda: feed.notifications[0].id == third["id"])

        assert [n.id for n in feed.notifications] == [third["id"], second["id"]]
        assert first["id"] not in {n.id for n in feed.notifications}
        assert feed.unread_count == 2
    finally:
        await feed.close()


@pytest.mark.asyncio
async def test_mark_read_updates_store_and_counter(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    a = await _notify(store, bob.id, task_id, "a")
    await _notify(store, bob.id, task_id, "b")
    feed = NotificationFeed(store, bob.id)
    await feed.load()

    await feed.mark_read(a["id"])
    await feed.mark_read(a["id"])

    assert feed.unread_count == 1
    assert {n.message: n.is_read for n in feed.notifications} == {"a": True, "b": False}
    rows = await store.select(NOTIFICATIONS_TABLE, match_all={"id": a["id"]})
    assert rows[0]["is_read"] is True


@pytest.mark.asyncio
async def test_mark_all_read_zeroes_counter_and_persists(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    for i in range(3):
        await _notify(store, bob.id, task_id, f"note {i}")
    feed = NotificationFeed(store, bob.id)
    await feed.load()

    await feed.mark_all_read()

    assert feed.unread_count == 0
    assert all(n.is_read for n in feed.notifications)
    assert await store.select(NOTIFICATIONS_TABLE, match_all={"user_id": bob.id, "is_read": False}) == []


@pytest.mark.asyncio
async def test_failed_mark_all_read_leaves_local_state_alone(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    for i in range(2):
        await _notify(store, bob.id, task_id, f"note {i}")
    faulty = FaultyStore(store)
    feed = NotificationFeed(faulty, bob.id)
    await feed.load()

    faulty.fail_next("update")
    with pytest.raises(StoreError):
        await feed.mark_all_read()
    faulty.fail_next("update")
    with pytest.raises(StoreError):
        await feed.mark_read(feed.notifications[0].id)

    assert feed.unread_count == 2
    assert not any(n.is_read for n in feed.notifications)


@pytest.mark.asyncio
async def test_remote_updates_are_not_consumed(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    row = await _notify(store, bob.id, task_id, "hello")
    feed = NotificationFeed(store, bob.id)
    await feed.open()
    try:
        # Another client marks it read; this feed only listens for inserts.
        await store.update(NOTIFICATIONS_TABLE, {"is_read": True}, match_all={"id": row["id"]})
        feed.apply_remote_event(ChangeEvent.updated(NOTIFICATIONS_TABLE, {**row, "is_read": True}))

        assert feed.unread_count == 1
        assert feed.notifications[0].is_read is False
    finally:
        await feed.close()


@pytest.mark.asyncio
async def test_closed_feed_ignores_later_inserts(store, alice, bob) -> None:
    task_id = await _task_for(store, alice.id, bob.id)
    feed = NotificationFeed(store, bob.id)
    await feed.open()
    subscribers = store.subscriber_count
    await feed.close()

    assert feed.closed
    assert store.subscriber_count == subscribers - 1
    row = await _notify(store, bob.id, task_id, "too late")
    feed.apply_remote_event(ChangeEvent.inserted(NOTIFICATIONS_TABLE, row))
    assert feed.notifications == ()
    assert feed.unread_count == 0

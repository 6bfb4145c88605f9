# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from taskmate.core.models import Actor
from taskmate.core.state import AppState
from taskmate.storage.sqlite_store import SqliteRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI helpers.
    Built by hand so tests never read the process environment.
    """
    return SimpleNamespace(
        app_name="taskmate-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path,
        db_path=tmp_path / "taskmate.sqlite3",
        user_email="alice@example.com",
        user_name="Alice",
        notification_limit=20,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> Iterator[SqliteRemoteStore]:
    """
    NOTE: We use the real SQLite store here: foreign-key enforcement and
    change-feed ordering are part of what we want to test.
    """
    s = SqliteRemoteStore(settings.db_path)
    yield s
    s.close()


@pytest.fixture()
def state(settings: SimpleNamespace, store: SqliteRemoteStore) -> AppState:
    return AppState(settings=settings, store=store)


@pytest_asyncio.fixture()
async def alice(store: SqliteRemoteStore) -> Actor:
    return Actor.from_user(await store.add_user("alice@example.com", "Alice"))


@pytest_asyncio.fixture()
async def bob(store: SqliteRemoteStore) -> Actor:
    return Actor.from_user(await store.add_user("bob@example.com", "Bob"))


@pytest_asyncio.fixture()
async def carol(store: SqliteRemoteStore) -> Actor:
    return Actor.from_user(await store.add_user("carol@example.com"))

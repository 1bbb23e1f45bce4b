"""
Tests for store.sqlite

Each test opens a fresh database file under tmp_path.
"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from news_terminal.core.types import NotFoundError
from news_terminal.models.news import (
    FilterMode,
    IngestionLog,
    IngestionStatus,
    Pane,
    PaneRules,
    Region,
    RSSSource,
    SoundSettingsRecord,
    SystemState,
    SystemStatus,
    Theme,
)
from news_terminal.store.changes import (
    NEWS_ITEMS,
    PANES,
    USER_READ_ITEMS,
    ChangeFeedError,
    ChangeType,
    LocalChangeFeed,
)
from news_terminal.store.sqlite import SQLiteStore

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db(tmp_path, changes):
    s = await SQLiteStore.open(tmp_path / "data" / "news.db", changes=changes)
    yield s
    await s.close()


def _recorder(changes, table, event):
    received = []

    async def handler(change):
        received.append(change)

    changes.subscribe(table, event, handler)
    return received


# ── news_items ────────────────────────────────────────────────────────────────

async def test_insert_round_trips_item(db, make_item):
    item = make_item("Bitcoin crash deepens crypto crisis in Asia", published_at=NOW - timedelta(hours=1))
    assert await db.insert_item(item) == item
    assert await db.get_item(item.id) == item


async def test_duplicate_hash_returns_none_and_publishes_once(db, make_item, changes):
    inserts = _recorder(changes, NEWS_ITEMS, ChangeType.INSERT)
    first = make_item("Gold hits record")
    second = make_item("Gold hits record")  # same headline + source, new id

    assert await db.insert_item(first) is not None
    assert await db.insert_item(second) is None
    assert await db.has_hash(first.hash)
    assert [c.record["id"] for c in inserts] == [first.id]


async def test_failed_publish_keeps_committed_insert(db, make_item, changes):
    item = make_item("Gold hits record")
    with patch.object(changes, "publish", AsyncMock(side_effect=ChangeFeedError("Redis publish failed"))):
        assert await db.insert_item(item) == item

    assert await db.get_item(item.id) == item


async def test_items_published_since_bounds_and_order(db, make_item):
    oldest = make_item("Oldest", published_at=NOW - timedelta(hours=3))
    middle = make_item("Middle", published_at=NOW - timedelta(hours=2))
    newest = make_item("Newest", published_at=NOW - timedelta(hours=1))
    for item in (middle, oldest, newest):
        await db.insert_item(item)

    since = middle.published_at
    inclusive = await db.items_published_since(since, limit=10)
    exclusive = await db.items_published_since(since, limit=10, inclusive=False)

    assert [i.id for i in inclusive] == [newest.id, middle.id]
    assert [i.id for i in exclusive] == [newest.id]
    assert len(await db.items_published_since(oldest.published_at, limit=1)) == 1


async def test_items_created_since_and_count(db, make_item):
    old = make_item("Old", created_at=NOW - timedelta(days=2))
    new = make_item("New", created_at=NOW - timedelta(hours=2))
    await db.insert_item(old)
    await db.insert_item(new)

    assert [i.id for i in await db.items_created_since(NOW - timedelta(days=1), limit=20)] == [new.id]
    assert await db.count_items() == 2
    assert await db.count_items(created_since=NOW - timedelta(days=1)) == 1


async def test_items_published_before_is_strict(db, make_item):
    cutoff = NOW - timedelta(days=10)
    at_cutoff = make_item("At cutoff", published_at=cutoff)
    before = make_item("Before", published_at=cutoff - timedelta(microseconds=1))
    await db.insert_item(at_cutoff)
    await db.insert_item(before)

    assert [i.id for i in await db.items_published_before(cutoff)] == [before.id]


async def test_archive_then_delete(db, make_item):
    item = make_item("Archived story", published_at=NOW - timedelta(days=11))
    await db.insert_item(item)

    assert await db.archive_items([item]) == 1
    assert await db.delete_items([item.id, "missing"]) == 1
    assert await db.get_item(item.id) is None
    assert await db.archived_items() == [item]
    assert await db.archive_items([]) == 0
    assert await db.delete_items([]) == 0


# ── panes ─────────────────────────────────────────────────────────────────────

async def test_save_and_update_pane(db, changes):
    updates = _recorder(changes, PANES, ChangeType.UPDATE)
    pane = Pane(id="europe", title="Europe", rules=PaneRules(regions=(Region.EUROPE,), keywords=("ECB",)))

    await db.save_pane(pane)
    updated = await db.update_pane_rules("europe", replace(pane.rules, filter_mode=FilterMode.KEYWORDS_ONLY))

    assert await db.list_panes() == [updated]
    assert updated.title == "Europe"
    assert len(updates) == 2


async def test_update_unknown_pane(db):
    with pytest.raises(NotFoundError):
        await db.update_pane_rules("nope", PaneRules())


# ── sources / logs / status ───────────────────────────────────────────────────

async def test_only_active_sources_listed(db):
    await db.save_source(RSSSource(id="a", name="A", url="https://a.example.com/rss"))
    await db.save_source(RSSSource(id="b", name="B", url="https://b.example.com/rss", active=False))
    assert [s.id for s in await db.list_active_sources()] == ["a"]


async def test_ingestion_logs_newest_first(db):
    await db.add_ingestion_log(IngestionLog("a", IngestionStatus.SUCCESS, 3, created_at=NOW))
    await db.add_ingestion_log(IngestionLog(None, IngestionStatus.FAILED, 0, "boom", created_at=NOW))

    logs = await db.recent_ingestion_logs()
    assert [log.feed_id for log in logs] == [None, "a"]
    assert logs[0].error_message == "boom"
    assert logs[1].created_at == NOW


async def test_system_status_defaults_then_persists(db):
    assert await db.get_system_status() == SystemStatus()
    await db.set_system_status(SystemStatus(SystemState.PARTIAL, NOW))
    assert await db.get_system_status() == SystemStatus(SystemState.PARTIAL, NOW)


# ── memberships ───────────────────────────────────────────────────────────────

async def test_mark_read_is_idempotent_and_publishes_new_rows(db, changes):
    inserts = _recorder(changes, USER_READ_ITEMS, ChangeType.INSERT)
    deletes = _recorder(changes, USER_READ_ITEMS, ChangeType.DELETE)

    assert await db.mark_read("u1", ["n1", "n2", "n1"]) == 2
    assert await db.mark_read("u1", ["n1"]) == 0
    assert await db.read_ids("u1", ["n1", "n3"]) == {"n1"}
    assert await db.read_ids("u2", ["n1"]) == set()

    assert await db.unmark_read("u1", "n1") is True
    assert await db.unmark_read("u1", "n1") is False

    assert [c.record["news_item_id"] for c in inserts] == ["n1", "n2"]
    assert [c.record for c in deletes] == [{"user_id": "u1", "news_item_id": "n1"}]


async def test_failed_publish_keeps_membership_writes(db, changes):
    with patch.object(changes, "publish", AsyncMock(side_effect=ChangeFeedError("Redis publish failed"))):
        assert await db.mark_read("u1", ["n1"]) == 1
        assert await db.unmark_saved("u1", "n1") is False
        assert await db.mark_saved("u1", ["n1"]) == 1
        assert await db.unmark_saved("u1", "n1") is True

    assert await db.read_ids("u1", ["n1"]) == {"n1"}
    assert await db.saved_ids("u1", ["n1"]) == set()


async def test_saved_items(db):
    assert await db.mark_saved("u1", ["n1"]) == 1
    assert await db.saved_ids("u1", ["n1", "n2"]) == {"n1"}
    assert await db.unmark_saved("u1", "n1") is True
    assert await db.saved_ids("u1", []) == set()


# ── sound_settings ────────────────────────────────────────────────────────────

async def test_sound_settings_round_trip(db):
    assert await db.get_sound_settings("u1") is None

    record = SoundSettingsRecord(user_id="u1", enabled=False, volume=0.25, sound_tags=(Theme.EARNINGS,))
    await db.save_sound_settings(record)
    assert await db.get_sound_settings("u1") == record

    replaced = SoundSettingsRecord(user_id="u1")
    await db.save_sound_settings(replaced)
    assert await db.get_sound_settings("u1") == replaced


async def test_reopen_keeps_data(tmp_path, make_item):
    path = tmp_path / "news.db"
    first = await SQLiteStore.open(path, changes=LocalChangeFeed())
    item = make_item("Persisted headline")
    await first.insert_item(item)
    await first.close()

    second = await SQLiteStore.open(path)
    try:
        assert await second.get_item(item.id) == item
    finally:
        await second.close()

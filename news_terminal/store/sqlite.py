"""
SQLite Store

Durable NewsStore on aiosqlite. Timestamps are stored as integer
microseconds since the epoch (UTC) so range filters compare numerically;
tag lists and pane rules are stored as JSON text.

Usage:
    store = await SQLiteStore.open("news_terminal.db", changes=feed)
    ...
    await store.close()
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

import aiosqlite

from news_terminal.core.types import NotFoundError, PersistenceError
from news_terminal.models.news import (
    IngestionLog,
    IngestionStatus,
    Market,
    NewsItem,
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
    USER_SAVED_ITEMS,
    ChangeEvent,
    ChangeType,
    LocalChangeFeed,
    publish_committed,
)
from news_terminal.store.interface import ChangeFeed

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SCHEMA = """
CREATE TABLE IF NOT EXISTS news_items (
    id            TEXT PRIMARY KEY,
    headline      TEXT NOT NULL,
    source        TEXT NOT NULL,
    url           TEXT NOT NULL,
    published_us  INTEGER NOT NULL,
    region        TEXT NOT NULL,
    markets       TEXT NOT NULL,
    themes        TEXT NOT NULL,
    hash          TEXT NOT NULL UNIQUE,
    created_us    INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_news_items_published ON news_items(published_us DESC);
CREATE INDEX IF NOT EXISTS idx_news_items_created ON news_items(created_us DESC);

CREATE TABLE IF NOT EXISTS news_archive (
    id            TEXT PRIMARY KEY,
    headline      TEXT NOT NULL,
    source        TEXT NOT NULL,
    url           TEXT NOT NULL,
    published_us  INTEGER NOT NULL,
    region        TEXT NOT NULL,
    markets       TEXT NOT NULL,
    themes        TEXT NOT NULL,
    hash          TEXT NOT NULL,
    created_us    INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS panes (
    id     TEXT PRIMARY KEY,
    title  TEXT NOT NULL,
    rules  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS rss_sources (
    id      TEXT PRIMARY KEY,
    name    TEXT NOT NULL,
    url     TEXT NOT NULL,
    region  TEXT NOT NULL DEFAULT '',
    active  INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS ingestion_logs (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id        TEXT,
    status         TEXT NOT NULL,
    items_fetched  INTEGER NOT NULL DEFAULT 0,
    error_message  TEXT,
    created_us     INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS system_status (
    id              INTEGER PRIMARY KEY CHECK (id = 1),
    status          TEXT NOT NULL,
    last_ingest_us  INTEGER
);

CREATE TABLE IF NOT EXISTS user_read_items (
    user_id       TEXT NOT NULL,
    news_item_id  TEXT NOT NULL,
    PRIMARY KEY (user_id, news_item_id)
);

CREATE TABLE IF NOT EXISTS user_saved_items (
    user_id       TEXT NOT NULL,
    news_item_id  TEXT NOT NULL,
    PRIMARY KEY (user_id, news_item_id)
);

CREATE TABLE IF NOT EXISTS sound_settings (
    user_id     TEXT PRIMARY KEY,
    enabled     INTEGER NOT NULL,
    volume      REAL NOT NULL,
    sound_tags  TEXT NOT NULL
);
"""

_ITEM_COLUMNS = (
    "id, headline, source, url, published_us, region, markets, themes, hash, created_us"
)


def _to_us(dt: datetime) -> int:
    delta = dt.astimezone(timezone.utc) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _from_us(us: int) -> datetime:
    return _EPOCH + timedelta(microseconds=us)


def _item_params(item: NewsItem) -> tuple[Any, ...]:
    return (
        item.id,
        item.headline,
        item.source,
        item.url,
        _to_us(item.published_at),
        item.region.value,
        json.dumps([m.value for m in item.markets]),
        json.dumps([t.value for t in item.themes]),
        item.hash,
        _to_us(item.created_at),
    )


def _row_to_item(row: aiosqlite.Row) -> NewsItem:
    return NewsItem(
        id=row["id"],
        headline=row["headline"],
        source=row["source"],
        url=row["url"],
        published_at=_from_us(row["published_us"]),
        region=Region(row["region"]),
        markets=tuple(Market(m) for m in json.loads(row["markets"])),
        themes=tuple(Theme(t) for t in json.loads(row["themes"])),
        hash=row["hash"],
        created_at=_from_us(row["created_us"]),
    )


@contextmanager
def _guard(table: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as exc:
        raise PersistenceError(f"SQLite operation failed: {exc}", table=table) from exc


class SQLiteStore:
    """aiosqlite-backed NewsStore. One connection per process."""

    def __init__(self, db: aiosqlite.Connection, changes: Optional[ChangeFeed] = None) -> None:
        self._db = db
        self.changes: ChangeFeed = changes if changes is not None else LocalChangeFeed()

    @classmethod
    async def open(
        cls, db_path: Union[str, Path], changes: Optional[ChangeFeed] = None
    ) -> SQLiteStore:
        """Open (creating if needed) the database and apply the schema."""
        p = Path(db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(p))
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA journal_mode=WAL;")
        await db.execute("PRAGMA synchronous=NORMAL;")
        await db.executescript(SCHEMA)
        await db.commit()
        logger.info("SQLiteStore opened", extra={"db_path": str(p)})
        return cls(db, changes)

    async def close(self) -> None:
        await self._db.close()
        logger.info("SQLiteStore closed")

    async def _fetch_items(self, sql: str, params: tuple[Any, ...]) -> list[NewsItem]:
        with _guard(NEWS_ITEMS):
            async with self._db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [_row_to_item(r) for r in rows]

    # ── news_items ────────────────────────────────────────────────────────

    async def has_hash(self, content_hash: str) -> bool:
        with _guard(NEWS_ITEMS):
            async with self._db.execute(
                "SELECT 1 FROM news_items WHERE hash = ? LIMIT 1", (content_hash,)
            ) as cur:
                return await cur.fetchone() is not None

    async def insert_item(self, item: NewsItem) -> Optional[NewsItem]:
        with _guard(NEWS_ITEMS):
            cur = await self._db.execute(
                f"INSERT OR IGNORE INTO news_items({_ITEM_COLUMNS}) VALUES(?,?,?,?,?,?,?,?,?,?)",
                _item_params(item),
            )
            await self._db.commit()
        if cur.rowcount != 1:
            return None
        await publish_committed(self.changes, ChangeEvent(NEWS_ITEMS, ChangeType.INSERT, item.to_record()))
        return item

    async def get_item(self, item_id: str) -> Optional[NewsItem]:
        items = await self._fetch_items(
            f"SELECT {_ITEM_COLUMNS} FROM news_items WHERE id = ?", (item_id,)
        )
        return items[0] if items else None

    async def items_published_since(
        self, since: datetime, limit: int, *, inclusive: bool = True
    ) -> list[NewsItem]:
        op = ">=" if inclusive else ">"
        return await self._fetch_items(
            f"SELECT {_ITEM_COLUMNS} FROM news_items WHERE published_us {op} ? "
            "ORDER BY published_us DESC LIMIT ?",
            (_to_us(since), limit),
        )

    async def items_created_since(self, since: datetime, limit: int) -> list[NewsItem]:
        return await self._fetch_items(
            f"SELECT {_ITEM_COLUMNS} FROM news_items WHERE created_us >= ? "
            "ORDER BY created_us DESC LIMIT ?",
            (_to_us(since), limit),
        )

    async def items_published_before(self, cutoff: datetime) -> list[NewsItem]:
        return await self._fetch_items(
            f"SELECT {_ITEM_COLUMNS} FROM news_items WHERE published_us < ?",
            (_to_us(cutoff),),
        )

    async def count_items(self, created_since: Optional[datetime] = None) -> int:
        with _guard(NEWS_ITEMS):
            if created_since is None:
                cur = await self._db.execute("SELECT COUNT(*) FROM news_items")
            else:
                cur = await self._db.execute(
                    "SELECT COUNT(*) FROM news_items WHERE created_us >= ?",
                    (_to_us(created_since),),
                )
            row = await cur.fetchone()
            await cur.close()
        return int(row[0]) if row else 0

    async def delete_items(self, item_ids: Iterable[str]) -> int:
        ids = [(i,) for i in item_ids]
        if not ids:
            return 0
        with _guard(NEWS_ITEMS):
            before = self._db.total_changes
            await self._db.executemany("DELETE FROM news_items WHERE id = ?", ids)
            await self._db.commit()
            return self._db.total_changes - before

    # ── news_archive ──────────────────────────────────────────────────────

    async def archive_items(self, items: Iterable[NewsItem]) -> int:
        rows = [_item_params(i) for i in items]
        if not rows:
            return 0
        with _guard("news_archive"):
            await self._db.executemany(
                f"INSERT OR REPLACE INTO news_archive({_ITEM_COLUMNS}) VALUES(?,?,?,?,?,?,?,?,?,?)",
                rows,
            )
            await self._db.commit()
        return len(rows)

    async def archived_items(self) -> list[NewsItem]:
        with _guard("news_archive"):
            async with self._db.execute(
                f"SELECT {_ITEM_COLUMNS} FROM news_archive ORDER BY published_us DESC"
            ) as cur:
                rows = await cur.fetchall()
        return [_row_to_item(r) for r in rows]

    # ── panes ─────────────────────────────────────────────────────────────

    async def list_panes(self) -> list[Pane]:
        with _guard(PANES):
            async with self._db.execute("SELECT id, title, rules FROM panes ORDER BY id") as cur:
                rows = await cur.fetchall()
        return [
            Pane.from_record({"id": r["id"], "title": r["title"], "rules": json.loads(r["rules"])})
            for r in rows
        ]

    async def save_pane(self, pane: Pane) -> Pane:
        with _guard(PANES):
            await self._db.execute(
                "INSERT INTO panes(id, title, rules) VALUES(?,?,?) "
                "ON CONFLICT(id) DO UPDATE SET title = excluded.title, rules = excluded.rules",
                (pane.id, pane.title, json.dumps(pane.rules.to_dict())),
            )
            await self._db.commit()
        await publish_committed(self.changes, ChangeEvent(PANES, ChangeType.UPDATE, pane.to_dict()))
        return pane

    async def update_pane_rules(self, pane_id: str, rules: PaneRules) -> Pane:
        with _guard(PANES):
            async with self._db.execute("SELECT title FROM panes WHERE id = ?", (pane_id,)) as cur:
                row = await cur.fetchone()
        if row is None:
            raise NotFoundError(f"Pane not found: {pane_id}", kind="pane", key=pane_id)
        return await self.save_pane(Pane(id=pane_id, title=row["title"], rules=rules))

    # ── rss_sources / ingestion_logs / system_status ──────────────────────

    async def list_active_sources(self) -> list[RSSSource]:
        with _guard("rss_sources"):
            async with self._db.execute(
                "SELECT id, name, url, region, active FROM rss_sources WHERE active = 1 ORDER BY id"
            ) as cur:
                rows = await cur.fetchall()
        return [RSSSource.from_record(dict(r)) for r in rows]

    async def save_source(self, source: RSSSource) -> None:
        with _guard("rss_sources"):
            await self._db.execute(
                "INSERT OR REPLACE INTO rss_sources(id, name, url, region, active) VALUES(?,?,?,?,?)",
                (source.id, source.name, source.url, source.region, int(source.active)),
            )
            await self._db.commit()

    async def add_ingestion_log(self, log: IngestionLog) -> None:
        with _guard("ingestion_logs"):
            await self._db.execute(
                "INSERT INTO ingestion_logs(feed_id, status, items_fetched, error_message, created_us) "
                "VALUES(?,?,?,?,?)",
                (
                    log.feed_id,
                    log.status.value,
                    log.items_fetched,
                    log.error_message,
                    _to_us(log.created_at),
                ),
            )
            await self._db.commit()

    async def recent_ingestion_logs(self, limit: int = 50) -> list[IngestionLog]:
        with _guard("ingestion_logs"):
            async with self._db.execute(
                "SELECT feed_id, status, items_fetched, error_message, created_us "
                "FROM ingestion_logs ORDER BY id DESC LIMIT ?",
                (limit,),
            ) as cur:
                rows = await cur.fetchall()
        return [
            IngestionLog(
                feed_id=r["feed_id"],
                status=IngestionStatus(r["status"]),
                items_fetched=r["items_fetched"],
                error_message=r["error_message"],
                created_at=_from_us(r["created_us"]),
            )
            for r in rows
        ]

    async def get_system_status(self) -> SystemStatus:
        with _guard("system_status"):
            async with self._db.execute(
                "SELECT status, last_ingest_us FROM system_status WHERE id = 1"
            ) as cur:
                row = await cur.fetchone()
        if row is None:
            return SystemStatus()
        last = row["last_ingest_us"]
        return SystemStatus(
            status=SystemState(row["status"]),
            last_ingest=_from_us(last) if last is not None else None,
        )

    async def set_system_status(self, status: SystemStatus) -> None:
        last = _to_us(status.last_ingest) if status.last_ingest else None
        with _guard("system_status"):
            await self._db.execute(
                "INSERT INTO system_status(id, status, last_ingest_us) VALUES(1,?,?) "
                "ON CONFLICT(id) DO UPDATE SET status = excluded.status, "
                "last_ingest_us = excluded.last_ingest_us",
                (status.status.value, last),
            )
            await self._db.commit()

    # ── user_read_items / user_saved_items ────────────────────────────────

    async def _add_membership(self, table: str, user_id: str, item_ids: Iterable[str]) -> int:
        added: list[str] = []
        with _guard(table):
            for item_id in dict.fromkeys(item_ids):
                cur = await self._db.execute(
                    f"INSERT OR IGNORE INTO {table}(user_id, news_item_id) VALUES(?,?)",
                    (user_id, item_id),
                )
                if cur.rowcount == 1:
                    added.append(item_id)
            await self._db.commit()
        for item_id in added:
            await publish_committed(
                self.changes,
                ChangeEvent(table, ChangeType.INSERT, {"user_id": user_id, "news_item_id": item_id}),
            )
        return len(added)

    async def _remove_membership(self, table: str, user_id: str, item_id: str) -> bool:
        with _guard(table):
            cur = await self._db.execute(
                f"DELETE FROM {table} WHERE user_id = ? AND news_item_id = ?",
                (user_id, item_id),
            )
            await self._db.commit()
        if cur.rowcount != 1:
            return False
        await publish_committed(
            self.changes,
            ChangeEvent(table, ChangeType.DELETE, {"user_id": user_id, "news_item_id": item_id}),
        )
        return True

    async def _member_ids(self, table: str, user_id: str, item_ids: Iterable[str]) -> set[str]:
        ids = list(item_ids)
        if not ids:
            return set()
        placeholders = ",".join("?" for _ in ids)
        with _guard(table):
            async with self._db.execute(
                f"SELECT news_item_id FROM {table} WHERE user_id = ? AND news_item_id IN ({placeholders})",
                (user_id, *ids),
            ) as cur:
                rows = await cur.fetchall()
        return {r["news_item_id"] for r in rows}

    async def mark_read(self, user_id: str, item_ids: Iterable[str]) -> int:
        return await self._add_membership(USER_READ_ITEMS, user_id, item_ids)

    async def unmark_read(self, user_id: str, item_id: str) -> bool:
        return await self._remove_membership(USER_READ_ITEMS, user_id, item_id)

    async def read_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        return await self._member_ids(USER_READ_ITEMS, user_id, item_ids)

    async def mark_saved(self, user_id: str, item_ids: Iterable[str]) -> int:
        return await self._add_membership(USER_SAVED_ITEMS, user_id, item_ids)

    async def unmark_saved(self, user_id: str, item_id: str) -> bool:
        return await self._remove_membership(USER_SAVED_ITEMS, user_id, item_id)

    async def saved_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        return await self._member_ids(USER_SAVED_ITEMS, user_id, item_ids)

    # ── sound_settings ────────────────────────────────────────────────────

    async def get_sound_settings(self, user_id: str) -> Optional[SoundSettingsRecord]:
        with _guard("sound_settings"):
            async with self._db.execute(
                "SELECT user_id, enabled, volume, sound_tags FROM sound_settings WHERE user_id = ?",
                (user_id,),
            ) as cur:
                row = await cur.fetchone()
        if row is None:
            return None
        return SoundSettingsRecord.from_record(
            {
                "user_id": row["user_id"],
                "enabled": bool(row["enabled"]),
                "volume": row["volume"],
                "sound_tags": json.loads(row["sound_tags"]),
            }
        )

    async def save_sound_settings(self, record: SoundSettingsRecord) -> SoundSettingsRecord:
        with _guard("sound_settings"):
            await self._db.execute(
                "INSERT INTO sound_settings(user_id, enabled, volume, sound_tags) VALUES(?,?,?,?) "
                "ON CONFLICT(user_id) DO UPDATE SET enabled = excluded.enabled, "
                "volume = excluded.volume, sound_tags = excluded.sound_tags",
                (
                    record.user_id,
                    int(record.enabled),
                    record.volume,
                    json.dumps([t.value for t in record.sound_tags]),
                ),
            )
            await self._db.commit()
        return record

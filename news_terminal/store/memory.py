"""
In-Memory Store

Dict-backed implementation of the NewsStore protocol for local development
and tests. Emits the same change events as the SQLite store, so sessions
behave identically against either backend.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from news_terminal.core.types import NotFoundError
from news_terminal.models.news import (
    IngestionLog,
    NewsItem,
    Pane,
    PaneRules,
    RSSSource,
    SoundSettingsRecord,
    SystemStatus,
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


def _newest_first(items: Iterable[NewsItem], key: str = "published_at") -> list[NewsItem]:
    return sorted(items, key=lambda i: getattr(i, key), reverse=True)


class InMemoryStore:
    """Dev store that satisfies NewsStore."""

    def __init__(self, changes: Optional[ChangeFeed] = None) -> None:
        self.changes: ChangeFeed = changes if changes is not None else LocalChangeFeed()

        self._items: dict[str, NewsItem] = {}
        self._hashes: set[str] = set()
        self._archive: dict[str, NewsItem] = {}
        self._panes: dict[str, Pane] = {}
        self._sources: dict[str, RSSSource] = {}
        self._logs: list[IngestionLog] = []
        self._status = SystemStatus()
        self._read: dict[str, set[str]] = {}
        self._saved: dict[str, set[str]] = {}
        self._sound: dict[str, SoundSettingsRecord] = {}

    # ── news_items ────────────────────────────────────────────────────────

    async def has_hash(self, content_hash: str) -> bool:
        return content_hash in self._hashes

    async def insert_item(self, item: NewsItem) -> Optional[NewsItem]:
        if item.id in self._items or (item.hash and item.hash in self._hashes):
            return None
        self._items[item.id] = item
        if item.hash:
            self._hashes.add(item.hash)
        await publish_committed(self.changes, ChangeEvent(NEWS_ITEMS, ChangeType.INSERT, item.to_record()))
        return item

    async def get_item(self, item_id: str) -> Optional[NewsItem]:
        return self._items.get(item_id)

    async def items_published_since(
        self, since: datetime, limit: int, *, inclusive: bool = True
    ) -> list[NewsItem]:
        if inclusive:
            matched = (i for i in self._items.values() if i.published_at >= since)
        else:
            matched = (i for i in self._items.values() if i.published_at > since)
        return _newest_first(matched)[:limit]

    async def items_created_since(self, since: datetime, limit: int) -> list[NewsItem]:
        matched = (i for i in self._items.values() if i.created_at >= since)
        return _newest_first(matched, key="created_at")[:limit]

    async def items_published_before(self, cutoff: datetime) -> list[NewsItem]:
        return [i for i in self._items.values() if i.published_at < cutoff]

    async def count_items(self, created_since: Optional[datetime] = None) -> int:
        if created_since is None:
            return len(self._items)
        return sum(1 for i in self._items.values() if i.created_at >= created_since)

    async def delete_items(self, item_ids: Iterable[str]) -> int:
        deleted = 0
        for item_id in item_ids:
            item = self._items.pop(item_id, None)
            if item is None:
                continue
            self._hashes.discard(item.hash)
            deleted += 1
        return deleted

    # ── news_archive ──────────────────────────────────────────────────────

    async def archive_items(self, items: Iterable[NewsItem]) -> int:
        written = 0
        for item in items:
            self._archive[item.id] = item
            written += 1
        return written

    async def archived_items(self) -> list[NewsItem]:
        return _newest_first(self._archive.values())

    # ── panes ─────────────────────────────────────────────────────────────

    async def list_panes(self) -> list[Pane]:
        return sorted(self._panes.values(), key=lambda p: p.id)

    async def save_pane(self, pane: Pane) -> Pane:
        self._panes[pane.id] = pane
        await publish_committed(self.changes, ChangeEvent(PANES, ChangeType.UPDATE, pane.to_dict()))
        return pane

    async def update_pane_rules(self, pane_id: str, rules: PaneRules) -> Pane:
        current = self._panes.get(pane_id)
        if current is None:
            raise NotFoundError(f"Pane not found: {pane_id}", kind="pane", key=pane_id)
        return await self.save_pane(Pane(id=current.id, title=current.title, rules=rules))

    # ── rss_sources / ingestion_logs / system_status ──────────────────────

    async def list_active_sources(self) -> list[RSSSource]:
        return [s for s in self._sources.values() if s.active]

    async def save_source(self, source: RSSSource) -> None:
        self._sources[source.id] = source

    async def add_ingestion_log(self, log: IngestionLog) -> None:
        self._logs.append(log)

    async def recent_ingestion_logs(self, limit: int = 50) -> list[IngestionLog]:
        return list(reversed(self._logs))[:limit]

    async def get_system_status(self) -> SystemStatus:
        return self._status

    async def set_system_status(self, status: SystemStatus) -> None:
        self._status = status

    # ── user_read_items / user_saved_items ────────────────────────────────

    async def _add_membership(
        self, table: str, members: dict[str, set[str]], user_id: str, item_ids: Iterable[str]
    ) -> int:
        owned = members.setdefault(user_id, set())
        added = 0
        for item_id in item_ids:
            if item_id in owned:
                continue
            owned.add(item_id)
            added += 1
            await publish_committed(
                self.changes,
                ChangeEvent(table, ChangeType.INSERT, {"user_id": user_id, "news_item_id": item_id}),
            )
        return added

    async def _remove_membership(
        self, table: str, members: dict[str, set[str]], user_id: str, item_id: str
    ) -> bool:
        owned = members.get(user_id, set())
        if item_id not in owned:
            return False
        owned.discard(item_id)
        await publish_committed(
            self.changes,
            ChangeEvent(table, ChangeType.DELETE, {"user_id": user_id, "news_item_id": item_id}),
        )
        return True

    async def mark_read(self, user_id: str, item_ids: Iterable[str]) -> int:
        return await self._add_membership(USER_READ_ITEMS, self._read, user_id, item_ids)

    async def unmark_read(self, user_id: str, item_id: str) -> bool:
        return await self._remove_membership(USER_READ_ITEMS, self._read, user_id, item_id)

    async def read_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        return self._read.get(user_id, set()) & set(item_ids)

    async def mark_saved(self, user_id: str, item_ids: Iterable[str]) -> int:
        return await self._add_membership(USER_SAVED_ITEMS, self._saved, user_id, item_ids)

    async def unmark_saved(self, user_id: str, item_id: str) -> bool:
        return await self._remove_membership(USER_SAVED_ITEMS, self._saved, user_id, item_id)

    async def saved_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        return self._saved.get(user_id, set()) & set(item_ids)

    # ── sound_settings ────────────────────────────────────────────────────

    async def get_sound_settings(self, user_id: str) -> Optional[SoundSettingsRecord]:
        return self._sound.get(user_id)

    async def save_sound_settings(self, record: SoundSettingsRecord) -> SoundSettingsRecord:
        self._sound[record.user_id] = record
        return record

    async def close(self) -> None:
        logger.debug("InMemoryStore closed")

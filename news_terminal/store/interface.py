"""
Store Protocol Definitions

Abstract interfaces that both the in-memory store and the SQLite store
satisfy. The classifier, router, ingestion pipeline, archival job, session
controller and HTTP handlers depend only on these protocols.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, runtime_checkable

from news_terminal.models.news import (
    IngestionLog,
    NewsItem,
    Pane,
    PaneRules,
    RSSSource,
    SoundSettingsRecord,
    SystemStatus,
)
from news_terminal.store.changes import ChangeEvent, ChangeHandler, ChangeType, Subscription


@runtime_checkable
class ChangeFeed(Protocol):
    """Cancellable row-change subscriptions with at-least-once delivery."""

    def subscribe(
        self, table: str, event: ChangeType, handler: ChangeHandler
    ) -> Subscription:
        """Register *handler* for (table, event). Cancel the handle to stop delivery."""
        ...

    async def publish(self, change: ChangeEvent) -> int:
        """Deliver *change* to every active matching subscriber."""
        ...


@runtime_checkable
class NewsStore(Protocol):
    """Persistent tables of the news terminal."""

    # ── news_items ────────────────────────────────────────────────────────

    async def has_hash(self, content_hash: str) -> bool:
        ...

    async def insert_item(self, item: NewsItem) -> Optional[NewsItem]:
        """
        Insert a news item.

        Returns None, without raising, when an item with the same hash or id
        already exists. Emits news_items INSERT on success.
        """
        ...

    async def get_item(self, item_id: str) -> Optional[NewsItem]:
        ...

    async def items_published_since(
        self, since: datetime, limit: int, *, inclusive: bool = True
    ) -> list[NewsItem]:
        """Items with published_at >= since (> when not inclusive), newest first."""
        ...

    async def items_created_since(self, since: datetime, limit: int) -> list[NewsItem]:
        """Items with created_at >= since, newest created first."""
        ...

    async def items_published_before(self, cutoff: datetime) -> list[NewsItem]:
        """Items with published_at strictly before cutoff."""
        ...

    async def count_items(self, created_since: Optional[datetime] = None) -> int:
        ...

    async def delete_items(self, item_ids: Iterable[str]) -> int:
        ...

    # ── news_archive ──────────────────────────────────────────────────────

    async def archive_items(self, items: Iterable[NewsItem]) -> int:
        """Copy items verbatim into the archive. Returns rows written."""
        ...

    async def archived_items(self) -> list[NewsItem]:
        ...

    # ── panes ─────────────────────────────────────────────────────────────

    async def list_panes(self) -> list[Pane]:
        ...

    async def save_pane(self, pane: Pane) -> Pane:
        """Insert or replace a pane. Emits panes UPDATE."""
        ...

    async def update_pane_rules(self, pane_id: str, rules: PaneRules) -> Pane:
        """
        Replace a pane's rules. Emits panes UPDATE.

        Raises:
            NotFoundError: If the pane does not exist.
        """
        ...

    # ── rss_sources / ingestion_logs / system_status ──────────────────────

    async def list_active_sources(self) -> list[RSSSource]:
        ...

    async def save_source(self, source: RSSSource) -> None:
        ...

    async def add_ingestion_log(self, log: IngestionLog) -> None:
        ...

    async def recent_ingestion_logs(self, limit: int = 50) -> list[IngestionLog]:
        ...

    async def get_system_status(self) -> SystemStatus:
        ...

    async def set_system_status(self, status: SystemStatus) -> None:
        ...

    # ── user_read_items / user_saved_items ────────────────────────────────

    async def mark_read(self, user_id: str, item_ids: Iterable[str]) -> int:
        """Idempotent; emits user_read_items INSERT per new row. Returns rows added."""
        ...

    async def unmark_read(self, user_id: str, item_id: str) -> bool:
        ...

    async def read_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        ...

    async def mark_saved(self, user_id: str, item_ids: Iterable[str]) -> int:
        ...

    async def unmark_saved(self, user_id: str, item_id: str) -> bool:
        ...

    async def saved_ids(self, user_id: str, item_ids: Iterable[str]) -> set[str]:
        ...

    # ── sound_settings ────────────────────────────────────────────────────

    async def get_sound_settings(self, user_id: str) -> Optional[SoundSettingsRecord]:
        ...

    async def save_sound_settings(self, record: SoundSettingsRecord) -> SoundSettingsRecord:
        ...

    async def close(self) -> None:
        ...

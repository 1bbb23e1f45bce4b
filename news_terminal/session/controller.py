"""
Feed Session Controller

Maintains the bounded, newest-first item list one viewer sees in one pane.

Three paths mutate the list and all of them hold the controller's lock:
    - load():        initial 24 h snapshot, routed and capped
    - live inserts:  news_items INSERT notifications
    - on_visible():  gap recovery after the viewer returns

Read/saved notifications for the session user only flip flags on items
already displayed. Every path deduplicates by item id, so at-least-once
delivery and interleaved paths converge on the same list.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from news_terminal.core.types import PersistenceError, ValidationError
from news_terminal.models.news import NewsItem, NewsTag, utcnow
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.routing.router import route
from news_terminal.session.sound import SoundAlertGate, SoundSettingsService
from news_terminal.session.user_state import UserStateService
from news_terminal.store.changes import (
    NEWS_ITEMS,
    USER_READ_ITEMS,
    USER_SAVED_ITEMS,
    ChangeEvent,
    ChangeType,
    Subscription,
)
from news_terminal.store.interface import ChangeFeed, NewsStore
from news_terminal.tagger.classifier import tags_for

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 10
LOAD_WINDOW = timedelta(hours=24)
LOAD_LIMIT = 100
GAP_LIMIT = 50
GAP_CHECK_INTERVAL = timedelta(seconds=60)
REALTIME_HIGHLIGHT = timedelta(seconds=10)
GAP_HIGHLIGHT = timedelta(seconds=30)
SEEN_RETENTION = LOAD_WINDOW


class SessionState(str, Enum):
    LOADING = "loading"
    LIVE = "live"
    ERROR = "error"
    CLOSED = "closed"


class HighlightType(str, Enum):
    NONE = "none"
    REALTIME = "realtime"
    GAP = "gap"


@dataclass(frozen=True)
class PaneEntry:
    """One displayed item with viewer-specific state."""

    item: NewsItem
    tags: tuple[NewsTag, ...]
    is_read: bool = False
    is_saved: bool = False
    highlight: HighlightType = HighlightType.NONE
    highlight_until: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.item.id


@dataclass(frozen=True)
class PaneView:
    """What a pane renders: either the item list or the load error."""

    pane_id: str
    state: SessionState
    items: tuple[PaneEntry, ...] = ()
    error: Optional[str] = None


ViewListener = Callable[[PaneView], None]


class FeedSessionController:
    """
    Live item list for (user, pane).

    Usage:
        controller = FeedSessionController("risk_events", user_id, store, panes, changes)
        await controller.start()
        ...
        await controller.on_visible()
        ...
        await controller.close()
    """

    def __init__(
        self,
        pane_id: str,
        user_id: str,
        store: NewsStore,
        panes: PaneRuleStore,
        changes: ChangeFeed,
        sound_gate: Optional[SoundAlertGate] = None,
        sound_settings: Optional[SoundSettingsService] = None,
        max_items: int = DEFAULT_MAX_ITEMS,
        clock: Callable[[], datetime] = utcnow,
        listener: Optional[ViewListener] = None,
    ) -> None:
        if max_items <= 0:
            raise ValueError(f"max_items must be positive, got {max_items}")
        self.pane_id = pane_id
        self.user_id = user_id
        self._store = store
        self._panes = panes
        self._changes = changes
        self._user_state = UserStateService(store)
        self._sound_gate = sound_gate or SoundAlertGate()
        self._sound_settings = sound_settings or SoundSettingsService()
        self._max_items = max_items
        self._clock = clock
        self._listener = listener

        self._lock = asyncio.Lock()
        self._state = SessionState.LOADING
        self._error: Optional[str] = None
        self._entries: list[PaneEntry] = []
        self._seen: dict[str, datetime] = {}
        self._watermark: Optional[datetime] = None
        self._load_window_start: Optional[datetime] = None
        self._last_gap_check: Optional[datetime] = None
        self._subscriptions: list[Subscription] = []
        self._timers: set[asyncio.TimerHandle] = set()

    # ── Public state ──────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def watermark(self) -> Optional[datetime]:
        return self._watermark

    @property
    def view(self) -> PaneView:
        if self._state is SessionState.ERROR:
            return PaneView(self.pane_id, self._state, error=self._error)
        return PaneView(self.pane_id, self._state, items=tuple(self._entries))

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self) -> PaneView:
        """Subscribe to changes, then run the initial load."""
        self._subscriptions = [
            self._changes.subscribe(NEWS_ITEMS, ChangeType.INSERT, self._on_news_insert),
            self._changes.subscribe(USER_READ_ITEMS, ChangeType.INSERT, self._on_read_change),
            self._changes.subscribe(USER_READ_ITEMS, ChangeType.DELETE, self._on_read_change),
            self._changes.subscribe(USER_SAVED_ITEMS, ChangeType.INSERT, self._on_saved_change),
            self._changes.subscribe(USER_SAVED_ITEMS, ChangeType.DELETE, self._on_saved_change),
        ]
        return await self.load()

    async def close(self) -> None:
        """Stop all deliveries and pending highlight timers."""
        async with self._lock:
            self._state = SessionState.CLOSED
            for sub in self._subscriptions:
                sub.cancel()
            self._subscriptions.clear()
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
        logger.debug("Session closed", extra={"pane_id": self.pane_id, "user_id": self.user_id})

    # ── Initial load ──────────────────────────────────────────────────────

    async def load(self) -> PaneView:
        async with self._lock:
            if self._state is SessionState.CLOSED:
                return self.view
            now = self._clock()
            self._load_window_start = now - LOAD_WINDOW
            try:
                if not self._panes.snapshot:
                    raise ValidationError("No panes found", field="panes")
                recent = await self._store.items_published_since(self._load_window_start, LOAD_LIMIT)
            except (PersistenceError, ValidationError) as e:
                self._state = SessionState.ERROR
                self._error = e.message
                logger.error(
                    f"Initial load failed for pane {self.pane_id}: {e}",
                    extra={"pane_id": self.pane_id},
                )
                self._notify()
                return self.view

            owned = self._owned(recent)[: self._max_items]
            read, saved = await self._user_state.flags_for(self.user_id, [i.id for i in owned])
            self._entries = [
                PaneEntry(item=i, tags=tags_for(i), is_read=i.id in read, is_saved=i.id in saved)
                for i in owned
            ]
            self._remember((i.id for i in owned), now)
            self._watermark = owned[0].published_at if owned else None
            self._state = SessionState.LIVE
            self._error = None

            logger.info(
                "Pane loaded",
                extra={"pane_id": self.pane_id, "fetched": len(recent), "owned": len(owned)},
            )
            self._notify()
            return self.view

    # ── Live inserts ──────────────────────────────────────────────────────

    async def _on_news_insert(self, change: ChangeEvent) -> None:
        try:
            item = NewsItem.from_record(change.record)
        except ValidationError as e:
            logger.warning(f"Dropping malformed news insert: {e}", extra={"pane_id": self.pane_id})
            return
        await self.handle_insert(item)

    async def handle_insert(self, item: NewsItem) -> bool:
        """Apply one inserted item. Returns True if this pane displayed it."""
        async with self._lock:
            if self._state is not SessionState.LIVE or item.id in self._seen:
                return False
            if route(item, self._panes.snapshot) != self.pane_id:
                return False

            now = self._clock()
            tags = tags_for(item)
            self._sound_gate.offer(item.id, tags, self._sound_settings.settings)

            read, saved = await self._user_state.flags_for(self.user_id, [item.id])
            entry = PaneEntry(
                item=item,
                tags=tags,
                is_read=item.id in read,
                is_saved=item.id in saved,
                highlight=HighlightType.REALTIME,
                highlight_until=now + REALTIME_HIGHLIGHT,
            )
            self._entries = self._ordered([entry, *self._entries])
            self._remember([item.id], now)
            self._advance_watermark(item.published_at)
            self._schedule_highlight_clear(REALTIME_HIGHLIGHT)

            displayed = any(e.id == item.id for e in self._entries)
            logger.debug(
                "Live insert",
                extra={"pane_id": self.pane_id, "item_id": item.id, "displayed": displayed},
            )
            self._notify()
            return displayed

    # ── Gap recovery ──────────────────────────────────────────────────────

    async def on_visible(self) -> int:
        """
        Fetch items missed while hidden.

        Runs at most once per GAP_CHECK_INTERVAL; the first call always
        checks. Returns the number of new entries merged in.
        """
        async with self._lock:
            if self._state is not SessionState.LIVE:
                return 0
            now = self._clock()
            if self._last_gap_check is not None and now - self._last_gap_check < GAP_CHECK_INTERVAL:
                logger.debug("Skipping gap fetch, checked recently", extra={"pane_id": self.pane_id})
                return 0

            since = self._watermark or self._load_window_start or (now - LOAD_WINDOW)
            try:
                missed = await self._store.items_published_since(since, GAP_LIMIT, inclusive=False)
            except PersistenceError as e:
                logger.error(f"Gap fetch failed for pane {self.pane_id}: {e}", extra={"pane_id": self.pane_id})
                return 0
            self._last_gap_check = now

            fresh = [i for i in self._owned(missed) if i.id not in self._seen]
            if not fresh:
                return 0

            read, saved = await self._user_state.flags_for(self.user_id, [i.id for i in fresh])
            until = now + GAP_HIGHLIGHT
            new_entries = [
                PaneEntry(
                    item=i,
                    tags=tags_for(i),
                    is_read=i.id in read,
                    is_saved=i.id in saved,
                    highlight=HighlightType.GAP,
                    highlight_until=until,
                )
                for i in fresh
            ]
            self._entries = self._ordered([*new_entries, *self._entries])
            self._remember((i.id for i in fresh), now)
            for i in fresh:
                self._advance_watermark(i.published_at)
            self._schedule_highlight_clear(GAP_HIGHLIGHT)

            logger.info(
                "Recovered missed items",
                extra={"pane_id": self.pane_id, "fetched": len(missed), "merged": len(fresh)},
            )
            self._notify()
            return len(fresh)

    # ── Read / saved notifications ────────────────────────────────────────

    async def _on_read_change(self, change: ChangeEvent) -> None:
        await self._apply_flag(change, "is_read")

    async def _on_saved_change(self, change: ChangeEvent) -> None:
        await self._apply_flag(change, "is_saved")

    async def _apply_flag(self, change: ChangeEvent, flag: str) -> None:
        if change.record.get("user_id") != self.user_id:
            return
        item_id = change.record.get("news_item_id")
        value = change.event is ChangeType.INSERT
        async with self._lock:
            if self._state is SessionState.CLOSED:
                return
            updated = False
            for idx, entry in enumerate(self._entries):
                if entry.id == item_id and getattr(entry, flag) != value:
                    self._entries[idx] = replace(entry, **{flag: value})
                    updated = True
            if updated:
                self._notify()

    # ── Highlights ────────────────────────────────────────────────────────

    def clear_expired_highlights(self, now: Optional[datetime] = None) -> int:
        """Reset highlights whose deadline has passed. Returns entries changed."""
        now = now or self._clock()
        cleared = 0
        for idx, entry in enumerate(self._entries):
            if entry.highlight_until is not None and entry.highlight_until <= now:
                self._entries[idx] = replace(entry, highlight=HighlightType.NONE, highlight_until=None)
                cleared += 1
        if cleared:
            self._notify()
        return cleared

    def _schedule_highlight_clear(self, delay: timedelta) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(handle)
            if self._state is not SessionState.CLOSED:
                self.clear_expired_highlights()

        handle = loop.call_later(delay.total_seconds(), _fire)
        self._timers.add(handle)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _owned(self, items: Iterable[NewsItem]) -> list[NewsItem]:
        snapshot = self._panes.snapshot
        return [i for i in items if route(i, snapshot) == self.pane_id]

    def _ordered(self, entries: list[PaneEntry]) -> list[PaneEntry]:
        unique: dict[str, PaneEntry] = {}
        for entry in entries:
            unique.setdefault(entry.id, entry)
        ordered = sorted(unique.values(), key=lambda e: e.item.published_at, reverse=True)
        return ordered[: self._max_items]

    def _remember(self, item_ids: Iterable[str], now: datetime) -> None:
        """Record ids as processed and forget ids seen more than SEEN_RETENTION ago."""
        for item_id in item_ids:
            self._seen.setdefault(item_id, now)
        cutoff = now - SEEN_RETENTION
        oldest = next(iter(self._seen.values()), None)
        if oldest is None or oldest >= cutoff:
            return
        displayed = {e.id for e in self._entries}
        self._seen = {i: t for i, t in self._seen.items() if t >= cutoff or i in displayed}

    def _advance_watermark(self, published_at: datetime) -> None:
        if self._watermark is None or published_at > self._watermark:
            self._watermark = published_at

    def _notify(self) -> None:
        if self._listener is None:
            return
        try:
            self._listener(self.view)
        except Exception:
            logger.exception("View listener failed", extra={"pane_id": self.pane_id})

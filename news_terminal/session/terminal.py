"""
Terminal Session

All pane controllers of one viewer. The panes share a single sound gate,
so a burst of qualifying items across panes still produces at most one
sound per cooldown window.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from news_terminal.models.news import utcnow
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.session.controller import (
    DEFAULT_MAX_ITEMS,
    FeedSessionController,
    PaneView,
    ViewListener,
)
from news_terminal.session.sound import (
    DEFAULT_COOLDOWN_MS,
    SoundAlertGate,
    SoundSettingsService,
    SoundSink,
)
from news_terminal.store.interface import ChangeFeed, NewsStore

logger = logging.getLogger(__name__)


class TerminalSession:
    """
    Usage:
        session = TerminalSession(user_id, store, pane_store, changes)
        await session.start()
        ...
        await session.on_visible()
        views = session.views()
        ...
        await session.close()
    """

    def __init__(
        self,
        user_id: str,
        store: NewsStore,
        panes: PaneRuleStore,
        changes: ChangeFeed,
        sound_settings: Optional[SoundSettingsService] = None,
        sound_sink: Optional[SoundSink] = None,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        max_items: int = DEFAULT_MAX_ITEMS,
        pane_ids: Optional[Iterable[str]] = None,
        clock: Callable[[], datetime] = utcnow,
        listener: Optional[ViewListener] = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._panes = panes
        self._changes = changes
        self._sound_settings = sound_settings or SoundSettingsService()
        self.sound_gate = SoundAlertGate(cooldown_ms=cooldown_ms, sink=sound_sink)
        self._max_items = max_items
        self._pane_ids = list(pane_ids) if pane_ids is not None else None
        self._clock = clock
        self._listener = listener
        self._controllers: dict[str, FeedSessionController] = {}

    @property
    def controllers(self) -> dict[str, FeedSessionController]:
        return dict(self._controllers)

    async def start(self) -> dict[str, PaneView]:
        if not self._panes.snapshot:
            await self._panes.refresh()
        pane_ids = self._pane_ids or [p.id for p in self._panes.snapshot]

        for pane_id in pane_ids:
            self._controllers[pane_id] = FeedSessionController(
                pane_id=pane_id,
                user_id=self.user_id,
                store=self._store,
                panes=self._panes,
                changes=self._changes,
                sound_gate=self.sound_gate,
                sound_settings=self._sound_settings,
                max_items=self._max_items,
                clock=self._clock,
                listener=self._listener,
            )
        await asyncio.gather(*(c.start() for c in self._controllers.values()))
        logger.info(
            "Terminal session started",
            extra={"user_id": self.user_id, "panes": list(self._controllers)},
        )
        return self.views()

    async def on_visible(self) -> int:
        """Run gap recovery in every pane. Returns total entries merged."""
        counts = await asyncio.gather(*(c.on_visible() for c in self._controllers.values()))
        return sum(counts)

    def views(self) -> dict[str, PaneView]:
        return {pane_id: c.view for pane_id, c in self._controllers.items()}

    async def close(self) -> None:
        await asyncio.gather(*(c.close() for c in self._controllers.values()))
        self._controllers.clear()
        logger.info("Terminal session closed", extra={"user_id": self.user_id})

"""
Pane Rule Store

Holds the current pane configuration as an immutable snapshot. Readers take
`snapshot` once per routing decision; writers build a new tuple and swap it
in, so an in-flight route() never sees a half-applied edit.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from news_terminal.core.types import NotFoundError, ValidationError
from news_terminal.models.news import MAX_KEYWORDS_PER_PANE, FilterMode, Pane, PaneRules
from news_terminal.routing.defaults import DEFAULT_PANES
from news_terminal.store.changes import PANES, ChangeEvent, ChangeType, Subscription
from news_terminal.store.interface import ChangeFeed, NewsStore

logger = logging.getLogger(__name__)


class PaneRuleStore:
    """Snapshot cache over the panes table with validated keyword edits."""

    def __init__(self, store: NewsStore, changes: Optional[ChangeFeed] = None) -> None:
        self._store = store
        self._changes = changes
        self._snapshot: tuple[Pane, ...] = ()
        self._subscription: Optional[Subscription] = None

    @property
    def snapshot(self) -> tuple[Pane, ...]:
        return self._snapshot

    def get(self, pane_id: str) -> Pane:
        for pane in self._snapshot:
            if pane.id == pane_id:
                return pane
        raise NotFoundError(f"Pane not found: {pane_id}", kind="pane", key=pane_id)

    async def refresh(self) -> tuple[Pane, ...]:
        """Reload every pane from the store."""
        panes = await self._store.list_panes()
        self._snapshot = tuple(panes)
        logger.debug("Pane snapshot refreshed", extra={"pane_count": len(panes)})
        return self._snapshot

    async def seed_defaults(self) -> int:
        """Write the default layout when the panes table is empty."""
        if await self._store.list_panes():
            return 0
        for pane in DEFAULT_PANES:
            await self._store.save_pane(pane)
        await self.refresh()
        logger.info("Seeded default panes", extra={"pane_count": len(DEFAULT_PANES)})
        return len(DEFAULT_PANES)

    # ── Live updates ──────────────────────────────────────────────────────

    def watch(self) -> Subscription:
        """Apply panes UPDATE notifications to the snapshot until closed."""
        if self._changes is None:
            raise RuntimeError("PaneRuleStore has no change feed to watch")
        if self._subscription is None or not self._subscription.active:
            self._subscription = self._changes.subscribe(PANES, ChangeType.UPDATE, self._on_update)
        return self._subscription

    async def _on_update(self, change: ChangeEvent) -> None:
        pane = Pane.from_record(change.record)
        self._apply(pane)

    def _apply(self, pane: Pane) -> None:
        panes = [p for p in self._snapshot if p.id != pane.id]
        panes.append(pane)
        self._snapshot = tuple(sorted(panes, key=lambda p: p.id))

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    # ── Edits ─────────────────────────────────────────────────────────────

    async def _save_rules(self, pane: Pane, rules: PaneRules) -> Pane:
        updated = await self._store.update_pane_rules(pane.id, rules)
        self._apply(updated)
        return updated

    async def add_keyword(self, pane_id: str, keyword: str) -> Pane:
        """
        Add a keyword to a pane.

        Raises:
            NotFoundError: If the pane does not exist.
            ValidationError: If the keyword is empty, already present
                (case-insensitive) or the pane is at its keyword limit.
        """
        pane = self.get(pane_id)
        cleaned = keyword.strip() if isinstance(keyword, str) else ""
        if not cleaned:
            raise ValidationError("Keyword must be a non-empty string", field="keyword", value=keyword)

        existing = pane.rules.keywords
        if len(existing) >= MAX_KEYWORDS_PER_PANE:
            raise ValidationError(
                f"Maximum of {MAX_KEYWORDS_PER_PANE} keywords allowed per pane",
                field="keyword",
                value=cleaned,
            )
        if cleaned.lower() in (k.lower() for k in existing):
            raise ValidationError("Keyword already exists", field="keyword", value=cleaned)

        updated = await self._save_rules(pane, pane.rules.with_keywords((*existing, cleaned)))
        logger.info("Keyword added", extra={"pane_id": pane_id, "keyword": cleaned})
        return updated

    async def remove_keyword(self, pane_id: str, keyword: str) -> Pane:
        """Remove a keyword. Removing an absent keyword leaves the pane unchanged."""
        pane = self.get(pane_id)
        remaining = tuple(k for k in pane.rules.keywords if k != keyword)
        if remaining == pane.rules.keywords:
            return pane
        updated = await self._save_rules(pane, pane.rules.with_keywords(remaining))
        logger.info("Keyword removed", extra={"pane_id": pane_id, "keyword": keyword})
        return updated

    async def set_filter_mode(self, pane_id: str, mode: FilterMode) -> Pane:
        pane = self.get(pane_id)
        if pane.rules.filter_mode is mode:
            return pane
        return await self._save_rules(pane, replace(pane.rules, filter_mode=mode))

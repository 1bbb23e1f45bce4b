"""
Per-user read and saved state.

Thin service over the store's membership tables. Writes are idempotent:
marking an item read twice adds one row and emits one change event.
"""
from __future__ import annotations

import logging
from typing import Iterable

from news_terminal.core.types import PersistenceError, ValidationError
from news_terminal.store.interface import NewsStore

logger = logging.getLogger(__name__)


def _require(value: str, field: str) -> str:
    if not value:
        raise ValidationError(f"{field} must be non-empty", field=field)
    return value


class UserStateService:
    def __init__(self, store: NewsStore) -> None:
        self._store = store

    # ── read ──────────────────────────────────────────────────────────────

    async def mark_as_read(self, user_id: str, item_id: str) -> bool:
        return await self._store.mark_read(_require(user_id, "user_id"), [_require(item_id, "item_id")]) > 0

    async def mark_all_as_read(self, user_id: str, item_ids: Iterable[str]) -> int:
        ids = [i for i in item_ids if i]
        if not ids:
            return 0
        return await self._store.mark_read(_require(user_id, "user_id"), ids)

    async def mark_as_unread(self, user_id: str, item_id: str) -> bool:
        return await self._store.unmark_read(_require(user_id, "user_id"), item_id)

    async def get_read_status(self, user_id: str, item_ids: Iterable[str]) -> dict[str, bool]:
        ids = list(item_ids)
        read = await self._store.read_ids(user_id, ids)
        return {i: i in read for i in ids}

    # ── saved ─────────────────────────────────────────────────────────────

    async def save_item(self, user_id: str, item_id: str) -> bool:
        return await self._store.mark_saved(_require(user_id, "user_id"), [_require(item_id, "item_id")]) > 0

    async def save_multiple(self, user_id: str, item_ids: Iterable[str]) -> int:
        ids = [i for i in item_ids if i]
        if not ids:
            return 0
        return await self._store.mark_saved(_require(user_id, "user_id"), ids)

    async def unsave_item(self, user_id: str, item_id: str) -> bool:
        return await self._store.unmark_saved(_require(user_id, "user_id"), item_id)

    async def get_saved_status(self, user_id: str, item_ids: Iterable[str]) -> dict[str, bool]:
        ids = list(item_ids)
        saved = await self._store.saved_ids(user_id, ids)
        return {i: i in saved for i in ids}

    # ── combined ──────────────────────────────────────────────────────────

    async def flags_for(self, user_id: str, item_ids: Iterable[str]) -> tuple[set[str], set[str]]:
        """
        (read ids, saved ids) for display.

        A failed lookup degrades to "nothing read / nothing saved" for that
        table instead of failing the caller.
        """
        ids = list(item_ids)
        if not ids:
            return set(), set()
        try:
            read = await self._store.read_ids(user_id, ids)
        except PersistenceError as e:
            logger.warning(f"Read status lookup failed: {e}", extra={"user_id": user_id})
            read = set()
        try:
            saved = await self._store.saved_ids(user_id, ids)
        except PersistenceError as e:
            logger.warning(f"Saved status lookup failed: {e}", extra={"user_id": user_id})
            saved = set()
        return read, saved

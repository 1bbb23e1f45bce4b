"""
Retention Job

Moves items older than the retention window from news_items to
news_archive. The set of rows to move is fixed by a single snapshot query,
and exactly those ids are deleted afterwards, so rows inserted while the
job runs are never touched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from news_terminal.core.types import PersistenceError
from news_terminal.models.news import IngestionLog, IngestionStatus, utcnow
from news_terminal.store.interface import NewsStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 10


@dataclass(frozen=True)
class ArchiveReport:
    archived: int
    deleted: int
    cutoff: datetime

    def to_dict(self) -> dict[str, Any]:
        if self.archived == 0:
            return {"message": "No items to archive", "archived": 0, "deleted": 0}
        return {
            "message": "Archive completed successfully",
            "archived": self.archived,
            "deleted": self.deleted,
            "cutoffDate": self.cutoff.isoformat(),
        }


def retention_cutoff(now: datetime, retention_days: int = DEFAULT_RETENTION_DAYS) -> datetime:
    """Items published strictly before this instant are archived."""
    return now - timedelta(days=retention_days)


class RetentionJob:
    """
    Archive-then-delete pass over news_items.

    A store failure while copying or deleting propagates as PersistenceError;
    the audit log write is best effort.
    """

    def __init__(
        self,
        store: NewsStore,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if retention_days <= 0:
            raise ValueError(f"retention_days must be positive, got {retention_days}")
        self._store = store
        self._retention_days = retention_days
        self._clock = clock

    async def run(self) -> ArchiveReport:
        now = self._clock()
        cutoff = retention_cutoff(now, self._retention_days)

        snapshot = await self._store.items_published_before(cutoff)
        if not snapshot:
            logger.info("No items to archive", extra={"cutoff": cutoff.isoformat()})
            return ArchiveReport(archived=0, deleted=0, cutoff=cutoff)

        archived = await self._store.archive_items(snapshot)
        deleted = await self._store.delete_items(item.id for item in snapshot)

        try:
            await self._store.add_ingestion_log(IngestionLog(
                feed_id=None,
                status=IngestionStatus.SUCCESS,
                items_fetched=archived,
                created_at=now,
            ))
        except PersistenceError as e:
            logger.warning(f"Failed to log archival: {e}")

        logger.info(
            "Archive completed",
            extra={"archived": archived, "deleted": deleted, "cutoff": cutoff.isoformat()},
        )
        return ArchiveReport(archived=archived, deleted=deleted, cutoff=cutoff)

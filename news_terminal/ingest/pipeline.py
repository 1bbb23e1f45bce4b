"""
Ingestion Pipeline

Pulls every active RSS source, classifies each entry and inserts new items.
Sources are processed one after another; a failing source is logged and
recorded in ingestion_logs without affecting the others.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from news_terminal.core.types import FetchError, PersistenceError
from news_terminal.ingest.feed_client import ParsedFeed
from news_terminal.ingest.normalizer import FeedEntry, content_hash
from news_terminal.models.news import (
    IngestionLog,
    IngestionStatus,
    NewsItem,
    RSSSource,
    SystemState,
    SystemStatus,
    utcnow,
)
from news_terminal.store.interface import NewsStore
from news_terminal.tagger.classifier import NewsClassifier

logger = logging.getLogger(__name__)


class EntrySource(Protocol):
    """Anything that can fetch parsed entries for a source (RSSFeedClient)."""

    async def fetch_entries(self, source: RSSSource) -> ParsedFeed:
        ...


@dataclass
class SourceResult:
    """Outcome of one source within one run."""

    source: str
    success: int = 0
    failed: int = 0
    duplicates: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "source": self.source,
            "success": self.success,
            "failed": self.failed,
            "duplicates": self.duplicates,
        }
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class IngestionReport:
    results: list[SourceResult] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return sum(r.success for r in self.results)

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.results)

    @property
    def total_duplicates(self) -> int:
        return sum(r.duplicates for r in self.results)

    @property
    def sources_failed(self) -> int:
        return sum(1 for r in self.results if r.error is not None)

    def system_state(self) -> SystemState:
        if not self.results or self.sources_failed == 0:
            return SystemState.LIVE
        if self.sources_failed == len(self.results):
            return SystemState.ERROR
        return SystemState.PARTIAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "RSS ingestion completed",
            "totalInserted": self.total_inserted,
            "totalFailed": self.total_failed,
            "totalDuplicates": self.total_duplicates,
            "results": [r.to_dict() for r in self.results],
        }


class IngestionPipeline:
    """
    One pass over all active sources.

    Usage:
        async with RSSFeedClient(...) as client:
            report = await IngestionPipeline(store, client).run()
    """

    def __init__(
        self,
        store: NewsStore,
        client: EntrySource,
        classifier: Optional[NewsClassifier] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._store = store
        self._client = client
        self._classifier = classifier or NewsClassifier()
        self._clock = clock
        self._id_factory = id_factory

    async def run(self) -> Optional[IngestionReport]:
        """
        Ingest every active source.

        Returns None when no active sources are configured.
        """
        sources = await self._store.list_active_sources()
        if not sources:
            logger.info("No active RSS sources configured")
            return None

        report = IngestionReport()
        for source in sources:
            report.results.append(await self.process_source(source))

        state = report.system_state()
        await self._store.set_system_status(SystemStatus(status=state, last_ingest=self._clock()))

        logger.info(
            "RSS ingestion completed",
            extra={
                "sources": len(sources),
                "inserted": report.total_inserted,
                "failed": report.total_failed,
                "duplicates": report.total_duplicates,
                "status": state.value,
            },
        )
        return report

    async def process_source(self, source: RSSSource) -> SourceResult:
        """
        Ingest one source. Never raises: any failure is recorded on the
        result and in ingestion_logs so the run moves on to the next source.
        """
        result = SourceResult(source=source.name)
        try:
            parsed = await self._client.fetch_entries(source)
            result.failed += parsed.skipped
            for entry in parsed.entries:
                await self._ingest_entry(source, entry, result)
        except FetchError as e:
            logger.warning(
                f"Feed fetch failed for {source.name}: {e.message}",
                extra={"source_id": source.id, "error": e.message},
            )
            return await self._fail_source(source, result, e.message)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception(
                f"Unexpected error processing {source.name}: {message}",
                extra={"source_id": source.id},
            )
            return await self._fail_source(source, result, message)

        await self._log(IngestionLog(
            feed_id=source.id,
            status=IngestionStatus.SUCCESS,
            items_fetched=result.success,
            created_at=self._clock(),
        ))
        return result

    async def _ingest_entry(self, source: RSSSource, entry: FeedEntry, result: SourceResult) -> None:
        fingerprint = content_hash(entry.title, source.name)
        try:
            if await self._store.has_hash(fingerprint):
                result.duplicates += 1
                return

            tags = self._classifier.classify(entry.title, source.name)
            now = self._clock()
            item = NewsItem(
                id=self._id_factory(),
                headline=entry.title,
                source=source.name,
                url=entry.link,
                published_at=entry.published_at or now,
                region=tags.region,
                markets=tags.markets,
                themes=tags.themes,
                hash=fingerprint,
                created_at=now,
            )
            # The unique hash constraint still catches a concurrent writer.
            if await self._store.insert_item(item) is None:
                result.duplicates += 1
            else:
                result.success += 1
        except PersistenceError as e:
            result.failed += 1
            logger.warning(
                f"Insert failed for entry from {source.name}: {e}",
                extra={"source_id": source.id, "url": entry.link},
            )

    async def _fail_source(self, source: RSSSource, result: SourceResult, message: str) -> SourceResult:
        result.error = message
        await self._log(IngestionLog(
            feed_id=source.id,
            status=IngestionStatus.FAILED,
            items_fetched=result.success,
            error_message=message,
            created_at=self._clock(),
        ))
        return result

    async def _log(self, log: IngestionLog) -> None:
        try:
            await self._store.add_ingestion_log(log)
        except PersistenceError as e:
            logger.warning(f"Failed to write ingestion log: {e}", extra={"feed_id": log.feed_id})

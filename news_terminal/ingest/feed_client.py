"""
RSS Feed Client

Fetches feed documents over a shared aiohttp session and parses them with
feedparser.

Usage:
    async with RSSFeedClient(timeout_seconds=15.0) as client:
        entries = await client.fetch_entries(source)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import aiohttp
import feedparser

from news_terminal.core.types import FetchError
from news_terminal.ingest.normalizer import FeedEntry, normalize_entry
from news_terminal.models.news import RSSSource

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "News Terminal RSS Reader/1.0"


@dataclass(frozen=True)
class ParsedFeed:
    entries: list[FeedEntry] = field(default_factory=list)
    skipped: int = 0


def parse_feed(document: Union[str, bytes], source: RSSSource) -> ParsedFeed:
    """
    Parse an RSS/Atom document into entries.

    Raw bytes are preferred: feedparser sniffs the encoding from the XML
    declaration and byte order mark instead of trusting the HTTP charset.

    Entries without a title or link are skipped and counted.

    Raises:
        FetchError: If the document is not a feed at all.
    """
    feed = feedparser.parse(document)
    raw_entries = feed.get("entries", [])
    if feed.get("bozo") and not raw_entries:
        reason = feed.get("bozo_exception")
        raise FetchError(f"Failed to parse RSS: {reason}", source=source.name)

    entries: list[FeedEntry] = []
    skipped = 0
    for raw in raw_entries:
        entry = normalize_entry(raw)
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)
    return ParsedFeed(entries=entries, skipped=skipped)


class RSSFeedClient:
    """One aiohttp session shared by every source in an ingestion run."""

    def __init__(
        self,
        timeout_seconds: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> RSSFeedClient:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def fetch_document(self, source: RSSSource) -> bytes:
        """
        Download a feed document as undecoded bytes.

        Raises:
            FetchError: On non-2xx status, network failure or timeout.
        """
        if self._session is None:
            raise RuntimeError("RSSFeedClient used outside of 'async with'")

        try:
            async with self._session.get(
                source.url,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    raise FetchError(
                        f"Failed to fetch RSS: {resp.status} {resp.reason}",
                        source=source.name,
                        status=resp.status,
                    )
                return await resp.read()
        except asyncio.TimeoutError as e:
            raise FetchError("Failed to fetch RSS: timed out", source=source.name) from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Failed to fetch RSS: {e}", source=source.name) from e

    async def fetch_entries(self, source: RSSSource) -> ParsedFeed:
        document = await self.fetch_document(source)
        parsed = parse_feed(document, source)
        logger.debug(
            "Fetched feed",
            extra={"source": source.name, "entries": len(parsed.entries), "skipped": parsed.skipped},
        )
        return parsed

"""
Mock feed client for running without network access.

Produces realistic market headlines for a fixed set of mock sources and
plugs into the ingestion pipeline in place of RSSFeedClient.

Usage:
    python -m news_terminal.main serve --mock
"""
from __future__ import annotations

import random
import uuid
from datetime import timedelta

from news_terminal.ingest.feed_client import ParsedFeed
from news_terminal.ingest.normalizer import FeedEntry
from news_terminal.models.news import RSSSource, utcnow
from news_terminal.store.interface import NewsStore

HEADLINES: list[str] = [
    # ── Policy ────────────────────────────────────────────────────
    "Fed signals potential rate cut as inflation cools to 2.6%",
    "ECB holds rates steady, Lagarde cites weak euro zone growth",
    "Bank of Japan ends negative rates in historic policy shift",
    "US Treasury unveils $1.9 trillion budget deficit projection",
    "UK chancellor announces fiscal stimulus package ahead of election",
    "RBA raises cash rate by 25 basis points to curb inflation",
    # ── Data ──────────────────────────────────────────────────────
    "US CPI comes in at 3.4% YoY, above consensus estimates",
    "US nonfarm payrolls rise 275K, unemployment steady at 3.9%",
    "China GDP growth slows to 4.7% in second quarter",
    "Germany manufacturing PMI contracts for ninth straight month",
    "Japan retail sales beat forecasts on strong consumer spending",
    # ── Corporate ─────────────────────────────────────────────────
    "Apple reports quarterly earnings beat on services revenue",
    "Microsoft agrees $20B acquisition of cybersecurity firm",
    "Shell announces $3.5B share buyback after record profit",
    "Toyota raises full-year profit guidance on weak yen",
    "Arm files for Nasdaq IPO seeking $50B valuation",
    "Unilever confirms merger talks with consumer goods rival",
    "Siemens declares special dividend after asset sale",
    # ── Risk ──────────────────────────────────────────────────────
    "US sanctions Russian banks over Ukraine war escalation",
    "Israel strikes targets in Lebanon as regional tensions mount",
    "Evergrande liquidation order deepens China property crisis",
    "Argentina misses bond payment, ratings agencies warn of default",
    "Bitcoin crashes 12% after exchange halts withdrawals",
    "NATO warns of cyberattack on European energy grid",
    # ── Markets ───────────────────────────────────────────────────
    "Brent crude jumps above $90 on OPEC supply cuts",
    "Gold hits record high as Treasury yields slide",
    "Dollar index rises as traders price in fewer Fed cuts",
    "S&P 500 closes at record on tech rally",
    "Nikkei surges past 40,000 for the first time",
    "Corporate bond spreads widen as credit concerns grow",
]

MOCK_SOURCES: tuple[RSSSource, ...] = (
    RSSSource(id="mock-wire", name="Mock Wire", url="mock://wire", region="GLOBAL"),
    RSSSource(id="mock-markets", name="Mock Markets", url="mock://markets", region="AMERICAS"),
    RSSSource(id="mock-asia", name="Mock Asia Desk", url="mock://asia", region="ASIA_PACIFIC"),
)


async def register_mock_sources(store: NewsStore) -> int:
    """Register the mock sources unless the store already has active ones."""
    if await store.list_active_sources():
        return 0
    for source in MOCK_SOURCES:
        await store.save_source(source)
    return len(MOCK_SOURCES)


class MockFeedClient:
    """
    Drop-in replacement for RSSFeedClient.

    Each fetch returns a few random headlines stamped within the last few
    minutes. Headlines repeat across fetches, so the pipeline's duplicate
    detection sees realistic traffic.
    """

    def __init__(self, entries_per_fetch: tuple[int, int] = (1, 4), rng: random.Random | None = None) -> None:
        self._entries_per_fetch = entries_per_fetch
        self._rng = rng or random.Random()

    async def __aenter__(self) -> MockFeedClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def fetch_entries(self, source: RSSSource) -> ParsedFeed:
        count = self._rng.randint(*self._entries_per_fetch)
        now = utcnow()
        entries = [
            FeedEntry(
                title=headline,
                link=f"https://news.example.com/{source.id}/{uuid.uuid4().hex[:12]}",
                published_at=now - timedelta(seconds=self._rng.randint(0, 300)),
            )
            for headline in self._rng.sample(HEADLINES, count)
        ]
        return ParsedFeed(entries=entries)

"""
Shared fixtures: item factory, fixed clock, seeded in-memory store.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from news_terminal.ingest.normalizer import content_hash
from news_terminal.models.news import NewsItem
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.store.changes import LocalChangeFeed
from news_terminal.store.memory import InMemoryStore
from news_terminal.tagger.classifier import classify

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def build_item(
    headline: str,
    source: str = "Reuters",
    published_at: datetime = NOW,
    created_at: datetime | None = None,
    item_id: str | None = None,
) -> NewsItem:
    tags = classify(headline, source)
    return NewsItem(
        id=item_id or uuid.uuid4().hex,
        headline=headline,
        source=source,
        url=f"https://example.com/{uuid.uuid4().hex[:8]}",
        published_at=published_at,
        region=tags.region,
        markets=tags.markets,
        themes=tags.themes,
        hash=content_hash(headline, source),
        created_at=created_at or published_at,
    )


@pytest.fixture
def make_item():
    return build_item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def changes():
    return LocalChangeFeed()


@pytest.fixture
async def store(changes):
    s = InMemoryStore(changes)
    yield s
    await s.close()


@pytest.fixture
async def panes(store, changes):
    """Pane store seeded with the default layout and watching for updates."""
    pane_store = PaneRuleStore(store, changes)
    await pane_store.seed_defaults()
    pane_store.watch()
    yield pane_store
    pane_store.close()

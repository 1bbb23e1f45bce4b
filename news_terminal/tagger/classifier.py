"""
News Classifier

Deterministic region/market/theme tagging over headline and source name.
No network, no model: the same text always yields the same tags.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Pattern, TypeVar

from news_terminal.models.news import (
    MAX_TAGS_PER_CATEGORY,
    Market,
    NewsItem,
    NewsTag,
    Region,
    TagCategory,
    Theme,
)
from news_terminal.tagger.rules import (
    DEFAULT_REGION,
    MARKET_RULES,
    REGION_RULES,
    THEME_RULES,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class Classification:
    """Tags produced for one headline."""

    region: Region
    markets: tuple[Market, ...]
    themes: tuple[Theme, ...]


def _collect(rules: Iterable[tuple[_T, Pattern[str]]], text: str) -> tuple[_T, ...]:
    found: list[_T] = []
    for tag, pattern in rules:
        if pattern.search(text):
            found.append(tag)
            if len(found) >= MAX_TAGS_PER_CATEGORY:
                break
    return tuple(found)


def classify(headline: str, source: str = "") -> Classification:
    """
    Tag a headline.

    Matching runs case-insensitively over "headline source". Region is the
    first matching rule (GLOBAL when none match); markets and themes keep
    at most two matches each, in rule order.
    """
    text = f"{headline} {source}".lower()

    region = DEFAULT_REGION
    for candidate, pattern in REGION_RULES:
        if pattern.search(text):
            region = candidate
            break

    return Classification(
        region=region,
        markets=_collect(MARKET_RULES, text),
        themes=_collect(THEME_RULES, text),
    )


def tags_for(item: NewsItem) -> tuple[NewsTag, ...]:
    """Flatten an item's tags for display. Only theme tags are sound-enabled."""
    tags = [NewsTag(TagCategory.REGION, item.region.value)]
    tags.extend(NewsTag(TagCategory.MARKET, m.value) for m in item.markets)
    tags.extend(NewsTag(TagCategory.THEME, t.value) for t in item.themes)
    return tuple(tags)


@dataclass
class ClassifierStats:
    """Statistics for the classifier."""

    items_classified: int = 0
    defaulted_to_global: int = 0
    untagged_themes: int = 0


class NewsClassifier:
    """
    Stateful wrapper around classify() that keeps running counters.

    Used by the ingestion pipeline so each run can report how many
    headlines fell through to the GLOBAL default.
    """

    def __init__(self) -> None:
        self._stats = ClassifierStats()

    @property
    def stats(self) -> ClassifierStats:
        return self._stats

    def classify(self, headline: str, source: str = "") -> Classification:
        result = classify(headline, source)
        self._stats.items_classified += 1
        if result.region is Region.GLOBAL:
            self._stats.defaulted_to_global += 1
        if not result.themes:
            self._stats.untagged_themes += 1
        logger.debug(
            "Classified headline",
            extra={
                "region": result.region.value,
                "markets": [m.value for m in result.markets],
                "themes": [t.value for t in result.themes],
            },
        )
        return result

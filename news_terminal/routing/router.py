"""
Pane Router

Resolves the single pane that owns a news item. Routing is a pure function
of the item and one immutable pane snapshot, so every viewer computes the
same owner for the same item.

Eligibility needs BOTH a tag match and at least one keyword hit; the pane's
filter mode is deliberately ignored here. The filter mode only drives the
display filter used by the stream endpoint (matches_display_filter).
"""
from __future__ import annotations

from typing import Iterable, Mapping, Optional

from news_terminal.models.news import FilterMode, NewsItem, Pane, PaneRules

PANE_PRIORITIES: Mapping[str, int] = {
    "risk_events": 1,
    "corporate": 2,
    "macro_policy": 3,
    "americas": 4,
    "europe": 4,
    "asia_pacific": 4,
}

UNKNOWN_PANE_PRIORITY = 99


def pane_priority(pane_id: str) -> int:
    """Fixed rank for a pane id; lower wins. Unknown ids rank last."""
    return PANE_PRIORITIES.get(pane_id, UNKNOWN_PANE_PRIORITY)


def matches_tags(item: NewsItem, rules: PaneRules) -> bool:
    """
    OR across categories: an empty category list counts as a match.

    A pane with no tag filters at all therefore matches every item.
    """
    region_ok = not rules.regions or item.region in rules.regions
    market_ok = not rules.markets or any(m in rules.markets for m in item.markets)
    theme_ok = not rules.themes or any(t in rules.themes for t in item.themes)
    return region_ok or market_ok or theme_ok


def keyword_score(item: NewsItem, keywords: Iterable[str]) -> int:
    """Number of keywords found as case-insensitive substrings of headline + source."""
    text = f"{item.headline} {item.source}".lower()
    return sum(1 for kw in keywords if kw and kw.lower() in text)


def route(item: NewsItem, panes: Iterable[Pane]) -> Optional[str]:
    """
    Return the id of the best-matching pane, or None.

    Ranking: lowest priority rank, then higher keyword score, then the
    lexicographically smallest pane id.
    """
    best: Optional[tuple[int, int, str]] = None
    for pane in panes:
        score = keyword_score(item, pane.rules.keywords)
        if score == 0 or not matches_tags(item, pane.rules):
            continue
        candidate = (pane_priority(pane.id), -score, pane.id)
        if best is None or candidate < best:
            best = candidate
    return best[2] if best is not None else None


def matches_display_filter(item: NewsItem, rules: PaneRules) -> bool:
    """
    Per-pane display filter for streamed items.

    keywords-only: any keyword hit (or no keywords configured).
    hybrid: tag match AND (no keywords or any keyword hit).
    """
    has_keywords = bool(rules.keywords)
    keyword_hit = keyword_score(item, rules.keywords) > 0

    if rules.filter_mode is FilterMode.KEYWORDS_ONLY:
        return not has_keywords or keyword_hit
    return matches_tags(item, rules) and (not has_keywords or keyword_hit)

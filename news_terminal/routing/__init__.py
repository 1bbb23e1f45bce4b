"""
Pane routing: single-owner resolution and per-pane display filtering.
"""
from news_terminal.routing.defaults import DEFAULT_PANES
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.routing.router import (
    PANE_PRIORITIES,
    UNKNOWN_PANE_PRIORITY,
    keyword_score,
    matches_display_filter,
    matches_tags,
    pane_priority,
    route,
)

__all__ = [
    "DEFAULT_PANES",
    "PANE_PRIORITIES",
    "PaneRuleStore",
    "UNKNOWN_PANE_PRIORITY",
    "keyword_score",
    "matches_display_filter",
    "matches_tags",
    "pane_priority",
    "route",
]

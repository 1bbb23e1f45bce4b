"""
News Terminal Data Models

Frozen dataclasses with validation.
"""
from news_terminal.models.news import (
    DEFAULT_SOUND_TAGS,
    MAX_KEYWORDS_PER_PANE,
    MAX_TAGS_PER_CATEGORY,
    FilterMode,
    IngestionLog,
    IngestionStatus,
    Market,
    NewsItem,
    NewsTag,
    Pane,
    PaneRules,
    Region,
    RSSSource,
    SoundSettingsRecord,
    SystemState,
    SystemStatus,
    TagCategory,
    Theme,
    parse_datetime,
    utcnow,
)

__all__ = [
    "DEFAULT_SOUND_TAGS",
    "MAX_KEYWORDS_PER_PANE",
    "MAX_TAGS_PER_CATEGORY",
    "FilterMode",
    "IngestionLog",
    "IngestionStatus",
    "Market",
    "NewsItem",
    "NewsTag",
    "Pane",
    "PaneRules",
    "Region",
    "RSSSource",
    "SoundSettingsRecord",
    "SystemState",
    "SystemStatus",
    "TagCategory",
    "Theme",
    "parse_datetime",
    "utcnow",
]

"""
Storage backends and row-change notification.

Public API:
    NewsStore, ChangeFeed     - protocols every backend satisfies
    InMemoryStore             - dict-backed store for development and tests
    SQLiteStore               - durable aiosqlite store
    LocalChangeFeed           - in-process change fan-out
    RedisChangeFeed           - cross-process change fan-out over Redis pub/sub
"""
from news_terminal.store.changes import (
    NEWS_ITEMS,
    PANES,
    USER_READ_ITEMS,
    USER_SAVED_ITEMS,
    ChangeEvent,
    ChangeFeedError,
    ChangeHandler,
    ChangeType,
    LocalChangeFeed,
    Subscription,
)
from news_terminal.store.interface import ChangeFeed, NewsStore
from news_terminal.store.memory import InMemoryStore
from news_terminal.store.redis_feed import RedisChangeFeed
from news_terminal.store.serializer import SerializationError
from news_terminal.store.sqlite import SQLiteStore

__all__ = [
    "NEWS_ITEMS",
    "PANES",
    "USER_READ_ITEMS",
    "USER_SAVED_ITEMS",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeFeedError",
    "ChangeHandler",
    "ChangeType",
    "InMemoryStore",
    "LocalChangeFeed",
    "NewsStore",
    "RedisChangeFeed",
    "SerializationError",
    "SQLiteStore",
    "Subscription",
]

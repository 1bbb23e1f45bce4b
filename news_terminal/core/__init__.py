"""
News Terminal Core Utilities

Exception taxonomy used across the service.
"""
from news_terminal.core.types import (
    AuthorizationError,
    ConfigurationError,
    FetchError,
    NewsTerminalError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "FetchError",
    "NewsTerminalError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
]

"""
HTTP surface: scheduled jobs, system status, sound settings, live stream.
"""
from news_terminal.api.auth import TokenVerifier, bearer_token, verify_internal_secret
from news_terminal.api.server import AppContext, create_app, event_stream

__all__ = [
    "AppContext",
    "TokenVerifier",
    "bearer_token",
    "create_app",
    "event_stream",
    "verify_internal_secret",
]

"""
Per-viewer feed sessions: pane controllers, sound alerts, read/saved state.
"""
from news_terminal.session.controller import (
    FeedSessionController,
    HighlightType,
    PaneEntry,
    PaneView,
    SessionState,
)
from news_terminal.session.sound import (
    SoundAlert,
    SoundAlertGate,
    SoundSettings,
    SoundSettingsService,
    should_alert,
)
from news_terminal.session.terminal import TerminalSession
from news_terminal.session.user_state import UserStateService

__all__ = [
    "FeedSessionController",
    "HighlightType",
    "PaneEntry",
    "PaneView",
    "SessionState",
    "SoundAlert",
    "SoundAlertGate",
    "SoundSettings",
    "SoundSettingsService",
    "TerminalSession",
    "UserStateService",
    "should_alert",
]

"""
Sound Alert Policy

Decides whether a newly arrived item should make a sound, and rate-limits
the sounds that do fire. Eligibility is a property of the tag category:
only theme tags can trigger an alert, region and market tags never do.

Preferences live in a process-wide SoundSettingsService with an explicit
load() at start-up and a save on every change.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from news_terminal.core.types import ValidationError
from news_terminal.models.news import NewsTag

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 5000
ALERT_MEMORY_MS = 24 * 60 * 60 * 1000
DEFAULT_VOLUME = 70


@dataclass(frozen=True)
class SoundSettings:
    """
    Viewer sound preferences.

    tag_settings maps tag keys to an explicit on/off; a key that is absent
    means the tag is enabled.
    """

    master_enabled: bool = True
    volume: int = DEFAULT_VOLUME
    tag_settings: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not (0 <= self.volume <= 100):
            raise ValidationError("volume must be between 0 and 100", field="volume", value=self.volume)
        object.__setattr__(self, "tag_settings", MappingProxyType(dict(self.tag_settings)))

    def tag_enabled(self, key: str) -> bool:
        return self.tag_settings.get(key, True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "masterEnabled": self.master_enabled,
            "volume": self.volume,
            "tagSettings": dict(self.tag_settings),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> SoundSettings:
        raw_tags = d.get("tagSettings") or {}
        return cls(
            master_enabled=bool(d.get("masterEnabled", True)),
            volume=int(d.get("volume", DEFAULT_VOLUME)),
            tag_settings={str(k): bool(v) for k, v in raw_tags.items()},
        )


def should_alert(tags: Iterable[NewsTag], settings: SoundSettings) -> bool:
    """True iff sound is on and any sound-eligible tag is not switched off."""
    if not settings.master_enabled:
        return False
    return any(tag.sound_enabled and settings.tag_enabled(tag.key) for tag in tags)


@dataclass(frozen=True)
class SoundAlert:
    """One physical sound to play."""

    item_id: str
    volume: int


SoundSink = Callable[[SoundAlert], None]


def _log_sink(alert: SoundAlert) -> None:
    logger.info("Sound alert", extra={"item_id": alert.item_id, "volume": alert.volume})


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SoundAlertGate:
    """
    Cooldown gate shared by every pane of one viewer.

    An alert fires only when the cooldown has elapsed since the last alert
    that actually fired; suppressed candidates do not push the window out.
    Each item id can fire at most once; fired ids are forgotten after
    ALERT_MEMORY_MS.
    """

    def __init__(
        self,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        sink: Optional[SoundSink] = None,
        clock_ms: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._cooldown_ms = cooldown_ms
        self._sink = sink or _log_sink
        self._clock_ms = clock_ms
        self._last_fired_ms: Optional[float] = None
        self._alerted: dict[str, float] = {}
        self.fired = 0
        self.suppressed = 0

    @property
    def cooldown_ms(self) -> int:
        return self._cooldown_ms

    def offer(self, item_id: str, tags: Iterable[NewsTag], settings: SoundSettings) -> bool:
        """Evaluate one candidate. Returns True if a sound was dispatched."""
        if item_id in self._alerted or not should_alert(tags, settings):
            return False

        now = self._clock_ms()
        if self._last_fired_ms is not None and now - self._last_fired_ms < self._cooldown_ms:
            self.suppressed += 1
            logger.debug("Sound suppressed by cooldown", extra={"item_id": item_id})
            return False

        self._last_fired_ms = now
        self._forget_before(now - ALERT_MEMORY_MS)
        self._alerted[item_id] = now
        self.fired += 1
        self._sink(SoundAlert(item_id=item_id, volume=settings.volume))
        return True

    def _forget_before(self, cutoff_ms: float) -> None:
        # Insertion order is firing order, so stale ids sit at the front.
        while self._alerted:
            oldest = next(iter(self._alerted))
            if self._alerted[oldest] >= cutoff_ms:
                break
            del self._alerted[oldest]


class SoundSettingsService:
    """
    Process-wide sound preferences persisted as JSON.

    Usage:
        service = SoundSettingsService("sound_settings.json")
        service.load()
        service.toggle_tag("risk_event")
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._settings = SoundSettings()

    @property
    def settings(self) -> SoundSettings:
        return self._settings

    def load(self) -> SoundSettings:
        """Read stored settings; a missing or corrupt file leaves the defaults."""
        if self._path is None or not self._path.exists():
            return self._settings
        try:
            self._settings = SoundSettings.from_dict(json.loads(self._path.read_text("utf-8")))
        except (json.JSONDecodeError, ValueError, TypeError, ValidationError) as e:
            logger.error(f"Failed to parse stored sound settings: {e}", extra={"path": str(self._path)})
        return self._settings

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._settings.to_dict(), indent=2), "utf-8")

    def _update(self, settings: SoundSettings) -> SoundSettings:
        self._settings = settings
        self.save()
        return settings

    def set_master_enabled(self, enabled: bool) -> SoundSettings:
        return self._update(replace(self._settings, master_enabled=enabled))

    def set_volume(self, volume: int) -> SoundSettings:
        return self._update(replace(self._settings, volume=volume))

    def toggle_tag(self, key: str) -> SoundSettings:
        """Flip a tag's effective state; an unset tag counts as enabled."""
        tags = dict(self._settings.tag_settings)
        tags[key] = not self._settings.tag_enabled(key)
        return self._update(replace(self._settings, tag_settings=tags))

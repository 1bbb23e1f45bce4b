"""
Tests for session.sound
"""
import json

import pytest

from news_terminal.core.types import ValidationError
from news_terminal.models.news import NewsTag, TagCategory
from news_terminal.session.sound import (
    ALERT_MEMORY_MS,
    SoundAlertGate,
    SoundSettings,
    SoundSettingsService,
    should_alert,
)

THEME = NewsTag(TagCategory.THEME, "RISK_EVENT")
REGION = NewsTag(TagCategory.REGION, "EUROPE")
MARKET = NewsTag(TagCategory.MARKET, "FX")


class FakeMsClock:
    def __init__(self) -> None:
        self.ms = 0.0

    def __call__(self) -> float:
        return self.ms


# ── should_alert ──────────────────────────────────────────────────────────────

def test_theme_tag_alerts_by_default():
    assert should_alert([REGION, THEME], SoundSettings())


def test_region_and_market_tags_never_alert():
    assert not should_alert([REGION, MARKET], SoundSettings())


def test_master_switch_silences_everything():
    assert not should_alert([THEME], SoundSettings(master_enabled=False))


def test_disabled_tag_does_not_alert():
    settings = SoundSettings(tag_settings={"risk_event": False})
    assert not should_alert([THEME], settings)
    other = NewsTag(TagCategory.THEME, "GEOPOLITICS")
    assert should_alert([THEME, other], settings)


def test_enabling_region_tag_key_has_no_effect():
    settings = SoundSettings(tag_settings={"europe": True})
    assert not should_alert([REGION], settings)


def test_volume_range_validated():
    with pytest.raises(ValidationError):
        SoundSettings(volume=101)


# ── SoundAlertGate ────────────────────────────────────────────────────────────

def test_second_alert_inside_cooldown_is_suppressed():
    clock = FakeMsClock()
    played = []
    gate = SoundAlertGate(cooldown_ms=5000, sink=played.append, clock_ms=clock)

    assert gate.offer("a", [THEME], SoundSettings())
    clock.ms = 1000
    assert not gate.offer("b", [THEME], SoundSettings())

    assert [alert.item_id for alert in played] == ["a"]
    assert gate.fired == 1
    assert gate.suppressed == 1


def test_cooldown_measured_from_last_fired_alert():
    clock = FakeMsClock()
    gate = SoundAlertGate(cooldown_ms=5000, sink=lambda _: None, clock_ms=clock)

    gate.offer("a", [THEME], SoundSettings())
    clock.ms = 4000
    gate.offer("b", [THEME], SoundSettings())  # suppressed, does not extend the window
    clock.ms = 5000
    assert gate.offer("c", [THEME], SoundSettings())


def test_same_item_alerts_at_most_once():
    clock = FakeMsClock()
    gate = SoundAlertGate(cooldown_ms=0, sink=lambda _: None, clock_ms=clock)
    assert gate.offer("a", [THEME], SoundSettings())
    clock.ms = 60_000
    assert not gate.offer("a", [THEME], SoundSettings())


def test_alerted_ids_are_forgotten_after_a_day():
    clock = FakeMsClock()
    gate = SoundAlertGate(cooldown_ms=0, sink=lambda _: None, clock_ms=clock)
    assert gate.offer("a", [THEME], SoundSettings())

    clock.ms = ALERT_MEMORY_MS - 1
    assert not gate.offer("a", [THEME], SoundSettings())

    clock.ms = ALERT_MEMORY_MS + 1
    assert gate.offer("b", [THEME], SoundSettings())
    assert gate.offer("a", [THEME], SoundSettings())


def test_ineligible_item_does_not_touch_cooldown():
    clock = FakeMsClock()
    gate = SoundAlertGate(cooldown_ms=5000, sink=lambda _: None, clock_ms=clock)
    assert not gate.offer("a", [REGION], SoundSettings())
    assert gate.offer("b", [THEME], SoundSettings())
    assert gate.suppressed == 0


def test_alert_carries_volume():
    played = []
    gate = SoundAlertGate(sink=played.append)
    gate.offer("a", [THEME], SoundSettings(volume=35))
    assert played[0].volume == 35


# ── SoundSettingsService ──────────────────────────────────────────────────────

def test_service_persists_changes(tmp_path):
    path = tmp_path / "sound.json"
    service = SoundSettingsService(path)
    service.set_master_enabled(False)
    service.set_volume(40)
    service.toggle_tag("risk_event")

    reloaded = SoundSettingsService(path)
    settings = reloaded.load()
    assert settings.master_enabled is False
    assert settings.volume == 40
    assert settings.tag_enabled("risk_event") is False
    assert json.loads(path.read_text())["tagSettings"] == {"risk_event": False}


def test_toggle_unset_tag_disables_it(tmp_path):
    service = SoundSettingsService(tmp_path / "sound.json")
    assert service.settings.tag_enabled("geopolitics") is True
    service.toggle_tag("geopolitics")
    assert service.settings.tag_enabled("geopolitics") is False
    service.toggle_tag("geopolitics")
    assert service.settings.tag_enabled("geopolitics") is True


def test_missing_file_keeps_defaults(tmp_path):
    settings = SoundSettingsService(tmp_path / "absent.json").load()
    assert settings == SoundSettings()


def test_corrupt_file_keeps_defaults(tmp_path):
    path = tmp_path / "sound.json"
    path.write_text("{not json")
    settings = SoundSettingsService(path).load()
    assert settings == SoundSettings()


def test_service_without_path_is_memory_only():
    service = SoundSettingsService()
    service.set_volume(10)
    assert service.settings.volume == 10

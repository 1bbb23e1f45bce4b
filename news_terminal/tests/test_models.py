"""
Tests for models.news
"""
from datetime import datetime, timezone

import pytest

from news_terminal.core.types import ValidationError
from news_terminal.models.news import (
    MAX_KEYWORDS_PER_PANE,
    MAX_TAGS_PER_CATEGORY,
    FilterMode,
    Market,
    NewsItem,
    Pane,
    PaneRules,
    Region,
    SoundSettingsRecord,
    Theme,
    parse_datetime,
)


# ── Timestamps ────────────────────────────────────────────────────────────────

def test_parse_datetime_normalizes_to_utc():
    assert parse_datetime("2026-03-02T12:00:00Z", "ts") == datetime(2026, 3, 2, 12, tzinfo=timezone.utc)
    assert parse_datetime("2026-03-02T14:00:00+02:00", "ts") == datetime(2026, 3, 2, 12, tzinfo=timezone.utc)
    assert parse_datetime("2026-03-02T12:00:00", "ts").tzinfo is timezone.utc


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ValidationError, match="Invalid timestamp format"):
        parse_datetime("yesterday", "published_at")
    with pytest.raises(ValidationError, match="Timestamp is empty"):
        parse_datetime(None, "published_at")


# ── NewsItem ──────────────────────────────────────────────────────────────────

def test_record_round_trip(make_item):
    item = make_item("US sanctions and Fed meeting today")
    assert NewsItem.from_record(item.to_record()) == item


def test_from_record_defaults():
    item = NewsItem.from_record({
        "id": "n1",
        "headline": "Quiet day",
        "published_at": "2026-03-02T12:00:00Z",
        "markets": None,
    })
    assert item.region is Region.GLOBAL
    assert item.markets == ()
    assert item.created_at == item.published_at


@pytest.mark.parametrize("missing", ["id", "headline", "published_at"])
def test_from_record_requires_core_fields(missing):
    row = {"id": "n1", "headline": "Quiet day", "published_at": "2026-03-02T12:00:00Z"}
    row[missing] = ""
    with pytest.raises(ValidationError, match=f"missing {missing}"):
        NewsItem.from_record(row)


def test_from_record_unknown_tag():
    row = {"id": "n1", "headline": "x", "published_at": "2026-03-02T12:00:00Z", "themes": ["GOSSIP"]}
    with pytest.raises(ValidationError, match="Invalid Theme value"):
        NewsItem.from_record(row)


def test_from_record_truncates_tag_lists():
    row = {
        "id": "n1",
        "headline": "Everything everywhere",
        "published_at": "2026-03-02T12:00:00Z",
        "markets": [m.value for m in Market],
    }
    assert len(NewsItem.from_record(row).markets) == MAX_TAGS_PER_CATEGORY


def test_naive_publish_time_rejected():
    with pytest.raises(ValueError, match="timezone-aware"):
        NewsItem(
            id="n1", headline="x", source="s", url="u",
            published_at=datetime(2026, 3, 2), region=Region.GLOBAL,
            markets=(), themes=(), hash="h",
        )


# ── Panes ─────────────────────────────────────────────────────────────────────

def test_pane_rules_from_dict_accepts_both_filter_mode_keys():
    assert PaneRules.from_dict({"filterMode": "keywords-only"}).filter_mode is FilterMode.KEYWORDS_ONLY
    assert PaneRules.from_dict({"filter_mode": "keywords-only"}).filter_mode is FilterMode.KEYWORDS_ONLY
    assert PaneRules.from_dict(None).filter_mode is FilterMode.HYBRID


def test_pane_rules_drop_blank_keywords():
    assert PaneRules.from_dict({"keywords": ["ECB", " ", ""]}).keywords == ("ECB",)


def test_pane_rules_keyword_cap():
    with pytest.raises(ValidationError, match="Maximum of 20 keywords"):
        PaneRules(keywords=tuple(f"k{i}" for i in range(MAX_KEYWORDS_PER_PANE + 1)))


def test_pane_round_trip():
    pane = Pane(id="macro", title="Macro", rules=PaneRules(themes=(Theme.MONETARY_POLICY,), keywords=("rate",)))
    assert Pane.from_record(pane.to_dict()) == pane


def test_pane_record_requires_id():
    with pytest.raises(ValidationError):
        Pane.from_record({"title": "Orphan"})


# ── Sound settings record ─────────────────────────────────────────────────────

def test_sound_record_volume_range():
    with pytest.raises(ValueError):
        SoundSettingsRecord(user_id="u1", volume=1.01)


def test_sound_record_from_row():
    record = SoundSettingsRecord.from_record({"user_id": "u1", "sound_tags": ["EARNINGS"]})
    assert record.enabled is True
    assert record.volume == 0.7
    assert record.sound_tags == (Theme.EARNINGS,)

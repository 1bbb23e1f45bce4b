"""
News Data Models

Typed records for everything that crosses the store boundary. Rows coming
back from a backend are coerced through the from_record() constructors so
untyped dicts never reach the classifier or the router.
All models use frozen dataclasses with __post_init__ validation.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar

from news_terminal.core.types import ValidationError

MAX_TAGS_PER_CATEGORY = 2
MAX_KEYWORDS_PER_PANE = 20

_E = TypeVar("_E", bound=Enum)


class Region(str, Enum):
    """Single-valued geographic tag. GLOBAL is the always-available fallback."""

    AMERICAS = "AMERICAS"
    EUROPE = "EUROPE"
    ASIA_PACIFIC = "ASIA_PACIFIC"
    MIDDLE_EAST = "MIDDLE_EAST"
    AFRICA = "AFRICA"
    GLOBAL = "GLOBAL"


class Market(str, Enum):
    """Asset-class tag."""

    EQUITIES = "EQUITIES"
    FIXED_INCOME = "FIXED_INCOME"
    FX = "FX"
    COMMODITIES = "COMMODITIES"
    CRYPTO = "CRYPTO"
    DERIVATIVES = "DERIVATIVES"
    CREDIT = "CREDIT"


class Theme(str, Enum):
    """Event-type tag. The only category allowed to trigger sound alerts."""

    MONETARY_POLICY = "MONETARY_POLICY"
    FISCAL_POLICY = "FISCAL_POLICY"
    EARNINGS = "EARNINGS"
    M_AND_A = "M_AND_A"
    GEOPOLITICS = "GEOPOLITICS"
    REGULATION = "REGULATION"
    RISK_EVENT = "RISK_EVENT"
    ECONOMIC_DATA = "ECONOMIC_DATA"
    CORPORATE_ACTION = "CORPORATE_ACTION"
    MARKET_STRUCTURE = "MARKET_STRUCTURE"


class TagCategory(str, Enum):
    """Which taxonomy a tag belongs to."""

    REGION = "region"
    MARKET = "market"
    THEME = "theme"

    @property
    def sound_enabled(self) -> bool:
        return self is TagCategory.THEME


class FilterMode(str, Enum):
    """Pane display filter mode."""

    HYBRID = "hybrid"
    KEYWORDS_ONLY = "keywords-only"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "FilterMode":
        """Convert string to FilterMode, defaulting to HYBRID when unset."""
        if not value:
            return cls.HYBRID
        for member in cls:
            if member.value == value:
                return member
        raise ValidationError(
            f"Invalid filter mode: {value}", field="filterMode", value=value
        )


class IngestionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class SystemState(str, Enum):
    """Overall ingestion health reported by GET /system-status."""

    LIVE = "live"
    PARTIAL = "partial"
    LAGGING = "lagging"
    ERROR = "error"


def _coerce_enum(enum_cls: type[_E], value: Any, field_name: str) -> _E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid {enum_cls.__name__} value", field=field_name, value=value
        ) from e


def _coerce_enum_tuple(
    enum_cls: type[_E], values: Any, field_name: str
) -> tuple[_E, ...]:
    # Backends may hand back None or a non-list for empty array columns.
    if not isinstance(values, (list, tuple)):
        return ()
    return tuple(_coerce_enum(enum_cls, v, field_name) for v in values)


def parse_datetime(value: Any, field_name: str) -> datetime:
    """Parse an ISO 8601 string (or datetime) to a timezone-aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        ts = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            dt = datetime.fromisoformat(ts)
        except ValueError as e:
            raise ValidationError(
                "Invalid timestamp format", field=field_name, value=value
            ) from e
    else:
        raise ValidationError("Timestamp is empty", field=field_name, value=value)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NewsItem:
    """
    A classified news item as stored in the live table.

    Immutable once created; tags are fixed at ingestion time.
    """

    id: str
    headline: str
    source: str
    url: str
    published_at: datetime
    region: Region
    markets: tuple[Market, ...]
    themes: tuple[Theme, ...]
    hash: str
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.id:
            raise ValueError("id must be non-empty string")
        if not self.headline:
            raise ValueError("headline must be non-empty string")
        if self.published_at.tzinfo is None:
            raise ValueError("published_at must be timezone-aware")
        if len(self.markets) > MAX_TAGS_PER_CATEGORY:
            raise ValueError(f"markets capped at {MAX_TAGS_PER_CATEGORY}, got {len(self.markets)}")
        if len(self.themes) > MAX_TAGS_PER_CATEGORY:
            raise ValueError(f"themes capped at {MAX_TAGS_PER_CATEGORY}, got {len(self.themes)}")

    def to_record(self) -> dict[str, Any]:
        """Serialize to the snake_case row shape used by stores and the stream."""
        return {
            "id": self.id,
            "headline": self.headline,
            "source": self.source,
            "url": self.url,
            "published_at": self.published_at.isoformat(),
            "region": self.region.value,
            "markets": [m.value for m in self.markets],
            "themes": [t.value for t in self.themes],
            "hash": self.hash,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> NewsItem:
        """
        Coerce a backend row into a NewsItem.

        Raises:
            ValidationError: If a required field is missing or malformed.
        """
        for key in ("id", "headline", "published_at"):
            if not row.get(key):
                raise ValidationError(f"news item row missing {key}", field=key)

        published_at = parse_datetime(row["published_at"], "published_at")
        created_raw = row.get("created_at")
        created_at = parse_datetime(created_raw, "created_at") if created_raw else published_at

        try:
            return cls(
                id=str(row["id"]),
                headline=str(row["headline"]),
                source=str(row.get("source") or ""),
                url=str(row.get("url") or ""),
                published_at=published_at,
                region=_coerce_enum(Region, row.get("region") or Region.GLOBAL, "region"),
                markets=_coerce_enum_tuple(Market, row.get("markets"), "markets")[:MAX_TAGS_PER_CATEGORY],
                themes=_coerce_enum_tuple(Theme, row.get("themes"), "themes")[:MAX_TAGS_PER_CATEGORY],
                hash=str(row.get("hash") or ""),
                created_at=created_at,
            )
        except ValueError as e:
            raise ValidationError(str(e), value=row.get("id")) from e


@dataclass(frozen=True)
class NewsTag:
    """A single display tag derived from a NewsItem."""

    category: TagCategory
    value: str

    @property
    def sound_enabled(self) -> bool:
        return self.category.sound_enabled

    @property
    def key(self) -> str:
        """Settings key: lowercased value with whitespace runs collapsed to '-'."""
        return "-".join(self.value.lower().split())


@dataclass(frozen=True)
class PaneRules:
    """Tag filters, keywords and filter mode configured for a pane."""

    regions: tuple[Region, ...] = ()
    markets: tuple[Market, ...] = ()
    themes: tuple[Theme, ...] = ()
    keywords: tuple[str, ...] = ()
    filter_mode: FilterMode = FilterMode.HYBRID

    def __post_init__(self) -> None:
        if len(self.keywords) > MAX_KEYWORDS_PER_PANE:
            raise ValidationError(
                f"Maximum of {MAX_KEYWORDS_PER_PANE} keywords allowed per pane",
                field="keywords",
                value=len(self.keywords),
            )

    def with_keywords(self, keywords: Iterable[str]) -> PaneRules:
        return replace(self, keywords=tuple(keywords))

    def to_dict(self) -> dict[str, Any]:
        return {
            "regions": [r.value for r in self.regions],
            "markets": [m.value for m in self.markets],
            "themes": [t.value for t in self.themes],
            "keywords": list(self.keywords),
            "filterMode": self.filter_mode.value,
        }

    @classmethod
    def from_dict(cls, d: Optional[dict[str, Any]]) -> PaneRules:
        d = d or {}
        keywords = d.get("keywords") or []
        return cls(
            regions=_coerce_enum_tuple(Region, d.get("regions"), "regions"),
            markets=_coerce_enum_tuple(Market, d.get("markets"), "markets"),
            themes=_coerce_enum_tuple(Theme, d.get("themes"), "themes"),
            keywords=tuple(str(k) for k in keywords if str(k).strip()),
            filter_mode=FilterMode.from_string(d.get("filterMode") or d.get("filter_mode")),
        )


@dataclass(frozen=True)
class Pane:
    """A named display bucket with routing rules."""

    id: str
    title: str
    rules: PaneRules = field(default_factory=PaneRules)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("pane id must be non-empty")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "rules": self.rules.to_dict()}

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Pane:
        if not row.get("id"):
            raise ValidationError("pane row missing id", field="id")
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or row["id"]),
            rules=PaneRules.from_dict(row.get("rules")),
        )


@dataclass(frozen=True)
class RSSSource:
    """An external feed the ingestion pipeline reads. Region is a hint only."""

    id: str
    name: str
    url: str
    region: str = ""
    active: bool = True

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("source id must be non-empty")
        if not self.url:
            raise ValueError("source url must be non-empty")

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> RSSSource:
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or row["id"]),
            url=str(row.get("url") or ""),
            region=str(row.get("region") or ""),
            active=bool(row.get("active", True)),
        )


@dataclass(frozen=True)
class IngestionLog:
    """Append-only audit row. feed_id None denotes the archival job."""

    feed_id: Optional[str]
    status: IngestionStatus
    items_fetched: int
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "status": self.status.value,
            "items_fetched": self.items_fetched,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SystemStatus:
    status: SystemState = SystemState.LIVE
    last_ingest: Optional[datetime] = None


DEFAULT_SOUND_TAGS: tuple[Theme, ...] = (
    Theme.MONETARY_POLICY,
    Theme.GEOPOLITICS,
    Theme.RISK_EVENT,
)


@dataclass(frozen=True)
class SoundSettingsRecord:
    """Server-side per-user sound preferences (GET/POST /sound-settings)."""

    user_id: str
    enabled: bool = True
    volume: float = 0.7
    sound_tags: tuple[Theme, ...] = DEFAULT_SOUND_TAGS

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id must be non-empty")
        if not (0.0 <= self.volume <= 1.0):
            raise ValueError(f"volume must be in range [0.0, 1.0], got {self.volume}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "enabled": self.enabled,
            "volume": self.volume,
            "sound_tags": [t.value for t in self.sound_tags],
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> SoundSettingsRecord:
        return cls(
            user_id=str(row["user_id"]),
            enabled=bool(row.get("enabled", True)),
            volume=float(row.get("volume", 0.7)),
            sound_tags=_coerce_enum_tuple(Theme, row.get("sound_tags"), "sound_tags"),
        )

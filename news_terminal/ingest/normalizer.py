"""
RSS Entry Normalizer

Turns feedparser entries into clean headline/link/timestamp triples and
computes the content fingerprint used for deduplication.
"""
from __future__ import annotations

import calendar
import hashlib
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class FeedEntry:
    """One parsed feed entry before classification."""

    title: str
    link: str
    published_at: Optional[datetime]


def clean_text(text: Optional[str]) -> str:
    """Strip markup, decode HTML entities and collapse whitespace."""
    if not text:
        return ""
    stripped = TAG_PATTERN.sub("", text)
    return WHITESPACE_PATTERN.sub(" ", html.unescape(stripped)).strip()


def content_hash(headline: str, source: str) -> str:
    """
    Fingerprint of normalized headline + source.

    Two entries with the same headline from the same source share a hash
    regardless of case or surrounding whitespace.
    """
    normalized = f"{headline.lower().strip()}||{source.lower().strip()}"
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def entry_published_at(entry: Any) -> Optional[datetime]:
    """
    Extract an entry's publish time as UTC.

    feedparser exposes *_parsed fields as UTC struct_time values; returns
    None when the entry carries no parseable date.
    """
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key) if hasattr(entry, "get") else getattr(entry, key, None)
        if not parsed:
            continue
        try:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug("Unparseable %s on entry: %s", key, e)
    return None


def normalize_entry(entry: Any) -> Optional[FeedEntry]:
    """Build a FeedEntry, or None when the entry lacks a title or link."""
    title = clean_text(entry.get("title"))
    link = clean_text(entry.get("link"))
    if not title or not link:
        return None
    return FeedEntry(title=title, link=link, published_at=entry_published_at(entry))

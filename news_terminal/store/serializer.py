"""
Change Event Serializer

Converts ChangeEvents to and from the JSON strings carried over Redis.

Wire format (envelope):
  {
    "channel": "changes:news_items",
    "data": {"table": "news_items", "event": "INSERT", "record": {...}}
  }
"""
from __future__ import annotations

import json
from typing import Union

from news_terminal.store.changes import ChangeEvent, ChangeFeedError


class SerializationError(ChangeFeedError):
    """Raised when serialization or deserialization fails."""


def serialize(channel: str, change: ChangeEvent) -> str:
    """
    Encode a channel name and change event into a JSON string for Redis.

    Raises SerializationError if encoding fails.
    """
    try:
        return json.dumps({"channel": channel, "data": change.to_dict()}, default=str)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize change event: {exc}") from exc


def deserialize(raw: Union[str, bytes]) -> tuple[str, ChangeEvent]:
    """
    Decode a JSON string from Redis into (channel, ChangeEvent).

    Raises SerializationError if decoding fails or the envelope is malformed.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Failed to deserialize change event: {exc}") from exc

    if not isinstance(envelope, dict) or "channel" not in envelope or "data" not in envelope:
        keys = list(envelope.keys()) if isinstance(envelope, dict) else type(envelope).__name__
        raise SerializationError(
            f"Malformed change envelope, expected {{channel, data}}, got: {keys}"
        )

    try:
        change = ChangeEvent.from_dict(envelope["data"])
    except (KeyError, ValueError, TypeError) as exc:
        raise SerializationError(f"Malformed change payload: {exc}") from exc
    return envelope["channel"], change

"""
Row Change Notifications

Typed change events and cancellable subscriptions. A store publishes one
ChangeEvent per committed write; every active subscriber for that
(table, event) pair receives it.

Usage:
    feed = LocalChangeFeed()
    sub = feed.subscribe("news_items", ChangeType.INSERT, on_insert)
    ...
    sub.cancel()          # no further deliveries to on_insert
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from news_terminal.core.types import NewsTerminalError

if TYPE_CHECKING:
    from news_terminal.store.interface import ChangeFeed

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# Tables that emit change notifications.
NEWS_ITEMS = "news_items"
PANES = "panes"
USER_READ_ITEMS = "user_read_items"
USER_SAVED_ITEMS = "user_saved_items"


class ChangeFeedError(NewsTerminalError):
    """Raised when a change feed operation fails."""


@dataclass(frozen=True)
class ChangeEvent:
    """One committed row change. `record` is the row as a plain dict."""

    table: str
    event: ChangeType
    record: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "event": self.event.value, "record": self.record}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChangeEvent:
        return cls(
            table=str(d["table"]),
            event=ChangeType(d["event"]),
            record=dict(d.get("record") or {}),
        )


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    """
    Handle returned by ChangeFeed.subscribe().

    cancel() is idempotent; once it returns the handler is never invoked
    again, even for events already being dispatched.
    """

    def __init__(
        self,
        table: str,
        event: ChangeType,
        handler: ChangeHandler,
        on_cancel: Optional[Callable[[Subscription], None]] = None,
    ) -> None:
        self.table = table
        self.event = event
        self._handler = handler
        self._on_cancel = on_cancel
        self._cancel_callbacks: list[Callable[[Subscription], None]] = []
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, change: ChangeEvent) -> bool:
        return self._active and change.table == self.table and change.event == self.event

    async def deliver(self, change: ChangeEvent) -> None:
        if not self._active:
            return
        try:
            await self._handler(change)
        except Exception:
            logger.exception(
                "Change handler failed",
                extra={"table": change.table, "event": change.event.value},
            )

    def add_cancel_callback(self, callback: Callable[[Subscription], None]) -> None:
        """Run *callback* once when this subscription is cancelled."""
        if not self._active:
            callback(self)
            return
        self._cancel_callbacks.append(callback)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)
        for callback in self._cancel_callbacks:
            callback(self)
        self._cancel_callbacks.clear()


class LocalChangeFeed:
    """
    In-process change feed.

    publish() awaits every matching handler in subscription order, so by
    the time a store write returns all local subscribers have seen it.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self, table: str, event: ChangeType, handler: ChangeHandler
    ) -> Subscription:
        sub = Subscription(table, event, handler, on_cancel=self._remove)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s %s", table, event.value)
        return sub

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    async def publish(self, change: ChangeEvent) -> int:
        """Deliver to matching subscribers. Returns the delivery count."""
        targets = [s for s in self._subscriptions if s.matches(change)]
        for sub in targets:
            await sub.deliver(change)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.cancel()


async def publish_committed(feed: ChangeFeed, change: ChangeEvent) -> int:
    """
    Publish the notification for a write that is already committed.

    The row stays written if the feed fails; the failure is logged and 0 is
    returned. Sessions pick up missed inserts through gap recovery.
    """
    try:
        return await feed.publish(change)
    except ChangeFeedError as exc:
        logger.error(
            f"Change publish failed after commit: {exc}",
            extra={"table": change.table, "event": change.event.value},
        )
        return 0

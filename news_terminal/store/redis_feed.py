"""
Redis Change Feed

Fans change events out across processes over Redis pub/sub. Each table maps
to one channel ("changes:<table>"). Every process that subscribes receives
every event independently; nothing is consumed.

Usage:
    feed = RedisChangeFeed(redis_url="redis://localhost:6379/0")
    await feed.connect()

    sub = feed.subscribe("news_items", ChangeType.INSERT, on_insert)
    await feed.publish(ChangeEvent("news_items", ChangeType.INSERT, row))

    await feed.close()
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from news_terminal.store.changes import (
    ChangeEvent,
    ChangeFeedError,
    ChangeHandler,
    ChangeType,
    Subscription,
)
from news_terminal.store.serializer import SerializationError, deserialize, serialize

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "changes:"


def channel_for(table: str) -> str:
    return f"{CHANNEL_PREFIX}{table}"


class RedisChangeFeed:
    """
    ChangeFeed backed by Redis pub/sub.

    A single background listener task polls the shared PubSub handle and
    dispatches each decoded event to the local subscriptions that match it.
    """

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: Optional[Redis] = None
        self._pubsub: Optional[PubSub] = None
        self._listener: Optional[asyncio.Task[None]] = None
        self._subscriptions: list[Subscription] = []
        self._channels: set[str] = set()
        self._live_channels: set[str] = set()
        self._pending: set[asyncio.Task[None]] = set()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection and start the listener."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise ChangeFeedError(f"Cannot connect to Redis: {exc}") from exc

        self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        for channel in self._channels:
            await self._subscribe_channel(channel)
        self._listener = asyncio.create_task(self._listen(), name="redis-change-feed")
        logger.info("RedisChangeFeed connected to Redis at %s", self._redis_url)

    async def close(self) -> None:
        """Cancel subscriptions, stop the listener and close the connection."""
        for sub in list(self._subscriptions):
            sub.cancel()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
            self._live_channels.clear()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("RedisChangeFeed disconnected from Redis")

    async def __aenter__(self) -> RedisChangeFeed:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── ChangeFeed ────────────────────────────────────────────────────────────

    def subscribe(
        self, table: str, event: ChangeType, handler: ChangeHandler
    ) -> Subscription:
        sub = Subscription(table, event, handler, on_cancel=self._remove)
        self._subscriptions.append(sub)

        channel = channel_for(table)
        if channel not in self._channels:
            self._channels.add(channel)
            if self._pubsub is not None:
                task = asyncio.create_task(self._subscribe_channel(channel))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        return sub

    async def _subscribe_channel(self, channel: str) -> None:
        if self._pubsub is None:
            return
        await self._pubsub.subscribe(channel)
        self._live_channels.add(channel)

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    async def publish(self, change: ChangeEvent) -> int:
        """
        Publish a change to its table channel.

        Returns:
            Number of Redis subscribers that received the message.

        Raises:
            ChangeFeedError: If not connected or Redis returns an error.
            SerializationError: If the record cannot be serialized.
        """
        if self._redis is None:
            raise ChangeFeedError("RedisChangeFeed is not connected, call connect() first")

        channel = channel_for(change.table)
        payload = serialize(channel, change)
        try:
            deliveries: int = await self._redis.publish(channel, payload)
        except RedisError as exc:
            raise ChangeFeedError(f"Redis publish failed on channel '{channel}'") from exc

        logger.debug("Published to '%s', reached %d subscriber(s)", channel, deliveries)
        return deliveries

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # ── Listener ──────────────────────────────────────────────────────────────

    async def dispatch(self, raw: bytes | str) -> int:
        """Decode one raw pub/sub payload and deliver it locally."""
        try:
            _, change = deserialize(raw)
        except SerializationError as exc:
            logger.warning("Dropping malformed change message: %s", exc)
            return 0

        targets = [s for s in self._subscriptions if s.matches(change)]
        for sub in targets:
            await sub.deliver(change)
        return len(targets)

    async def _listen(self) -> None:
        assert self._pubsub is not None
        while True:
            if not self._live_channels:
                await asyncio.sleep(0.1)
                continue
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=0.1,
                )
            except RedisError as exc:
                logger.error("Redis error while waiting for change: %s", exc)
                await asyncio.sleep(1.0)
                continue

            if message is None:
                await asyncio.sleep(0)
                continue
            if message.get("type") != "message":
                continue

            raw = message.get("data")
            if raw is None:
                continue
            await self.dispatch(raw)

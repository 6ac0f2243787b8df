"""
Poll Event Store.

Per-channel event log on Redis sorted sets. Each member is the event's
JSON and its score is the publish time in epoch seconds, so a channel is
always ordered oldest first.

Expiry is lazy: every append and every read drops members whose own
ttl_seconds has passed since publish, and a channel that grows past twice
the page size is trimmed back to one page. Nothing is deleted because it was read; every client
tracks its own cursor (the last event_id it saw).

Redis failures never reach callers. Appends report False and reads return
an empty page, so a broken store degrades polling to "no news".

Usage:
    from storefront.backend.events.store import get_event_store

    store = get_event_store()
    await store.append(store.admin_channel, event)
    events = await store.read(store.admin_channel, cursor_event_id=last_seen)
"""

import time
from typing import Callable

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from storefront.backend.core.logging import get_logger
from storefront.backend.core.utils import to_epoch_seconds
from storefront.backend.events.schemas import (
    DEFAULT_TTL_SECONDS,
    PollEvent,
    poll_event_adapter,
)

logger = get_logger(__name__)

_store: "EventStore | None" = None


class EventStore:
    """Sorted-set event log with cursor reads and lazy expiry."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        user_prefix: str = "poll:user:",
        admin_key: str = "poll:admin:events",
        max_page_size: int = 50,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._user_prefix = user_prefix
        self._admin_key = admin_key
        self.max_page_size = max_page_size
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock

    def user_channel(self, user_id: str) -> str:
        """Channel key for a single user's events."""
        return f"{self._user_prefix}{user_id}"

    @property
    def admin_channel(self) -> str:
        """Channel key shared by all admins."""
        return self._admin_key

    async def append(self, channel: str, event: PollEvent) -> bool:
        """
        Append an event to a channel.

        Refreshes the channel expiry (never shortening it), sweeps expired
        members and trims the channel when it exceeds twice the page size.

        Returns:
            True if the event was stored, False on a Redis failure
        """
        score = to_epoch_seconds(event.timestamp)
        try:
            await self._redis.zadd(channel, {event.model_dump_json(): score})
            await self._extend_ttl(channel, event.ttl_seconds)
            await self._sweep(channel)
            await self._trim(channel)
        except RedisError as e:
            logger.error(
                "Failed to append poll event",
                extra={"channel": channel, "event_id": event.event_id, "error": str(e)},
            )
            return False

        logger.debug(
            "Poll event appended",
            extra={"channel": channel, "event_id": event.event_id, "event_type": event.event_type},
        )
        return True

    async def read(self, channel: str, cursor_event_id: str | None = None) -> list[PollEvent]:
        """
        Read up to one page of events, oldest first.

        With a cursor, only events strictly newer than the cursor event are
        returned. A cursor that is no longer in the channel (expired or
        trimmed) reads from the beginning, so clients never stall on a lost
        cursor.
        """
        now = self._clock()
        lower: str = "0"
        try:
            if cursor_event_id:
                cursor = await self._find(channel, cursor_event_id)
                if cursor is not None:
                    lower = f"({to_epoch_seconds(cursor.timestamp)!r}"
                else:
                    logger.debug(
                        "Cursor not found, reading from start",
                        extra={"channel": channel, "cursor": cursor_event_id},
                    )

            await self._sweep(channel, now)
            members = await self._redis.zrangebyscore(
                channel, lower, now, start=0, num=self.max_page_size,
            )
        except RedisError as e:
            logger.error("Failed to read poll events", extra={"channel": channel, "error": str(e)})
            return []

        events = []
        for raw in members:
            event = self._decode(channel, raw)
            if event is None:
                continue
            if self._expired(event, now):
                continue
            events.append(event)
        return events

    async def find(self, channel: str, event_id: str) -> PollEvent | None:
        """Find an event by id, or None if absent or the store is unreachable."""
        try:
            return await self._find(channel, event_id)
        except RedisError as e:
            logger.error("Failed to scan poll events", extra={"channel": channel, "error": str(e)})
            return None

    async def size(self, channel: str) -> int:
        """Number of members currently stored on a channel."""
        try:
            return await self._redis.zcard(channel)
        except RedisError as e:
            logger.error("Failed to size poll channel", extra={"channel": channel, "error": str(e)})
            return 0

    async def _find(self, channel: str, event_id: str) -> PollEvent | None:
        # Channels are capped at twice the page size, so a full scan stays small
        for raw in await self._redis.zrange(channel, 0, -1):
            event = self._decode(channel, raw)
            if event is not None and event.event_id == event_id:
                return event
        return None

    async def _extend_ttl(self, channel: str, ttl_seconds: int) -> None:
        remaining = await self._redis.ttl(channel)
        # -1: no expiry set, -2: key missing
        if remaining < ttl_seconds:
            await self._redis.expire(channel, ttl_seconds)

    async def _sweep(self, channel: str, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        expired = []
        for raw in await self._redis.zrangebyscore(channel, 0, now):
            event = self._decode(channel, raw)
            if event is not None and self._expired(event, now):
                expired.append(raw)
        if expired:
            removed = await self._redis.zrem(channel, *expired)
            logger.debug("Expired poll events removed", extra={"channel": channel, "removed": removed})

    async def _trim(self, channel: str) -> None:
        count = await self._redis.zcard(channel)
        if count > self.max_page_size * 2:
            await self._redis.zremrangebyrank(channel, 0, count - self.max_page_size - 1)
            logger.debug(
                "Poll channel trimmed",
                extra={"channel": channel, "before": count, "after": self.max_page_size},
            )

    @staticmethod
    def _expired(event: PollEvent, now: float) -> bool:
        return to_epoch_seconds(event.timestamp) + event.ttl_seconds <= now

    @staticmethod
    def _decode(channel: str, raw: str | bytes) -> PollEvent | None:
        try:
            return poll_event_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Skipping malformed poll event",
                extra={"channel": channel, "error": str(e)},
            )
            return None


def get_event_store() -> EventStore:
    """Get the shared event store (lazy initialization from events.yaml)."""
    global _store
    if _store is None:
        from storefront.backend.core.config import get_app_config
        from storefront.backend.core.redis import get_redis

        config = get_app_config().events
        _store = EventStore(
            get_redis(),
            user_prefix=config.keys.user_prefix,
            admin_key=config.keys.admin,
            max_page_size=config.store.max_page_size,
            default_ttl_seconds=config.store.default_ttl_seconds,
        )
    return _store

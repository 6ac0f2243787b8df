"""
Long-Poll Coordinator.

Serves poll requests against the event store. An immediate poll reads once.
A long poll that finds nothing keeps re-reading every interval until events
show up, the client goes away, or the wait budget runs out; it then returns
an empty page and the client simply polls again.

The wait is an asyncio sleep, so a parked poll holds no thread. Task
cancellation propagates unchanged.

Usage:
    coordinator = get_poll_coordinator()
    channel = resolve_channel(coordinator.store, principal, PollEventType.ADMIN_NEW_ORDER)
    response = await coordinator.poll(
        channel,
        cursor=last_event_id,
        long_poll=True,
        is_disconnected=request.is_disconnected,
    )
"""

import asyncio
import time
from typing import Awaitable, Callable

from storefront.backend.core.exceptions import AuthorizationError
from storefront.backend.core.logging import get_logger
from storefront.backend.core.metrics import MetricsCollector, NullMetrics
from storefront.backend.core.security import Principal
from storefront.backend.events.schemas import PollEvent, PollEventType, PollResponse
from storefront.backend.events.store import EventStore

logger = get_logger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]

_coordinator: "LongPollCoordinator | None" = None


def resolve_channel(
    store: EventStore, principal: Principal, event_type: PollEventType | None = None,
) -> str:
    """
    Pick the channel a caller may read for an event type.

    Admin-scoped types read the admin channel and require an admin caller.
    Everything else reads the caller's own user channel.

    Raises:
        AuthorizationError: Non-admin caller asked for admin events
    """
    if event_type is not None and event_type.is_admin_scoped:
        if not principal.is_admin:
            logger.warning(
                "Admin poll denied",
                extra={"user_id": principal.user_id, "event_type": event_type.value},
            )
            raise AuthorizationError("Admin role required for admin events")
        return store.admin_channel
    return store.user_channel(principal.user_id)


class LongPollCoordinator:
    """Immediate and bounded long-poll reads over the event store."""

    def __init__(
        self,
        store: EventStore,
        *,
        timeout_seconds: float = 25,
        interval_seconds: float = 1,
        short_poll_hint_ms: int = 5000,
        long_poll_hint_ms: int = 30000,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.short_poll_hint_ms = short_poll_hint_ms
        self.long_poll_hint_ms = long_poll_hint_ms
        self._metrics = metrics or NullMetrics()
        self._clock = clock
        self._sleep = sleep

    async def poll(
        self,
        channel: str,
        cursor: str | None = None,
        *,
        long_poll: bool = False,
        event_type: PollEventType | None = None,
        is_disconnected: DisconnectCheck | None = None,
    ) -> PollResponse:
        """
        Read events after `cursor`, waiting for new ones if asked to.

        Args:
            channel: Channel key from resolve_channel
            cursor: Last event_id the client has seen
            long_poll: Wait for events when none are available
            event_type: Only return events of this type
            is_disconnected: Awaitable predicate; waiting stops once it is true

        With event_type set, filtering happens after the page is read:
        last_event_id is the newest event on the raw page (so the client
        skips past filtered-out events) and has_more is true when the raw
        page was full, even if fewer matching events are returned.

        Returns:
            PollResponse with the events found (possibly none)
        """
        mode = "long" if long_poll else "short"
        self._metrics.increment("poll_requests_total", mode=mode)

        events, cursor, page_count = await self._read(channel, cursor, event_type)
        if not events and long_poll:
            events, cursor, page_count = await self._wait(
                channel, cursor, event_type, is_disconnected,
            )

        if events:
            self._metrics.increment("poll_events_returned_total", amount=len(events))

        return PollResponse(
            events=events,
            last_event_id=cursor,
            poll_interval=self.long_poll_hint_ms if long_poll else self.short_poll_hint_ms,
            has_more=page_count >= self.store.max_page_size,
        )

    async def _wait(
        self,
        channel: str,
        cursor: str | None,
        event_type: PollEventType | None,
        is_disconnected: DisconnectCheck | None,
    ) -> tuple[list[PollEvent], str | None, int]:
        deadline = self._clock() + self.timeout_seconds
        page_count = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                self._metrics.increment("poll_timeouts_total")
                logger.debug("Long poll timed out", extra={"channel": channel})
                break
            if is_disconnected is not None and await is_disconnected():
                logger.debug("Long poll client disconnected", extra={"channel": channel})
                break

            await self._sleep(min(self.interval_seconds, remaining))

            events, cursor, page_count = await self._read(channel, cursor, event_type)
            if events:
                return events, cursor, page_count

        return [], cursor, page_count

    async def _read(
        self, channel: str, cursor: str | None, event_type: PollEventType | None,
    ) -> tuple[list[PollEvent], str | None, int]:
        page = await self.store.read(channel, cursor)
        if not page:
            return [], cursor, 0

        # Filtered reads still advance past events of other types
        events = [e for e in page if event_type is None or e.event_type == event_type]
        return events, page[-1].event_id, len(page)


def get_poll_coordinator() -> LongPollCoordinator:
    """Get the shared coordinator (lazy initialization from events.yaml)."""
    global _coordinator
    if _coordinator is None:
        from storefront.backend.core.config import get_app_config
        from storefront.backend.core.metrics import get_metrics
        from storefront.backend.events.store import get_event_store

        long_poll = get_app_config().events.long_poll
        _coordinator = LongPollCoordinator(
            get_event_store(),
            timeout_seconds=long_poll.timeout_seconds,
            interval_seconds=long_poll.interval_seconds,
            short_poll_hint_ms=long_poll.short_poll_hint_ms,
            long_poll_hint_ms=long_poll.long_poll_hint_ms,
            metrics=get_metrics(),
        )
    return _coordinator

"""
Event Publishers.

Domain-specific poll event publishers. Each method builds the typed event
for one order change and appends it to the right channel.

Publishers check the events_publish_enabled feature flag before publishing.
When disabled, events are silently skipped (no error, no log noise).

Usage:
    from storefront.backend.events.publishers import OrderEventPublisher

    publisher = OrderEventPublisher(get_event_store())
    await publisher.publish_new_order_for_admin(order_id, "Asha Rao", Decimal("1250.00"))
"""

from decimal import Decimal
from typing import Any

from storefront.backend.core.logging import get_logger
from storefront.backend.events.schemas import (
    NewOrderEvent,
    NewOrderMetadata,
    OrderStatusEvent,
    OrderStatusMetadata,
    OrderUpdateEvent,
    OrderUpdateMetadata,
    PollEvent,
)
from storefront.backend.events.store import EventStore

logger = get_logger(__name__)


class OrderEventPublisher:
    """Publishes order poll events to the user and admin channels."""

    def __init__(self, store: EventStore, ttl_seconds: int | None = None) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds or store.default_ttl_seconds

    async def publish_order_status_change(
        self, order_id: str, user_id: str, new_status: str,
    ) -> PollEvent | None:
        """Tell the order's owner that its status changed."""
        event = OrderStatusEvent(
            entity_id=order_id,
            ttl_seconds=self._ttl_seconds,
            metadata=OrderStatusMetadata(order_id=order_id, status=new_status),
        )
        return await self._publish(self._store.user_channel(user_id), event)

    async def publish_new_order_for_admin(
        self, order_id: str, customer_name: str, total_amount: Decimal,
    ) -> PollEvent | None:
        """Tell admins a new order was placed."""
        event = NewOrderEvent(
            entity_id=order_id,
            ttl_seconds=self._ttl_seconds,
            metadata=NewOrderMetadata(
                order_id=order_id,
                customer_name=customer_name,
                total_amount=total_amount,
            ),
        )
        return await self._publish(self._store.admin_channel, event)

    async def publish_order_update_for_admin(
        self, order_id: str, update_type: str, details: dict[str, Any] | None = None,
    ) -> PollEvent | None:
        """Tell admins an existing order changed. `details` travel in the metadata."""
        metadata = {**(details or {}), "order_id": order_id, "update_type": update_type}
        event = OrderUpdateEvent(
            entity_id=order_id,
            ttl_seconds=self._ttl_seconds,
            metadata=OrderUpdateMetadata(**metadata),
        )
        return await self._publish(self._store.admin_channel, event)

    async def _publish(self, channel: str, event: PollEvent) -> PollEvent | None:
        """Append the event if the feature flag is enabled.

        Returns the event when stored, None when skipped or not stored.
        """
        from storefront.backend.core.config import get_app_config

        if not get_app_config().features.events_publish_enabled:
            return None

        if not await self._store.append(channel, event):
            return None

        logger.debug(
            "Event published",
            extra={"channel": channel, "event_type": event.event_type, "event_id": event.event_id},
        )
        return event


def get_order_event_publisher() -> OrderEventPublisher:
    """Build a publisher on the shared event store."""
    from storefront.backend.events.store import get_event_store

    return OrderEventPublisher(get_event_store())

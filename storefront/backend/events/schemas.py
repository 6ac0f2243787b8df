"""
Poll Event Schemas.

Events written to the per-channel poll logs and returned to polling
clients. The three event types share one envelope; the metadata model is
selected by `event_type` (discriminated union), so a stored member always
parses back to the variant it was written as.

Channels:
    user channel   poll:user:{user_id}   CUSTOMER_ORDER_STATUS
    admin channel  poll:admin:events     ADMIN_NEW_ORDER, ADMIN_ORDER_UPDATE

Usage:
    from storefront.backend.events.schemas import NewOrderEvent, poll_event_adapter

    event = NewOrderEvent(
        entity_id=order_id,
        metadata=NewOrderMetadata(order_id=order_id, customer_name="Asha", total_amount=Decimal("1250.00")),
    )
    parsed = poll_event_adapter.validate_json(event.model_dump_json())
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from storefront.backend.core.utils import utc_now

DEFAULT_TTL_SECONDS = 300


class PollEventType(str, Enum):
    """Kinds of poll events."""

    CUSTOMER_ORDER_STATUS = "CUSTOMER_ORDER_STATUS"
    ADMIN_NEW_ORDER = "ADMIN_NEW_ORDER"
    ADMIN_ORDER_UPDATE = "ADMIN_ORDER_UPDATE"

    @property
    def is_admin_scoped(self) -> bool:
        """Admin-scoped events live on the admin channel."""
        return self in (PollEventType.ADMIN_NEW_ORDER, PollEventType.ADMIN_ORDER_UPDATE)


class PollAction(str, Enum):
    """What the client should do on receiving the event."""

    REFRESH = "REFRESH"
    FETCH_NEW = "FETCH_NEW"
    UPDATE_PARTIAL = "UPDATE_PARTIAL"


# =============================================================================
# Metadata variants
# =============================================================================


class OrderStatusMetadata(BaseModel):
    order_id: str
    status: str


class NewOrderMetadata(BaseModel):
    order_id: str
    customer_name: str
    total_amount: Decimal
    placed_at: datetime = Field(default_factory=utc_now)


class OrderUpdateMetadata(BaseModel):
    """Partial order update. Caller-supplied detail keys are kept as extra fields."""

    order_id: str
    update_type: str

    model_config = ConfigDict(extra="allow")


# =============================================================================
# Events
# =============================================================================


class _PollEventBase(BaseModel):
    """Fields shared by every poll event.

    Fields:
        event_id: Unique event identifier, also the client's resume cursor
        entity_id: Identifier of the entity the event is about (order id)
        entity_type: Kind of entity, e.g. ORDER
        timestamp: UTC publish time; the channel's ordering key
        ttl_seconds: How long the event stays readable after publish
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    entity_id: str
    entity_type: str = "ORDER"
    timestamp: datetime = Field(default_factory=utc_now)
    ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)


class OrderStatusEvent(_PollEventBase):
    """A customer's order changed status."""

    event_type: Literal["CUSTOMER_ORDER_STATUS"] = "CUSTOMER_ORDER_STATUS"
    action: PollAction = PollAction.REFRESH
    metadata: OrderStatusMetadata


class NewOrderEvent(_PollEventBase):
    """A new order was placed."""

    event_type: Literal["ADMIN_NEW_ORDER"] = "ADMIN_NEW_ORDER"
    action: PollAction = PollAction.FETCH_NEW
    metadata: NewOrderMetadata


class OrderUpdateEvent(_PollEventBase):
    """An existing order was updated."""

    event_type: Literal["ADMIN_ORDER_UPDATE"] = "ADMIN_ORDER_UPDATE"
    action: PollAction = PollAction.UPDATE_PARTIAL
    metadata: OrderUpdateMetadata


PollEvent = Annotated[
    Union[OrderStatusEvent, NewOrderEvent, OrderUpdateEvent],
    Field(discriminator="event_type"),
]

poll_event_adapter: TypeAdapter[PollEvent] = TypeAdapter(PollEvent)


class PollResponse(BaseModel):
    """Poll result returned to clients.

    Fields:
        events: Events after the cursor, oldest first
        last_event_id: Cursor for the next poll (newest event seen, or the
            unchanged cursor when nothing was returned)
        poll_interval: Suggested delay before the next poll, in milliseconds
        has_more: True when the page was full and more events may be waiting
    """

    events: list[PollEvent] = Field(default_factory=list)
    last_event_id: str | None = None
    poll_interval: int
    has_more: bool = False

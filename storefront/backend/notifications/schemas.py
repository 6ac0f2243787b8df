"""
Email Job Schemas.

Jobs carried by the email work queue. Every field is optional on the wire
so that a partially filled job (older producers, hand-pushed payloads)
still parses; publish() fills in event_id and retry_count.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from storefront.backend.core.utils import utc_now

NEW_ORDER = "NEW_ORDER"


class OrderItemData(BaseModel):
    """One order line as shown in the notification email."""

    product_name: str
    product_sku: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class EmailMetadata(BaseModel):
    """Order details rendered into the email body."""

    order_id: str
    customer_name: str | None = None
    phone_number: str | None = None
    full_address: str | None = None
    total_amount: Decimal = Decimal("0")
    total_items: int = 0
    order_items: list[OrderItemData] = Field(default_factory=list)
    order_placed_at: str | None = None


class EmailJob(BaseModel):
    """A pending email delivery.

    Fields:
        event_id: Job identifier; generated on publish when missing
        event_type: Kind of email; only NEW_ORDER is delivered
        recipient_email: Destination address
        metadata: Template data
        retry_count: Failed delivery attempts so far; never decreases
        created_at: UTC time the job was created
    """

    event_id: str | None = None
    event_type: str | None = None
    recipient_email: str | None = None
    metadata: EmailMetadata | None = None
    retry_count: int | None = None
    created_at: datetime = Field(default_factory=utc_now)

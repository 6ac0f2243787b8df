"""
Order Schemas.

Order data handed to the notification hooks by the order system, and the
hook results.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from storefront.backend.core.utils import utc_now

Actor = Literal["ADMIN", "USER"]


class OrderItemSnapshot(BaseModel):
    """One line of a placed order."""

    product_name: str = Field(..., min_length=1, description="Product display name")
    product_sku: str | None = Field(default=None, description="Product SKU")
    quantity: int = Field(..., gt=0, description="Units ordered")
    unit_price: Decimal = Field(..., ge=0, description="Price per unit")
    total_price: Decimal = Field(..., ge=0, description="Line total")


class OrderSnapshot(BaseModel):
    """A persisted order as seen at placement time."""

    order_id: str = Field(..., min_length=1, description="Order identifier")
    user_id: str = Field(..., min_length=1, description="Customer's user id")
    customer_name: str = Field(..., min_length=1, description="Customer name", examples=["Asha Rao"])
    phone_number: str | None = Field(default=None, description="Contact phone")
    full_address: str | None = Field(default=None, description="Delivery address, one line")
    total_amount: Decimal = Field(..., ge=0, description="Order total", examples=["1250.00"])
    items: list[OrderItemSnapshot] = Field(default_factory=list, description="Order lines")
    placed_at: datetime = Field(default_factory=utc_now, description="UTC placement time")

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderStatusChange(BaseModel):
    """Status transition reported by the order system."""

    user_id: str = Field(..., min_length=1, description="Owner of the order")
    new_status: str = Field(..., min_length=1, description="Status after the change", examples=["SHIPPED"])
    previous_status: str | None = Field(default=None, description="Status before the change")
    changed_by: Actor = Field(default="ADMIN", description="Who made the change")


class OrderCancellation(BaseModel):
    """Cancellation reported by the order system."""

    user_id: str = Field(..., min_length=1, description="Owner of the order")
    cancelled_by: Actor = Field(..., description="USER for a customer cancellation, ADMIN otherwise")
    remarks: str | None = Field(default=None, description="Reason given, if any")


class OrderNotificationResult(BaseModel):
    """What a hook published."""

    order_id: str
    poll_event_ids: list[str] = Field(default_factory=list)
    email_job_id: str | None = None
    email_queued: bool = False

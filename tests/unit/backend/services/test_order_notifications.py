"""
Unit Tests for the Order Notification Service.

Runs the service against a real EventStore and EmailWorkQueue on
fakeredis, so the tests see exactly what pollers and the worker would see.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from storefront.backend.core.exceptions import ValidationError
from storefront.backend.events.publishers import OrderEventPublisher
from storefront.backend.events.schemas import NewOrderEvent, OrderStatusEvent, OrderUpdateEvent
from storefront.backend.notifications.schemas import NEW_ORDER
from storefront.backend.schemas.order import OrderItemSnapshot, OrderSnapshot
from storefront.backend.services.order_notifications import OrderNotificationService


@pytest.fixture
def service(event_store, email_queue) -> OrderNotificationService:
    return OrderNotificationService(
        OrderEventPublisher(event_store),
        email_queue,
        admin_email="admin@example.com",
    )


@pytest.fixture
def order() -> OrderSnapshot:
    return OrderSnapshot(
        order_id="order-1",
        user_id="user-7",
        customer_name="Asha Rao",
        phone_number="+91 90000 00000",
        full_address="12 MG Road, Bengaluru",
        total_amount=Decimal("1250.00"),
        items=[
            OrderItemSnapshot(
                product_name="Hex Bolt M8",
                product_sku="HB-M8",
                quantity=2,
                unit_price=Decimal("500.00"),
                total_price=Decimal("1000.00"),
            ),
            OrderItemSnapshot(
                product_name="Washer",
                quantity=5,
                unit_price=Decimal("50.00"),
                total_price=Decimal("250.00"),
            ),
        ],
        placed_at=datetime(2026, 10, 19, 10, 30),
    )


class TestOrderPlaced:
    """Tests for order_placed."""

    @pytest.mark.asyncio
    async def test_publishes_admin_event(self, service, order, event_store):
        result = await service.order_placed(order)

        [event] = await event_store.read(event_store.admin_channel)
        assert isinstance(event, NewOrderEvent)
        assert result.poll_event_ids == [event.event_id]
        assert event.metadata.customer_name == "Asha Rao"
        assert event.metadata.total_amount == Decimal("1250.00")

    @pytest.mark.asyncio
    async def test_queues_admin_email(self, service, order, email_queue):
        result = await service.order_placed(order)

        job = await email_queue.consume()
        assert result.email_queued is True
        assert result.email_job_id == job.event_id
        assert job.event_type == NEW_ORDER
        assert job.recipient_email == "admin@example.com"
        assert job.metadata.total_items == 7
        assert [i.product_name for i in job.metadata.order_items] == ["Hex Bolt M8", "Washer"]
        assert job.metadata.order_placed_at == "19 Oct 2026, 10:30 AM UTC"

    @pytest.mark.asyncio
    async def test_email_disabled(self, event_store, email_queue, order):
        service = OrderNotificationService(
            OrderEventPublisher(event_store), email_queue, "admin@example.com", email_enabled=False,
        )

        result = await service.order_placed(order)

        assert result.email_queued is False
        assert result.email_job_id is None
        assert await email_queue.depth() == 0
        assert len(result.poll_event_ids) == 1

    @pytest.mark.asyncio
    async def test_rejects_blank_customer(self, service, order):
        order.customer_name = "  "
        with pytest.raises(ValidationError):
            await service.order_placed(order)


class TestOrderStatusChanged:
    """Tests for order_status_changed."""

    @pytest.mark.asyncio
    async def test_notifies_owner_and_admins(self, service, event_store):
        result = await service.order_status_changed("order-1", "user-7", "SHIPPED", "PAID")

        [user_event] = await event_store.read(event_store.user_channel("user-7"))
        [admin_event] = await event_store.read(event_store.admin_channel)
        assert isinstance(user_event, OrderStatusEvent)
        assert user_event.metadata.status == "SHIPPED"
        assert isinstance(admin_event, OrderUpdateEvent)
        metadata = admin_event.metadata.model_dump()
        assert metadata["update_type"] == "STATUS_CHANGE"
        assert metadata["previous_status"] == "PAID"
        assert result.poll_event_ids == [user_event.event_id, admin_event.event_id]

    @pytest.mark.asyncio
    async def test_no_email_for_status_change(self, service, email_queue):
        await service.order_status_changed("order-1", "user-7", "SHIPPED")
        assert await email_queue.depth() == 0

    @pytest.mark.asyncio
    async def test_rejects_missing_user(self, service):
        with pytest.raises(ValidationError):
            await service.order_status_changed("order-1", "", "SHIPPED")

    @pytest.mark.asyncio
    async def test_customer_change_not_sent_to_admins(self, service, event_store):
        result = await service.order_status_changed(
            "order-1", "user-7", "RETURN_REQUESTED", changed_by="USER",
        )

        [user_event] = await event_store.read(event_store.user_channel("user-7"))
        assert await event_store.read(event_store.admin_channel) == []
        assert result.poll_event_ids == [user_event.event_id]

    @pytest.mark.asyncio
    async def test_rejects_cancelled_status(self, service, event_store):
        with pytest.raises(ValidationError) as exc_info:
            await service.order_status_changed("order-1", "user-7", "cancelled")

        assert exc_info.value.status_code == 400
        assert await event_store.size(event_store.user_channel("user-7")) == 0


class TestOrderCancelled:
    """Tests for order_cancelled."""

    @pytest.mark.asyncio
    async def test_customer_cancellation(self, service, event_store):
        result = await service.order_cancelled("order-1", "user-7", "USER", "Ordered twice")

        [user_event] = await event_store.read(event_store.user_channel("user-7"))
        [admin_event] = await event_store.read(event_store.admin_channel)
        assert user_event.metadata.status == "CANCELLED"
        assert admin_event.metadata.model_dump() == {
            "order_id": "order-1",
            "update_type": "USER_CANCELLATION",
            "cancelled_by": "USER",
            "user_id": "user-7",
            "remarks": "Ordered twice",
        }
        assert result.poll_event_ids == [user_event.event_id, admin_event.event_id]

    @pytest.mark.asyncio
    async def test_admin_cancellation(self, service, event_store):
        await service.order_cancelled("order-1", "user-7", "ADMIN")

        [admin_event] = await event_store.read(event_store.admin_channel)
        assert admin_event.metadata.model_dump() == {
            "order_id": "order-1",
            "update_type": "ADMIN_CANCELLATION",
            "cancelled_by": "ADMIN",
            "remarks": "",
        }

    @pytest.mark.asyncio
    async def test_no_email(self, service, email_queue):
        await service.order_cancelled("order-1", "user-7", "USER")
        assert await email_queue.depth() == 0

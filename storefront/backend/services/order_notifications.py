"""
Order Notification Service.

Called by order management when an order is placed, changes status or is
cancelled. Fans each change out to the poll channels and, for new orders,
queues the admin notification email. Admins hear about status changes they
made themselves and about every cancellation.
"""

from storefront.backend.core.exceptions import ValidationError
from storefront.backend.events.publishers import OrderEventPublisher
from storefront.backend.notifications.queue import EmailWorkQueue
from storefront.backend.notifications.schemas import (
    NEW_ORDER,
    EmailJob,
    EmailMetadata,
    OrderItemData,
)
from storefront.backend.schemas.order import OrderNotificationResult, OrderSnapshot
from storefront.backend.services.base import BaseService

STATUS_CHANGE = "STATUS_CHANGE"
USER_CANCELLATION = "USER_CANCELLATION"
ADMIN_CANCELLATION = "ADMIN_CANCELLATION"
CANCELLED = "CANCELLED"


class OrderNotificationService(BaseService):
    """
    Service for order change notifications.

    Poll events are always attempted; the admin email is only queued when
    email publishing is enabled.
    """

    def __init__(
        self,
        publisher: OrderEventPublisher,
        queue: EmailWorkQueue,
        admin_email: str,
        email_enabled: bool = True,
    ) -> None:
        super().__init__()
        self.publisher = publisher
        self.queue = queue
        self.admin_email = admin_email
        self.email_enabled = email_enabled

    async def order_placed(self, order: OrderSnapshot) -> OrderNotificationResult:
        """
        Announce a new order to admins.

        Args:
            order: The placed order

        Returns:
            Ids of the published poll event and queued email job
        """
        self._require(order_id=order.order_id, customer_name=order.customer_name)
        self._log("Order placed", order_id=order.order_id, user_id=order.user_id)

        result = OrderNotificationResult(order_id=order.order_id)

        event = await self.publisher.publish_new_order_for_admin(
            order.order_id, order.customer_name, order.total_amount,
        )
        if event is not None:
            result.poll_event_ids.append(event.event_id)

        if self.email_enabled:
            job = EmailJob(
                event_type=NEW_ORDER,
                recipient_email=self.admin_email,
                metadata=self._email_metadata(order),
            )
            result.email_queued = await self.queue.publish(job)
            result.email_job_id = job.event_id

        self._log(
            "Order placed notifications sent",
            level="debug",
            order_id=order.order_id,
            poll_events=len(result.poll_event_ids),
            email_queued=result.email_queued,
        )
        return result

    async def order_status_changed(
        self,
        order_id: str,
        user_id: str,
        new_status: str,
        previous_status: str | None = None,
        changed_by: str = "ADMIN",
    ) -> OrderNotificationResult:
        """
        Announce a status change to the order's owner, and to admins when an
        admin made it.

        Returns:
            Ids of the published poll events

        Raises:
            ValidationError: new_status is CANCELLED (use order_cancelled)
        """
        self._require(order_id=order_id, user_id=user_id, new_status=new_status)
        if new_status.upper() == CANCELLED:
            raise ValidationError(
                "Cancellations are reported through the cancellation hook",
                details={"new_status": new_status},
            )
        self._log(
            "Order status changed",
            order_id=order_id,
            new_status=new_status,
            previous_status=previous_status,
            changed_by=changed_by,
        )

        result = OrderNotificationResult(order_id=order_id)
        self._collect(result, await self.publisher.publish_order_status_change(order_id, user_id, new_status))
        if changed_by == "ADMIN":
            details = {"status": new_status}
            if previous_status:
                details["previous_status"] = previous_status
            self._collect(
                result,
                await self.publisher.publish_order_update_for_admin(order_id, STATUS_CHANGE, details),
            )
        return result

    async def order_cancelled(
        self,
        order_id: str,
        user_id: str,
        cancelled_by: str,
        remarks: str | None = None,
    ) -> OrderNotificationResult:
        """
        Announce a cancellation: CANCELLED to the owner, and a USER_CANCELLATION
        or ADMIN_CANCELLATION update to admins.

        Returns:
            Ids of the published poll events
        """
        self._require(order_id=order_id, user_id=user_id, cancelled_by=cancelled_by)
        self._log("Order cancelled", order_id=order_id, cancelled_by=cancelled_by)

        if cancelled_by == "USER":
            update_type = USER_CANCELLATION
            details = {"cancelled_by": "USER", "user_id": user_id, "remarks": remarks or ""}
        else:
            update_type = ADMIN_CANCELLATION
            details = {"cancelled_by": "ADMIN", "remarks": remarks or ""}

        result = OrderNotificationResult(order_id=order_id)
        self._collect(result, await self.publisher.publish_order_status_change(order_id, user_id, CANCELLED))
        self._collect(
            result,
            await self.publisher.publish_order_update_for_admin(order_id, update_type, details),
        )
        return result

    @staticmethod
    def _collect(result: OrderNotificationResult, event) -> None:
        if event is not None:
            result.poll_event_ids.append(event.event_id)

    @staticmethod
    def _email_metadata(order: OrderSnapshot) -> EmailMetadata:
        return EmailMetadata(
            order_id=order.order_id,
            customer_name=order.customer_name,
            phone_number=order.phone_number,
            full_address=order.full_address,
            total_amount=order.total_amount,
            total_items=order.total_items,
            order_items=[
                OrderItemData(
                    product_name=item.product_name,
                    product_sku=item.product_sku,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in order.items
            ],
            order_placed_at=order.placed_at.strftime("%d %b %Y, %I:%M %p UTC"),
        )


def get_order_notification_service() -> OrderNotificationService:
    """Build the service on the shared publisher and queue."""
    from storefront.backend.core.config import get_app_config
    from storefront.backend.events.publishers import get_order_event_publisher
    from storefront.backend.notifications.queue import get_email_queue

    app_config = get_app_config()
    return OrderNotificationService(
        get_order_event_publisher(),
        get_email_queue(),
        admin_email=app_config.email.admin_email,
        email_enabled=app_config.features.email_publish_enabled,
    )

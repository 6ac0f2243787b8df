"""
Order Hook Endpoints.

Internal hooks the order system calls when an order is placed, changes
status or is cancelled. Admin token required.
"""

from fastapi import APIRouter

from storefront.backend.core.dependencies import AdminPrincipal, NotificationService, RequestId
from storefront.backend.schemas.base import ApiResponse
from storefront.backend.schemas.order import (
    OrderCancellation,
    OrderNotificationResult,
    OrderSnapshot,
    OrderStatusChange,
)

router = APIRouter()


@router.post(
    "/placed",
    response_model=ApiResponse[OrderNotificationResult],
    status_code=202,
    summary="Order placed",
    description="Publish the admin new-order event and queue the admin notification email.",
)
async def order_placed(
    order: OrderSnapshot,
    principal: AdminPrincipal,
    service: NotificationService,
    request_id: RequestId,
) -> ApiResponse[OrderNotificationResult]:
    """Notify admins of a new order."""
    result = await service.order_placed(order)
    return ApiResponse.for_request(result, request_id)


@router.post(
    "/{order_id}/status",
    response_model=ApiResponse[OrderNotificationResult],
    status_code=202,
    summary="Order status changed",
    description="Publish the customer status event, plus the admin order update when an admin made the change.",
)
async def order_status_changed(
    order_id: str,
    change: OrderStatusChange,
    principal: AdminPrincipal,
    service: NotificationService,
    request_id: RequestId,
) -> ApiResponse[OrderNotificationResult]:
    """Notify the customer and admins of a status change."""
    result = await service.order_status_changed(
        order_id,
        change.user_id,
        change.new_status,
        previous_status=change.previous_status,
        changed_by=change.changed_by,
    )
    return ApiResponse.for_request(result, request_id)


@router.post(
    "/{order_id}/cancelled",
    response_model=ApiResponse[OrderNotificationResult],
    status_code=202,
    summary="Order cancelled",
    description="Publish CANCELLED to the customer and the cancellation update to admins.",
)
async def order_cancelled(
    order_id: str,
    cancellation: OrderCancellation,
    principal: AdminPrincipal,
    service: NotificationService,
    request_id: RequestId,
) -> ApiResponse[OrderNotificationResult]:
    result = await service.order_cancelled(
        order_id,
        cancellation.user_id,
        cancellation.cancelled_by,
        remarks=cancellation.remarks,
    )
    return ApiResponse.for_request(result, request_id)

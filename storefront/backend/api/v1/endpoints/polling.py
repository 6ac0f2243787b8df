"""
Polling API Endpoints.

Clients poll for order events with the id of the last event they saw.
With long_poll=true an empty poll is held open until events arrive or the
wait budget runs out.
"""

from fastapi import APIRouter, Query, Request

from storefront.backend.core.config import get_app_config
from storefront.backend.core.dependencies import (
    AdminPrincipal,
    Coordinator,
    CurrentPrincipal,
    RequestId,
)
from storefront.backend.events.polling import resolve_channel
from storefront.backend.events.schemas import PollEventType, PollResponse
from storefront.backend.schemas.base import ApiResponse

router = APIRouter()

LAST_EVENT_ID = Query(default=None, description="Id of the last event received; omit on first poll")
LONG_POLL = Query(default=False, description="Wait for new events when none are available")


def _long_poll_enabled(requested: bool) -> bool:
    return requested and get_app_config().features.polling_long_poll_enabled


@router.get(
    "/events",
    response_model=ApiResponse[PollResponse],
    summary="Poll events by type",
    description="Poll one event type. Admin event types require the admin role.",
)
async def poll_events(
    request: Request,
    principal: CurrentPrincipal,
    coordinator: Coordinator,
    request_id: RequestId,
    event_type: PollEventType = Query(..., description="Event type to poll"),
    last_event_id: str | None = LAST_EVENT_ID,
    long_poll: bool = LONG_POLL,
) -> ApiResponse[PollResponse]:
    """Poll events of one type on the caller's channel or the admin channel."""
    channel = resolve_channel(coordinator.store, principal, event_type)
    result = await coordinator.poll(
        channel,
        last_event_id,
        long_poll=_long_poll_enabled(long_poll),
        event_type=event_type,
        is_disconnected=request.is_disconnected,
    )
    return ApiResponse.for_request(result, request_id)


@router.get(
    "/admin/events",
    response_model=ApiResponse[PollResponse],
    summary="Poll admin events",
    description="Poll all events on the admin channel (new orders, order updates).",
)
async def poll_admin_events(
    request: Request,
    principal: AdminPrincipal,
    coordinator: Coordinator,
    request_id: RequestId,
    last_event_id: str | None = LAST_EVENT_ID,
    long_poll: bool = LONG_POLL,
) -> ApiResponse[PollResponse]:
    """Poll the admin channel."""
    result = await coordinator.poll(
        coordinator.store.admin_channel,
        last_event_id,
        long_poll=_long_poll_enabled(long_poll),
        is_disconnected=request.is_disconnected,
    )
    return ApiResponse.for_request(result, request_id)


@router.get(
    "/user/events",
    response_model=ApiResponse[PollResponse],
    summary="Poll my events",
    description="Poll all events on the caller's own channel.",
)
async def poll_user_events(
    request: Request,
    principal: CurrentPrincipal,
    coordinator: Coordinator,
    request_id: RequestId,
    last_event_id: str | None = LAST_EVENT_ID,
    long_poll: bool = LONG_POLL,
) -> ApiResponse[PollResponse]:
    """Poll the caller's user channel."""
    result = await coordinator.poll(
        coordinator.store.user_channel(principal.user_id),
        last_event_id,
        long_poll=_long_poll_enabled(long_poll),
        is_disconnected=request.is_disconnected,
    )
    return ApiResponse.for_request(result, request_id)

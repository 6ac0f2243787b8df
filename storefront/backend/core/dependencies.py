"""
FastAPI Dependencies.

Shared dependencies for request handling. Components are resolved through
these functions so tests can swap them with app.dependency_overrides.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.backend.core.exceptions import AuthenticationError, AuthorizationError
from storefront.backend.core.logging import get_logger
from storefront.backend.core.security import Principal, decode_token, principal_from_claims
from storefront.backend.events.polling import LongPollCoordinator, get_poll_coordinator
from storefront.backend.services.order_notifications import (
    OrderNotificationService,
    get_order_notification_service,
)

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


async def get_request_id(request: Request) -> str:
    """
    Request ID for response metadata.

    Same ID the middleware echoes in X-Request-ID; falls back to the
    inbound header, then a fresh UUID when the middleware is not mounted.
    """
    request_id = getattr(request.state, "request_id", None)
    return request_id or request.headers.get("x-request-id") or str(uuid.uuid4())


RequestId = Annotated[str, Depends(get_request_id)]


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Principal:
    """
    Resolve the caller from the Bearer token.

    Raises:
        AuthenticationError: No token, or the token is invalid
    """
    if credentials is None:
        raise AuthenticationError("Bearer token required")
    return principal_from_claims(decode_token(credentials.credentials))


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_admin(principal: CurrentPrincipal) -> Principal:
    """
    Require an admin caller.

    Raises:
        AuthorizationError: Caller is not an admin
    """
    if not principal.is_admin:
        logger.warning("Admin access denied", extra={"user_id": principal.user_id})
        raise AuthorizationError("Admin role required")
    return principal


AdminPrincipal = Annotated[Principal, Depends(require_admin)]


def get_coordinator() -> LongPollCoordinator:
    return get_poll_coordinator()


def get_notification_service() -> OrderNotificationService:
    return get_order_notification_service()


Coordinator = Annotated[LongPollCoordinator, Depends(get_coordinator)]
NotificationService = Annotated[OrderNotificationService, Depends(get_notification_service)]

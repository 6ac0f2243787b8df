"""
Integration Test Fixtures.

Fixtures for integration tests - the full FastAPI app served over httpx's
ASGI transport. Redis is fakeredis; the poll coordinator and the
notification service are built on it through dependency overrides.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.backend.core import redis as redis_module
from storefront.backend.core.dependencies import get_coordinator, get_notification_service
from storefront.backend.events.polling import LongPollCoordinator
from storefront.backend.events.publishers import OrderEventPublisher
from storefront.backend.events.store import EventStore
from storefront.backend.notifications import queue as queue_module
from storefront.backend.notifications.queue import EmailWorkQueue
from storefront.backend.services.order_notifications import OrderNotificationService

ADMIN_EMAIL = "admin@example.com"


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def event_store(fake_redis, clock) -> EventStore:
    return EventStore(fake_redis, clock=clock)


@pytest.fixture
def email_queue(fake_redis, clock) -> EmailWorkQueue:
    return EmailWorkQueue(fake_redis, clock=clock)


@pytest.fixture
def coordinator(event_store, clock) -> LongPollCoordinator:
    """Coordinator whose waits advance the fake clock instead of sleeping."""
    return LongPollCoordinator(
        event_store,
        timeout_seconds=3,
        interval_seconds=1,
        clock=clock,
        sleep=clock.sleep,
    )


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
async def client(
    fake_redis, email_queue, event_store, coordinator,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test client wired to fakeredis.

    Usage:
        async def test_health_endpoint(client: AsyncClient):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from storefront.backend.main import create_app

    redis_module._client = fake_redis
    queue_module._queue = email_queue

    service = OrderNotificationService(
        OrderEventPublisher(event_store), email_queue, admin_email=ADMIN_EMAIL,
    )

    app = create_app()
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_notification_service] = lambda: service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# API Response Assertion Helpers
# =============================================================================


class ApiAssertions:
    """Helper class for API response assertions."""

    @staticmethod
    def assert_success(response: Any, expected_status: int = 200) -> dict[str, Any]:
        """
        Assert API response is successful.

        Returns:
            Response JSON data
        """
        assert response.status_code == expected_status, (
            f"Expected status {expected_status}, got {response.status_code}: "
            f"{response.text}"
        )
        data = response.json()
        assert data.get("success") is True, f"Response not successful: {data}"
        return data

    @staticmethod
    def assert_error(
        response: Any,
        expected_status: int,
        expected_code: str | None = None,
    ) -> dict[str, Any]:
        """
        Assert API response is an error envelope.

        Returns:
            Response JSON data
        """
        assert response.status_code == expected_status, (
            f"Expected status {expected_status}, got {response.status_code}: "
            f"{response.text}"
        )
        data = response.json()
        assert data.get("success") is False, f"Response should be error: {data}"
        assert data.get("error") is not None, f"Missing error details: {data}"

        if expected_code:
            actual_code = data["error"].get("code")
            assert actual_code == expected_code, (
                f"Expected error code {expected_code}, got {actual_code}"
            )

        return data

    @staticmethod
    def assert_validation_error(response: Any, field: str | None = None) -> dict[str, Any]:
        """Assert API response is a request validation error (422)."""
        data = ApiAssertions.assert_error(response, 422, "VAL_REQUEST_INVALID")

        if field:
            errors = data["error"].get("details", {}).get("validation_errors", [])
            fields = [e.get("field", "") for e in errors]
            assert any(field in f for f in fields), (
                f"Expected validation error for field '{field}', "
                f"got errors for: {fields}"
            )

        return data


@pytest.fixture
def api() -> ApiAssertions:
    """Provide API assertion helpers."""
    return ApiAssertions()


# =============================================================================
# Authentication Fixtures
# =============================================================================


def _bearer(subject: str, role: str) -> dict[str, str]:
    from storefront.backend.core.security import issue_access_token

    token = issue_access_token(subject, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Bearer headers for an admin caller."""
    return _bearer("admin-1", "ADMIN")


@pytest.fixture
def user_headers() -> dict[str, str]:
    """
    Bearer headers for customer user-7.

    Usage:
        async def test_my_events(client: AsyncClient, user_headers: dict):
            response = await client.get("/api/v1/polling/user/events", headers=user_headers)
    """
    return _bearer("user-7", "USER")

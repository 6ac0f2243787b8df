"""
Integration Tests for the Polling API.

Events are published straight into the fakeredis-backed store and read
back through the HTTP endpoints with real bearer tokens.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from storefront.backend.events.publishers import OrderEventPublisher

ADMIN_EVENTS = "/api/v1/polling/admin/events"
USER_EVENTS = "/api/v1/polling/user/events"
EVENTS = "/api/v1/polling/events"


@pytest.fixture
def publisher(event_store) -> OrderEventPublisher:
    return OrderEventPublisher(event_store)


class TestAdminEvents:
    """Tests for GET /polling/admin/events."""

    @pytest.mark.asyncio
    async def test_returns_new_orders(self, client: AsyncClient, api, admin_headers, publisher):
        first = await publisher.publish_new_order_for_admin("order-1", "Asha Rao", Decimal("1250.00"))
        second = await publisher.publish_new_order_for_admin("order-2", "Ravi K", Decimal("80.50"))

        response = await client.get(ADMIN_EVENTS, headers=admin_headers)

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [first.event_id, second.event_id]
        assert data["events"][0]["event_type"] == "ADMIN_NEW_ORDER"
        assert data["events"][0]["metadata"]["customer_name"] == "Asha Rao"
        assert data["last_event_id"] == second.event_id
        assert data["has_more"] is False
        assert data["poll_interval"] == 5000

    @pytest.mark.asyncio
    async def test_resumes_after_cursor(self, client: AsyncClient, api, admin_headers, publisher):
        first = await publisher.publish_new_order_for_admin("order-1", "Asha Rao", Decimal("10"))
        second = await publisher.publish_new_order_for_admin("order-2", "Ravi K", Decimal("20"))

        response = await client.get(
            ADMIN_EVENTS, headers=admin_headers, params={"last_event_id": first.event_id},
        )

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [second.event_id]

    @pytest.mark.asyncio
    async def test_forbidden_for_customers(self, client: AsyncClient, api, user_headers):
        response = await client.get(ADMIN_EVENTS, headers=user_headers)

        api.assert_error(response, 403, "AUTHZ_FORBIDDEN")

    @pytest.mark.asyncio
    async def test_requires_token(self, client: AsyncClient, api):
        response = await client.get(ADMIN_EVENTS)

        api.assert_error(response, 401, "AUTH_UNAUTHORIZED")
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self, client: AsyncClient, api):
        response = await client.get(ADMIN_EVENTS, headers={"Authorization": "Bearer not-a-jwt"})

        api.assert_error(response, 401, "AUTH_UNAUTHORIZED")


class TestUserEvents:
    """Tests for GET /polling/user/events."""

    @pytest.mark.asyncio
    async def test_returns_own_channel_only(self, client: AsyncClient, api, user_headers, publisher):
        mine = await publisher.publish_order_status_change("order-1", "user-7", "SHIPPED")
        await publisher.publish_order_status_change("order-2", "user-8", "PAID")
        await publisher.publish_new_order_for_admin("order-1", "Asha Rao", Decimal("10"))

        response = await client.get(USER_EVENTS, headers=user_headers)

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [mine.event_id]
        assert data["events"][0]["metadata"] == {"order_id": "order-1", "status": "SHIPPED"}
        assert data["events"][0]["action"] == "REFRESH"

    @pytest.mark.asyncio
    async def test_empty_channel(self, client: AsyncClient, api, user_headers):
        response = await client.get(USER_EVENTS, headers=user_headers)

        data = api.assert_success(response)["data"]
        assert data["events"] == []
        assert data["last_event_id"] is None

    @pytest.mark.asyncio
    async def test_request_id_in_metadata(self, client: AsyncClient, api, user_headers):
        response = await client.get(
            USER_EVENTS, headers={**user_headers, "X-Request-ID": "poll-req-1"},
        )

        assert api.assert_success(response)["metadata"]["request_id"] == "poll-req-1"


class TestEventsByType:
    """Tests for GET /polling/events."""

    @pytest.mark.asyncio
    async def test_admin_filters_by_type(self, client: AsyncClient, api, admin_headers, publisher):
        await publisher.publish_new_order_for_admin("order-1", "Asha Rao", Decimal("10"))
        update = await publisher.publish_order_update_for_admin("order-1", "STATUS_CHANGE", {"new_status": "PAID"})

        response = await client.get(
            EVENTS, headers=admin_headers, params={"event_type": "ADMIN_ORDER_UPDATE"},
        )

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [update.event_id]
        assert data["events"][0]["metadata"]["new_status"] == "PAID"

    @pytest.mark.asyncio
    async def test_customer_status_type(self, client: AsyncClient, api, user_headers, publisher):
        event = await publisher.publish_order_status_change("order-1", "user-7", "DELIVERED")

        response = await client.get(
            EVENTS, headers=user_headers, params={"event_type": "CUSTOMER_ORDER_STATUS"},
        )

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [event.event_id]

    @pytest.mark.asyncio
    async def test_customer_denied_admin_type(self, client: AsyncClient, api, user_headers):
        response = await client.get(
            EVENTS, headers=user_headers, params={"event_type": "ADMIN_NEW_ORDER"},
        )

        api.assert_error(response, 403, "AUTHZ_FORBIDDEN")

    @pytest.mark.asyncio
    async def test_unknown_type_is_validation_error(self, client: AsyncClient, api, user_headers):
        response = await client.get(EVENTS, headers=user_headers, params={"event_type": "BOGUS"})

        api.assert_validation_error(response, field="event_type")

    @pytest.mark.asyncio
    async def test_type_is_required(self, client: AsyncClient, api, user_headers):
        response = await client.get(EVENTS, headers=user_headers)

        api.assert_validation_error(response, field="event_type")


class TestLongPoll:
    """Long polls are served by a coordinator on the fake clock."""

    @pytest.mark.asyncio
    async def test_times_out_empty(self, client: AsyncClient, api, admin_headers, clock):
        started = clock.now

        response = await client.get(ADMIN_EVENTS, headers=admin_headers, params={"long_poll": "true"})

        data = api.assert_success(response)["data"]
        assert data["events"] == []
        assert data["poll_interval"] == 30000
        assert clock.now - started <= 3

    @pytest.mark.asyncio
    async def test_returns_existing_events_immediately(
        self, client: AsyncClient, api, admin_headers, publisher, clock,
    ):
        event = await publisher.publish_new_order_for_admin("order-1", "Asha Rao", Decimal("10"))
        started = clock.now

        response = await client.get(ADMIN_EVENTS, headers=admin_headers, params={"long_poll": "true"})

        data = api.assert_success(response)["data"]
        assert [e["event_id"] for e in data["events"]] == [event.event_id]
        assert clock.now == started

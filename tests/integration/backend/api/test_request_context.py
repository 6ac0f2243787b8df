"""
Integration Tests for Request Context Middleware.

Tests that request context is properly propagated through the API.
"""

import pytest
from httpx import AsyncClient


class TestRequestIdHeader:
    """Tests for X-Request-ID header handling."""

    @pytest.mark.asyncio
    async def test_generates_request_id(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        # UUID format: 8-4-4-4-12 = 36 characters
        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_propagates_provided_request_id(self, client: AsyncClient):
        custom_id = "my-custom-request-id-12345"

        response = await client.get("/health", headers={"X-Request-ID": custom_id})

        assert response.headers["X-Request-ID"] == custom_id

    @pytest.mark.asyncio
    async def test_present_on_api_routes(self, client: AsyncClient, user_headers):
        for endpoint in ["/health", "/health/ready", "/api/v1/polling/user/events"]:
            response = await client.get(endpoint, headers=user_headers)
            assert len(response.headers["X-Request-ID"]) == 36


class TestResponseTimeHeader:
    """Tests for X-Response-Time header."""

    @pytest.mark.asyncio
    async def test_includes_response_time(self, client: AsyncClient):
        response = await client.get("/health")

        time_value = response.headers["X-Response-Time"]
        assert time_value.endswith("ms")
        assert time_value[:-2].isdigit()

    @pytest.mark.asyncio
    async def test_response_time_on_error(self, client: AsyncClient):
        response = await client.get("/api/v1/polling/admin/events")

        assert response.status_code == 401
        assert "X-Response-Time" in response.headers


class TestRequestContextInErrors:
    """Tests for request context in error responses."""

    @pytest.mark.asyncio
    async def test_error_response_includes_request_id(self, client: AsyncClient, user_headers):
        custom_id = "error-test-request-id"

        response = await client.get(
            "/api/v1/polling/admin/events",
            headers={**user_headers, "X-Request-ID": custom_id},
        )

        assert response.status_code == 403
        assert response.json()["metadata"]["request_id"] == custom_id

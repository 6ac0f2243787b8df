"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Redis:
    Tests never talk to a real Redis. The `fake_redis` fixture provides an
    in-process fakeredis client with the same sorted-set, list and expiry
    semantics, fresh for every test.

Secrets:
    No config/.env is needed. JWT_SECRET is supplied through the
    environment for every test and the cached settings are cleared.
"""

import time
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from fakeredis import aioredis as fake_aioredis

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-testing-purposes"


class FakeClock:
    """Controllable clock returning epoch seconds.

    Starts one second ahead of real time so events stamped with utc_now()
    during a test are already visible to reads.
    """

    def __init__(self, start: float | None = None) -> None:
        self.now = time.time() + 1.0 if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def utc(self, offset: float = 0.0) -> datetime:
        """Naive UTC datetime `offset` seconds from the clock's now, for stamping events."""
        return datetime.fromtimestamp(self.now + offset, tz=timezone.utc).replace(tzinfo=None)

    async def sleep(self, seconds: float) -> None:
        """Drop-in for asyncio.sleep that advances the clock instead of waiting."""
        self.advance(seconds)


# =============================================================================
# Secrets and Singletons
# =============================================================================


@pytest.fixture(autouse=True)
def _test_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide secrets through the environment and drop cached settings."""
    from storefront.backend.core.config import get_settings

    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_singletons() -> None:
    """Reset lazily created module-level components between tests."""
    from storefront.backend.core import metrics, redis
    from storefront.backend.events import polling, store
    from storefront.backend.notifications import queue, worker

    def _reset() -> None:
        metrics._metrics = None
        redis._client = None
        store._store = None
        polling._coordinator = None
        queue._queue = None
        worker._worker = None

    _reset()
    yield
    _reset()


# =============================================================================
# Redis Fixtures
# =============================================================================


@pytest.fixture
async def fake_redis() -> AsyncGenerator[fake_aioredis.FakeRedis, None]:
    """
    Provide an isolated in-memory Redis for a single test.

    Usage:
        async def test_append(fake_redis):
            store = EventStore(fake_redis)
            await store.append(store.admin_channel, event)
    """
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def clock() -> FakeClock:
    """Shared clock for the store, queue and coordinator under test."""
    return FakeClock()


@pytest.fixture
def install_metrics(monkeypatch: pytest.MonkeyPatch) -> Callable[[Any], Any]:
    """
    Make a collector the shared one returned by get_metrics() for this test.

    Usage:
        def test_counts(install_metrics, mock_metrics):
            install_metrics(mock_metrics)
    """
    from storefront.backend.core import metrics

    def _install(collector: Any) -> Any:
        monkeypatch.setattr(metrics, "_metrics", collector)
        return collector

    return _install


# =============================================================================
# Test Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> dict[str, Any]:
    """
    Provide test-specific settings.

    These can be used to override application settings during tests.
    """
    return {
        "app_name": "Test Application",
        "app_env": "test",
        "jwt_secret": TEST_JWT_SECRET,
        "jwt_algorithm": "HS256",
        "jwt_audience": "storefront-api",
    }


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture
def anyio_backend() -> str:
    """Specify the async backend for anyio."""
    return "asyncio"

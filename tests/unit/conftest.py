"""
Unit Test Fixtures.

Fixtures for unit tests - external services are faked or mocked.
Redis-backed components run against fakeredis; the mail provider and the
metrics collector are mocks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.backend.events.store import EventStore
from storefront.backend.notifications.queue import EmailWorkQueue


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def event_store(fake_redis, clock) -> EventStore:
    """EventStore on fakeredis with a controllable clock."""
    return EventStore(fake_redis, clock=clock)


@pytest.fixture
def email_queue(fake_redis, clock) -> EmailWorkQueue:
    """EmailWorkQueue on fakeredis with a controllable clock."""
    return EmailWorkQueue(fake_redis, clock=clock)


# =============================================================================
# Redis Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """
    Mock Redis client for failure-path tests.

    Configure individual methods to raise RedisError as needed.
    """
    redis = MagicMock()
    redis.zadd = AsyncMock(return_value=1)
    redis.zrange = AsyncMock(return_value=[])
    redis.zrangebyscore = AsyncMock(return_value=[])
    redis.zremrangebyrank = AsyncMock(return_value=0)
    redis.zcard = AsyncMock(return_value=0)
    redis.ttl = AsyncMock(return_value=-1)
    redis.expire = AsyncMock(return_value=True)
    redis.rpush = AsyncMock(return_value=1)
    redis.lpop = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.get = AsyncMock(return_value=None)
    redis.zrem = AsyncMock(return_value=1)
    redis.delete = AsyncMock(return_value=1)
    return redis


# =============================================================================
# Collaborator Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_metrics() -> MagicMock:
    """Metrics collector double; assert on increment/set_gauge calls."""
    metrics = MagicMock()
    metrics.increment = MagicMock()
    metrics.set_gauge = MagicMock()
    return metrics


@pytest.fixture
def mock_sender() -> AsyncMock:
    """MailSender double. Set side_effect to simulate delivery failures."""
    sender = AsyncMock()
    sender.send_new_order = AsyncMock(return_value=None)
    return sender

"""
Email Work Queue.

FIFO queue of email jobs on a Redis list, with a per-job in-flight marker
and a delayed-retry sorted set.

Keys (email.yaml):
    email:queue                  list, jobs waiting for the worker (RPUSH / LPOP)
    email:processing:{event_id}  string, payload of an in-flight job
    email:inflight               sorted set, in-flight event ids
                                 (score = visibility deadline in epoch seconds)
    email:delayed                sorted set, jobs waiting out a retry backoff
                                 (score = due time in epoch seconds)

A failed job is parked in the delayed set for 2^retry_count seconds and
moved back to the tail of the queue by promote_due(). The worker calls
promote_due() every iteration, so a backoff never blocks delivery of other
jobs.

A job still in flight past its deadline (worker crashed or hung mid-send) is
put back on the queue by reclaim_stale(), which the worker also runs every
iteration. Delivery is at-least-once.

Usage:
    from storefront.backend.notifications.queue import get_email_queue

    queue = get_email_queue()
    await queue.publish(EmailJob(event_type="NEW_ORDER", recipient_email=admin, metadata=meta))
"""

import time
from typing import Callable
from uuid import uuid4

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.backend.core.logging import get_logger
from storefront.backend.core.resilience import log_retry
from storefront.backend.notifications.schemas import EmailJob

logger = get_logger(__name__)

_queue: "EmailWorkQueue | None" = None


class EmailWorkQueue:
    """Redis-backed email job queue."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        queue_key: str = "email:queue",
        processing_prefix: str = "email:processing:",
        delayed_key: str = "email:delayed",
        inflight_key: str = "email:inflight",
        visibility_timeout_seconds: int = 300,
        backoff_base_seconds: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self.queue_key = queue_key
        self.processing_prefix = processing_prefix
        self.delayed_key = delayed_key
        self.inflight_key = inflight_key
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self._clock = clock

    async def publish(self, job: EmailJob) -> bool:
        """
        Append a job to the tail of the queue.

        Fills in event_id and retry_count when missing. Connection faults
        are retried briefly; a job that still cannot be queued is logged
        and dropped.

        Returns:
            True if queued, False if dropped
        """
        if job.event_id is None:
            job.event_id = str(uuid4())
        if job.retry_count is None:
            job.retry_count = 0

        try:
            await self._push(job.model_dump_json())
        except RedisError as e:
            logger.error(
                "Failed to queue email job",
                extra={"event_id": job.event_id, "event_type": job.event_type, "error": str(e)},
            )
            return False

        logger.info(
            "Email job queued",
            extra={"event_id": job.event_id, "event_type": job.event_type},
        )
        return True

    async def consume(self) -> EmailJob | None:
        """
        Pop the head job and mark it in flight.

        Returns:
            The job, or None if the queue is empty, the head payload is
            malformed (it is discarded), or Redis is unreachable
        """
        try:
            raw = await self._redis.lpop(self.queue_key)
            if raw is None:
                return None

            job = self._decode(raw)
            if job is None:
                return None

            # Payload outlives the deadline so reclaim_stale() can still read it
            await self._redis.set(
                self._processing_key(job),
                job.model_dump_json(),
                ex=self.visibility_timeout_seconds * 2,
            )
            await self._redis.zadd(
                self.inflight_key, {job.event_id: self._clock() + self.visibility_timeout_seconds},
            )
        except RedisError as e:
            logger.error("Failed to consume email job", extra={"error": str(e)})
            return None

        return job

    async def mark_processed(self, job: EmailJob) -> None:
        """Clear the in-flight marker of a delivered job."""
        await self._clear_marker(job)
        logger.debug("Email job processed", extra={"event_id": job.event_id})

    async def requeue_for_retry(self, job: EmailJob) -> int:
        """
        Schedule a failed job for another attempt.

        Increments retry_count and parks the job until
        backoff_base_seconds ** retry_count seconds from now. The in-flight
        marker is only cleared once the job is parked; if parking fails the
        marker stays and reclaim_stale() redelivers the job after its
        visibility deadline.

        Returns:
            The backoff delay in seconds
        """
        previous_count = job.retry_count or 0
        job.retry_count = previous_count + 1
        delay = self.backoff_base_seconds ** job.retry_count
        due = self._clock() + delay

        try:
            await self._redis.zadd(self.delayed_key, {job.model_dump_json(): due})
        except RedisError as e:
            job.retry_count = previous_count
            logger.error(
                "Failed to schedule email retry, leaving job in flight",
                extra={"event_id": job.event_id, "retry_count": previous_count, "error": str(e)},
            )
            return delay

        await self._clear_marker(job)
        logger.info(
            "Email job scheduled for retry",
            extra={"event_id": job.event_id, "retry_count": job.retry_count, "delay_seconds": delay},
        )
        return delay

    async def remove_from_queue(self, job: EmailJob) -> None:
        """Drop a job for good: clear its marker, do not re-enqueue."""
        await self._clear_marker(job)
        logger.warning(
            "Email job removed",
            extra={"event_id": job.event_id, "retry_count": job.retry_count},
        )

    async def promote_due(self) -> int:
        """
        Move delayed jobs whose backoff has elapsed to the queue tail.

        Returns:
            Number of jobs moved
        """
        try:
            due = await self._redis.zrangebyscore(self.delayed_key, 0, self._clock())
            moved = 0
            for raw in due:
                # Only the caller that removes the member re-enqueues it
                if await self._redis.zrem(self.delayed_key, raw):
                    await self._redis.rpush(self.queue_key, raw)
                    moved += 1
        except RedisError as e:
            logger.error("Failed to promote delayed email jobs", extra={"error": str(e)})
            return 0

        if moved:
            logger.debug("Delayed email jobs promoted", extra={"count": moved})
        return moved

    async def reclaim_stale(self) -> int:
        """
        Put in-flight jobs whose visibility deadline has passed back on the queue tail.

        retry_count is left unchanged: the attempt never reported an outcome.

        Returns:
            Number of jobs re-enqueued
        """
        try:
            stale = await self._redis.zrangebyscore(self.inflight_key, 0, self._clock())
            reclaimed = 0
            for event_id in stale:
                if isinstance(event_id, bytes):
                    event_id = event_id.decode()
                if not await self._redis.zrem(self.inflight_key, event_id):
                    continue

                key = f"{self.processing_prefix}{event_id}"
                payload = await self._redis.get(key)
                await self._redis.delete(key)
                if payload is None:
                    logger.warning("Stale email job payload already expired", extra={"event_id": event_id})
                    continue

                await self._redis.rpush(self.queue_key, payload)
                reclaimed += 1
        except RedisError as e:
            logger.error("Failed to reclaim stale email jobs", extra={"error": str(e)})
            return 0

        if reclaimed:
            logger.warning("Stale in-flight email jobs re-enqueued", extra={"count": reclaimed})
        return reclaimed

    async def depth(self) -> int:
        """Number of jobs waiting in the queue."""
        return await self._redis.llen(self.queue_key)

    async def delayed_count(self) -> int:
        """Number of jobs waiting out a backoff."""
        return await self._redis.zcard(self.delayed_key)

    async def in_flight_ids(self) -> list[str]:
        """Event ids of jobs currently in flight, oldest deadline first."""
        ids = await self._redis.zrange(self.inflight_key, 0, -1)
        return [i.decode() if isinstance(i, bytes) else i for i in ids]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=1),
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _push(self, payload: str) -> None:
        await self._redis.rpush(self.queue_key, payload)

    async def _clear_marker(self, job: EmailJob) -> None:
        try:
            await self._redis.delete(self._processing_key(job))
            await self._redis.zrem(self.inflight_key, job.event_id)
        except RedisError as e:
            logger.error(
                "Failed to clear in-flight marker",
                extra={"event_id": job.event_id, "error": str(e)},
            )

    def _processing_key(self, job: EmailJob) -> str:
        return f"{self.processing_prefix}{job.event_id}"

    @staticmethod
    def _decode(raw: str | bytes) -> EmailJob | None:
        try:
            job = EmailJob.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error("Discarding malformed email job", extra={"error": str(e)})
            return None

        if job.event_id is None:
            job.event_id = str(uuid4())
        if job.retry_count is None:
            job.retry_count = 0
        return job


def get_email_queue() -> EmailWorkQueue:
    """Get the shared email queue (lazy initialization from email.yaml)."""
    global _queue
    if _queue is None:
        from storefront.backend.core.config import get_app_config
        from storefront.backend.core.redis import get_redis

        config = get_app_config().email
        _queue = EmailWorkQueue(
            get_redis(),
            queue_key=config.keys.queue,
            processing_prefix=config.keys.processing_prefix,
            delayed_key=config.keys.delayed,
            inflight_key=config.keys.inflight,
            visibility_timeout_seconds=config.visibility_timeout_seconds,
            backoff_base_seconds=config.retry.backoff_base_seconds,
        )
    return _queue

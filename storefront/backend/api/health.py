"""
Health Check Endpoints.

Provides liveness, readiness, and detailed health checks, plus the
Prometheus scrape endpoint.

Endpoints:
- /health: Liveness check (process running)
- /health/ready: Readiness check (Redis reachable)
- /health/detailed: Component status, email queue and worker state (for debugging)
- /metrics: Prometheus exposition (when metrics are enabled)
"""

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.backend.core.concurrency import pool_status
from storefront.backend.core.config import get_app_config
from storefront.backend.core.dependencies import get_current_principal, require_admin
from storefront.backend.core.logging import get_logger
from storefront.backend.core.utils import utc_now

router = APIRouter()
logger = get_logger(__name__)


async def check_redis() -> dict[str, Any]:
    """
    Check Redis connectivity.

    Returns:
        Dict with status, latency, and optional error message
    """
    try:
        from storefront.backend.core.redis import get_redis

        start = utc_now()
        await get_redis().ping()
        latency_ms = int((utc_now() - start).total_seconds() * 1000)

        return {
            "status": "healthy",
            "latency_ms": latency_ms,
        }

    except Exception as e:
        logger.warning("Redis health check failed", extra={"error": str(e)})
        return {
            "status": "unhealthy",
            "error": str(e),
        }


async def check_email_queue() -> dict[str, Any]:
    """
    Report email queue depth, pending retries and in-flight jobs.

    Abandoned jobs are reclaimed by the worker after the visibility timeout,
    so in_flight should hold at most the job being sent.
    """
    try:
        from storefront.backend.notifications.queue import get_email_queue

        queue = get_email_queue()
        depth, delayed, in_flight = await asyncio.gather(
            queue.depth(), queue.delayed_count(), queue.in_flight_ids(),
        )

        from storefront.backend.core.metrics import get_metrics
        metrics = get_metrics()
        metrics.set_gauge("email_queue_depth", depth)
        metrics.set_gauge("email_queue_delayed", delayed)
        metrics.set_gauge("email_queue_in_flight", len(in_flight))

        return {
            "status": "healthy",
            "depth": depth,
            "delayed": delayed,
            "in_flight": in_flight,
        }

    except Exception as e:
        logger.warning("Email queue health check failed", extra={"error": str(e)})
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@router.get("/health")
async def health_check() -> dict[str, str]:
    """
    Liveness check.

    Returns 200 if the process is running.
    No dependency checks - this endpoint should always respond quickly.
    Used by process monitors (e.g., Kubernetes liveness check).
    """
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check() -> dict[str, Any]:
    """
    Readiness check.

    Returns 200 if ready to serve traffic, 503 if Redis is unreachable.
    """
    timeout = get_app_config().observability.health_checks.ready_timeout_seconds

    redis_result: dict[str, Any] = {"status": "error", "error": "check did not run"}
    try:
        async with asyncio.timeout(timeout):
            redis_result = await check_redis()
    except TimeoutError:
        redis_result = {"status": "unhealthy", "error": f"timed out after {timeout}s"}

    checks = {"redis": redis_result}

    if redis_result.get("status") != "healthy":
        logger.warning("Readiness check failed", extra={"checks": checks})
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "checks": checks,
                "timestamp": utc_now().isoformat(),
            },
        )

    return {
        "status": "healthy",
        "checks": checks,
        "timestamp": utc_now().isoformat(),
    }


_bearer = HTTPBearer(auto_error=False)


async def detailed_access(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Require an admin token for /health/detailed when health_checks.detailed_auth_required is set."""
    if not get_app_config().observability.health_checks.detailed_auth_required:
        return
    await require_admin(await get_current_principal(credentials))


@router.get("/health/detailed", dependencies=[Depends(detailed_access)])
async def detailed_health_check() -> dict[str, Any]:
    """
    Detailed health check.

    Returns dependency checks, email queue state, worker state and pool
    size. Admin-only when health_checks.detailed_auth_required is set.
    """
    redis_result: dict[str, Any] = {"status": "error", "error": "check did not run"}
    queue_result: dict[str, Any] = {"status": "error", "error": "check did not run"}

    try:
        async with asyncio.TaskGroup() as tg:
            redis_task = tg.create_task(check_redis())
            queue_task = tg.create_task(check_email_queue())
        redis_result = redis_task.result()
        queue_result = queue_task.result()
    except* Exception as eg:
        for exc in eg.exceptions:
            logger.warning("Detailed health check task failed", extra={"error": str(exc)})

    checks = {
        "redis": redis_result,
        "email_queue": queue_result,
    }

    app_config = get_app_config()
    app_settings = app_config.application

    app_info = {
        "name": app_settings.name,
        "env": app_settings.environment,
        "debug": app_settings.debug,
        "version": app_settings.version,
    }

    statuses = [check.get("status") for check in checks.values()]
    overall_status = "unhealthy" if "unhealthy" in statuses or "error" in statuses else "healthy"

    return {
        "status": overall_status,
        "application": app_info,
        "checks": checks,
        "worker": _get_worker_status(app_config.features.email_worker_enabled),
        "pools": pool_status(),
        "timestamp": utc_now().isoformat(),
    }


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint. 404 when metrics are disabled."""
    from storefront.backend.core.metrics import PrometheusMetrics, get_metrics

    collector = get_metrics()
    if not isinstance(collector, PrometheusMetrics):
        raise HTTPException(status_code=404, detail="Metrics disabled")

    payload, content_type = collector.render()
    return Response(content=payload, media_type=content_type)


def _get_worker_status(enabled: bool) -> dict[str, Any]:
    """Report whether the in-process email worker is running."""
    if not enabled:
        return {"enabled": False, "running": False}

    from storefront.backend.notifications import worker

    running = worker._worker is not None and worker._worker.running
    return {"enabled": True, "running": running}


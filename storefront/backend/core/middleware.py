"""
Request Context Middleware.

Tags each request with an id, the calling frontend and a start time, binds
them to the structlog context, and stamps X-Request-ID / X-Response-Time
on the response. Every completed request is counted per route template and
status code.

Long polls are held open for up to the long-poll budget, so the recorded
duration of /api/v1/polling requests is mostly waiting.

Access in endpoints:
    request.state.request_id
    request.state.frontend
    request.state.start_time
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from storefront.backend.core.logging import bind_source, get_logger
from storefront.backend.core.metrics import get_metrics

logger = get_logger(__name__)

# Values accepted in X-Frontend-ID; anything else is logged as "unknown"
KNOWN_FRONTENDS = frozenset({"web", "admin", "mobile", "cli", "api", "internal"})


def _frontend(request: Request) -> str:
    frontend = request.headers.get("X-Frontend-ID", "unknown").lower()
    return frontend if frontend in KNOWN_FRONTENDS else "unknown"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _route_template(request: Request) -> str:
    """Route path template (e.g. /order-hooks/{order_id}/status) to keep label cardinality bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, frontend, timing and request counting for every request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        frontend = _frontend(request)
        started = time.perf_counter()

        request.state.request_id = request_id
        request.state.frontend = frontend
        request.state.start_time = started

        structlog.contextvars.clear_contextvars()
        bind_source("api")
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            frontend=frontend,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                extra={"duration_ms": _elapsed_ms(started), "error_type": type(exc).__name__},
            )
            raise
        else:
            duration_ms = _elapsed_ms(started)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"

            get_metrics().increment(
                "http_requests_total",
                method=request.method,
                route=_route_template(request),
                status_code=str(response.status_code),
            )
            logger.debug(
                "Request completed",
                extra={"status_code": response.status_code, "duration_ms": duration_ms},
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

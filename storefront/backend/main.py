"""
FastAPI application.

Serves the poll endpoints, the order hooks, health checks and /metrics. With
features.email_worker_enabled the email worker runs as a task inside this
process; otherwise run it with `cli.py --service worker`.

    uvicorn storefront.backend.main:app
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.backend.api import health
from storefront.backend.api.v1 import router as api_v1_router
from storefront.backend.core.concurrency import shutdown_pools
from storefront.backend.core.config import get_app_config
from storefront.backend.core.exception_handlers import register_exception_handlers
from storefront.backend.core.logging import get_logger, setup_logging
from storefront.backend.core.middleware import RequestContextMiddleware
from storefront.backend.core.redis import close_redis, get_redis

logger = get_logger(__name__)

_app: FastAPI | None = None


async def _check_redis() -> None:
    # Startup continues without Redis: publishes return nothing and polls come back empty.
    try:
        await get_redis().ping()
    except Exception as e:
        logger.warning("Redis unreachable at startup", extra={"error": str(e)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_config = get_app_config()
    setup_logging()
    logger.info(
        "Application starting",
        extra={
            "app_name": app_config.application.name,
            "env": app_config.application.environment,
            "email_worker": app_config.features.email_worker_enabled,
        },
    )
    await _check_redis()

    worker = None
    if app_config.features.email_worker_enabled:
        from storefront.backend.notifications.worker import get_email_worker

        worker = get_email_worker()
        worker.start()

    try:
        yield
    finally:
        logger.info("Application shutting down")
        if worker is not None:
            await worker.stop()
        await shutdown_pools()
        await close_redis()


def create_app() -> FastAPI:
    app_settings = get_app_config().application

    app = FastAPI(
        title=app_settings.name,
        description=app_settings.description,
        version=app_settings.version,
        docs_url="/docs" if app_settings.docs_enabled else None,
        redoc_url="/redoc" if app_settings.docs_enabled else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    if app_settings.cors.origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=app_settings.cors.origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Frontend-ID"],
            expose_headers=["X-Request-ID", "X-Response-Time"],
        )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(api_v1_router, prefix=app_settings.api_prefix)

    return app


def get_app() -> FastAPI:
    """Build the app on first call so importing this module never reads config."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


def __getattr__(name: str) -> FastAPI:
    # `storefront.backend.main:app` for uvicorn
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

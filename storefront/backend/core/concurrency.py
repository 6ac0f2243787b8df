"""
Concurrency Infrastructure.

The Resend SDK is synchronous, so sends run on a small thread pool sized by
concurrency.yaml. The pool is created on first use and shut down with the
application (or the standalone worker).

Usage:
    from storefront.backend.core.concurrency import run_blocking

    response = await run_blocking(resend.Emails.send, params)
"""

import asyncio
import contextvars
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from storefront.backend.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_io_pool: ThreadPoolExecutor | None = None


class TracedThreadPoolExecutor(ThreadPoolExecutor):
    """Runs each job inside a copy of the submitter's contextvars.

    Keeps structlog fields bound by the worker (event_id, source) on log
    lines written from the send thread.
    """

    def submit(self, fn, /, *args, **kwargs):
        ctx = contextvars.copy_context()
        return super().submit(ctx.run, fn, *args, **kwargs)


def get_io_pool() -> TracedThreadPoolExecutor:
    global _io_pool
    if _io_pool is None:
        from storefront.backend.core.config import get_app_config
        max_workers = get_app_config().concurrency.thread_pool.max_workers
        _io_pool = TracedThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="io")
        logger.info("Thread pool created", extra={"max_workers": max_workers})
    return _io_pool


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await `fn(*args, **kwargs)` on the I/O pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_io_pool(), functools.partial(fn, *args, **kwargs))


def pool_status() -> dict[str, Any]:
    """Size of the I/O pool for /health/detailed; empty until the first blocking call."""
    if _io_pool is None:
        return {}
    return {
        "thread_pool": {
            "max_workers": _io_pool._max_workers,
            "threads": len(_io_pool._threads),
            "queued": _io_pool._work_queue.qsize(),
        },
    }


async def shutdown_pools() -> None:
    """Wait for in-flight sends, then drop the pool. Shutdown blocks, so it runs off-loop."""
    global _io_pool

    if _io_pool is not None:
        await asyncio.to_thread(_io_pool.shutdown, wait=True)
        logger.info("Thread pool shut down")
        _io_pool = None

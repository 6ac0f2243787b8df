"""
Email Worker.

Single background consumer of the email work queue. Each iteration
promotes delayed retries that are due, re-enqueues jobs abandoned in
flight, takes one job and hands it to the mail sender. A failed job goes
back through the queue's backoff until the retry ceiling is reached, then
it is dropped.

Runs as an asyncio task inside the API process (FastAPI lifespan) or
standalone via `python cli.py --service worker`.

Usage:
    worker = get_email_worker()
    worker.start()
    ...
    await worker.stop()
"""

import asyncio
from typing import Awaitable, Callable

from storefront.backend.core.logging import bind_source, get_logger
from storefront.backend.core.metrics import MetricsCollector, NullMetrics
from storefront.backend.notifications.mailer import MailSender
from storefront.backend.notifications.queue import EmailWorkQueue
from storefront.backend.notifications.schemas import NEW_ORDER, EmailJob

logger = get_logger(__name__)


class EmailWorker:
    """Background consumer with retry and backoff."""

    def __init__(
        self,
        queue: EmailWorkQueue,
        sender: MailSender,
        *,
        max_retries: int = 3,
        poll_interval_seconds: float = 1.0,
        drain_seconds: float = 10.0,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.sender = sender
        self.max_retries = max_retries
        self.poll_interval_seconds = poll_interval_seconds
        self.drain_seconds = drain_seconds
        self._metrics = metrics or NullMetrics()
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """True while a consume loop task exists, including one still draining after stop()."""
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Start the consume loop on the running event loop.

        Returns:
            True if started, False if it was already running
        """
        if self.running:
            logger.debug("Email worker already running", extra={"stopping": not self._running})
            return False

        self._running = True
        self._task = asyncio.create_task(self._run(), name="email-worker")
        logger.info(
            "Email worker started",
            extra={"max_retries": self.max_retries, "poll_interval": self.poll_interval_seconds},
        )
        return True

    async def stop(self) -> None:
        """Stop after the current iteration, cancelling if it overruns the drain time."""
        self._running = False
        task = self._task
        if task is None:
            return

        # The task stays referenced until it ends, so start() cannot spawn a second loop
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.drain_seconds)
        except asyncio.TimeoutError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.warning(
                "Email worker did not drain in time, cancelled",
                extra={"drain_seconds": self.drain_seconds},
            )
        finally:
            if self._task is task:
                self._task = None
        logger.info("Email worker stopped")

    async def run_once(self) -> bool:
        """
        Run one iteration.

        Returns:
            True if a job was handled, False if the queue was empty
        """
        await self.queue.promote_due()
        await self.queue.reclaim_stale()
        job = await self.queue.consume()
        if job is None:
            return False

        await self._process(job)
        return True

    async def _run(self) -> None:
        bind_source("worker")
        while self._running:
            try:
                handled = await self.run_once()
            except Exception as e:
                logger.error(
                    "Unexpected error in email worker",
                    extra={"error": str(e), "error_type": type(e).__name__},
                    exc_info=True,
                )
                handled = False

            if not handled and self._running:
                await self._sleep(self.poll_interval_seconds)

    async def _process(self, job: EmailJob) -> None:
        retry_count = job.retry_count or 0
        logger.info(
            "Processing email job",
            extra={
                "event_id": job.event_id,
                "event_type": job.event_type,
                "attempt": retry_count + 1,
                "max_retries": self.max_retries,
            },
        )

        try:
            if job.event_type == NEW_ORDER:
                await self.sender.send_new_order(job)
                outcome = "sent"
            else:
                logger.warning(
                    "Unknown email event type",
                    extra={"event_id": job.event_id, "event_type": job.event_type},
                )
                outcome = "skipped"
        except Exception as e:
            logger.error(
                "Email delivery failed",
                extra={"event_id": job.event_id, "retry_count": retry_count, "error": str(e)},
            )
            await self._handle_failure(job)
            return

        await self.queue.mark_processed(job)
        self._metrics.increment("email_jobs_total", outcome=outcome)

    async def _handle_failure(self, job: EmailJob) -> None:
        if (job.retry_count or 0) < self.max_retries:
            await self.queue.requeue_for_retry(job)
            self._metrics.increment("email_jobs_total", outcome="retried")
        else:
            logger.error(
                "Max retries exceeded for email job, dropping",
                extra={"event_id": job.event_id, "retry_count": job.retry_count},
            )
            await self.queue.remove_from_queue(job)
            self._metrics.increment("email_jobs_total", outcome="dropped")


_worker: EmailWorker | None = None


def get_email_worker() -> EmailWorker:
    """Get the shared worker (lazy initialization from email.yaml)."""
    global _worker
    if _worker is None:
        from storefront.backend.core.config import get_app_config
        from storefront.backend.core.metrics import get_metrics
        from storefront.backend.notifications.mailer import create_mail_sender
        from storefront.backend.notifications.queue import get_email_queue

        app_config = get_app_config()
        _worker = EmailWorker(
            get_email_queue(),
            create_mail_sender(),
            max_retries=app_config.email.retry.max_retries,
            poll_interval_seconds=app_config.email.worker.poll_interval_seconds,
            drain_seconds=app_config.concurrency.shutdown.drain_seconds,
            metrics=get_metrics(),
        )
    return _worker

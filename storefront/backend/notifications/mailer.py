"""
Mail Dispatch.

Renders order notification emails with Jinja2 and sends them through
Resend. The Resend SDK is synchronous, so sends run on the shared I/O
thread pool behind a circuit breaker.

The email worker only depends on the MailSender protocol; tests and other
providers plug in their own sender.
"""

from decimal import ROUND_HALF_EVEN, Decimal
from pathlib import Path
from typing import Any, Protocol

import aiobreaker
import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape
from resend.exceptions import ResendError

from storefront.backend.core.concurrency import run_blocking
from storefront.backend.core.config_schema import CompanySchema
from storefront.backend.core.exceptions import ExternalServiceError
from storefront.backend.core.logging import get_logger
from storefront.backend.core.resilience import create_circuit_breaker
from storefront.backend.notifications.schemas import EmailJob, EmailMetadata

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class MailSender(Protocol):
    """Delivers a rendered email for a job. Raises on failure."""

    async def send_new_order(self, job: EmailJob) -> None: ...


def format_inr(amount: Decimal | float | int | None) -> str:
    """Format an amount as Indian rupees with lakh grouping, e.g. ₹12,34,567.50."""
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
    sign = "-" if value < 0 else ""
    whole, fraction = f"{abs(value):.2f}".split(".")

    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])

    return f"{sign}₹{whole}.{fraction}"


class NewOrderEmailRenderer:
    """Builds the subject and HTML body of the admin new-order email."""

    template_name = "new_order.html"

    def __init__(self, company: CompanySchema, template_dir: Path = TEMPLATE_DIR) -> None:
        self.company = company
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["inr"] = format_inr

    @staticmethod
    def subject(metadata: EmailMetadata) -> str:
        return f"New Order Received - Order #{metadata.order_id[:8]}"

    def render(self, job: EmailJob) -> tuple[str, str]:
        """
        Render a NEW_ORDER job.

        Returns:
            Tuple of (subject, html)

        Raises:
            ValueError: The job has no order metadata
        """
        metadata = job.metadata
        if metadata is None:
            raise ValueError(f"Email job {job.event_id} has no order metadata")

        html = self.env.get_template(self.template_name).render(
            order=metadata,
            total_amount=format_inr(metadata.total_amount),
            company=self.company,
        )
        return self.subject(metadata), html


class ResendMailSender:
    """MailSender backed by the Resend API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        renderer: NewOrderEmailRenderer,
        breaker: aiobreaker.CircuitBreaker | None = None,
    ) -> None:
        resend.api_key = api_key
        self.from_email = from_email
        self.renderer = renderer
        self.breaker = breaker or create_circuit_breaker("resend")

    async def send_new_order(self, job: EmailJob) -> None:
        """
        Render and send a new-order email.

        Raises:
            ValueError: The job has no recipient or metadata
            ExternalServiceError: Resend rejected the send or the breaker is open
        """
        if not job.recipient_email:
            raise ValueError(f"Email job {job.event_id} has no recipient")

        subject, html = self.renderer.render(job)
        params = {
            "from": self.from_email,
            "to": [job.recipient_email],
            "subject": subject,
            "html": html,
        }

        try:
            response = await self.breaker.call_async(run_blocking, self._send, params)
        except aiobreaker.CircuitBreakerError as e:
            raise ExternalServiceError("Mail provider unavailable (circuit open)") from e
        except ResendError as e:
            raise ExternalServiceError(f"Mail provider rejected send: {e}") from e

        logger.info(
            "New order email sent",
            extra={
                "event_id": job.event_id,
                "order_id": job.metadata.order_id if job.metadata else None,
                "provider_id": (response or {}).get("id"),
            },
        )

    @staticmethod
    def _send(params: dict[str, Any]) -> dict[str, Any]:
        return resend.Emails.send(params)


def create_mail_sender() -> ResendMailSender:
    """Build the Resend sender from email.yaml and the RESEND_API_KEY secret."""
    from storefront.backend.core.config import get_app_config, get_settings

    email_config = get_app_config().email
    return ResendMailSender(
        api_key=get_settings().resend_api_key,
        from_email=email_config.from_email,
        renderer=NewOrderEmailRenderer(email_config.company),
        breaker=create_circuit_breaker(
            "resend",
            fail_max=email_config.circuit_breaker.fail_max,
            timeout_duration=email_config.circuit_breaker.timeout_duration,
        ),
    )

"""
Base Service.

Services turn a caller's intent (an order hook, a CLI command) into calls on
the event publisher and the email queue. They do no I/O of their own.
"""

from typing import Any

from storefront.backend.core.exceptions import ValidationError
from storefront.backend.core.logging import get_logger


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class BaseService:
    """Logger bound to the concrete service's module, plus input checks."""

    def __init__(self) -> None:
        self._logger = get_logger(self.__class__.__module__)

    def _require(self, **fields: Any) -> None:
        """
        Reject None or whitespace-only values. Falsy non-strings (0, False) pass.

        Raises:
            ValidationError: details.missing_fields lists every offending name
        """
        missing = [name for name, value in fields.items() if _is_blank(value)]
        if missing:
            raise ValidationError("Required fields missing", details={"missing_fields": missing})

    def _log(self, message: str, level: str = "info", **context: Any) -> None:
        getattr(self._logger, level)(
            message, extra={"service": self.__class__.__name__, **context},
        )

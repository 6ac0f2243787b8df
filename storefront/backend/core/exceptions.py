"""
Custom Exceptions.

Errors that reach HTTP callers. Each class carries its error code and HTTP
status, which the exception handlers copy into the ErrorResponse.

Redis failures inside the event store and the email queue never get here;
those components log them and report "nothing stored" / "nothing read".
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all application errors."""

    code = "SYS_INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ApplicationError):
    """Request is well-formed but its content is not acceptable (e.g. blank customer name)."""

    code = "VAL_VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(ApplicationError):
    """No bearer token, or the token is invalid or expired."""

    code = "AUTH_UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(ApplicationError):
    """Caller is authenticated but may not read the requested channel."""

    code = "AUTHZ_FORBIDDEN"
    status_code = 403
    default_message = "Permission denied"


class ExternalServiceError(ApplicationError):
    """The mail provider rejected a send or is unavailable."""

    code = "SYS_EXTERNAL_SERVICE_ERROR"
    status_code = 502
    default_message = "External service error"

"""
Exception Handlers.

Turn exceptions raised by endpoints and dependencies into the standard
ErrorResponse envelope.

    ApplicationError subclasses   the exception's own status_code and code
    RequestValidationError        422, code VAL_REQUEST_INVALID
    anything else                 500, code SYS_INTERNAL_ERROR

Poll clients retry on 5xx, so only server faults are logged at error level.

Usage:
    from storefront.backend.core.exception_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.backend.core.exceptions import ApplicationError, AuthenticationError
from storefront.backend.core.logging import get_logger
from storefront.backend.schemas.base import ErrorDetail, ErrorResponse

logger = get_logger(__name__)


def _get_request_id(request: Request) -> str | None:
    """Request ID set by RequestContextMiddleware, else the inbound header."""
    request_id = getattr(request.state, "request_id", None)
    return request_id or request.headers.get("x-request-id")


def _error_response(
    request: Request,
    status_code: int,
    error: ErrorDetail,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse.for_request(error, _get_request_id(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def _request_fields(request: Request) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "request_id": _get_request_id(request),
    }


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    """Map an ApplicationError to its HTTP status."""
    status_code = exc.status_code
    log_extra = {**_request_fields(request), "code": exc.code, "status": status_code}

    if status_code >= 500:
        logger.error(exc.message, extra=log_extra)
    else:
        logger.warning(exc.message, extra=log_extra)

    error = ErrorDetail(code=exc.code, message=exc.message)
    if exc.details:
        error.details = exc.details

    # 401s tell the client which scheme to retry with
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return _error_response(request, status_code, error, headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters or bodies (bad event_type, missing order fields)."""
    errors = exc.errors()
    logger.warning(
        "Request validation failed",
        extra={**_request_fields(request), "error_count": len(errors)},
    )

    error = ErrorDetail(
        code="VAL_REQUEST_INVALID",
        message="Request validation failed",
        details={
            "validation_errors": [
                {
                    "field": ".".join(str(part) for part in err.get("loc", [])),
                    "message": err.get("msg", "Validation error"),
                    "type": err.get("type", "unknown"),
                }
                for err in errors
            ],
        },
    )
    return _error_response(request, 422, error)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler.

    The exception text is only returned when the api_detailed_errors
    feature flag is on; it is always logged with its traceback.
    """
    logger.exception(
        "Unhandled exception",
        extra={**_request_fields(request), "exception_type": type(exc).__name__},
    )

    error = ErrorDetail(code="SYS_INTERNAL_ERROR", message="An unexpected error occurred")
    if _detailed_errors_enabled():
        error.details = {"exception_type": type(exc).__name__, "exception": str(exc)}
    return _error_response(request, 500, error)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the three handlers on a FastAPI app."""
    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    logger.debug("Exception handlers registered")


def _detailed_errors_enabled() -> bool:
    from storefront.backend.core.config import get_app_config

    return get_app_config().features.api_detailed_errors

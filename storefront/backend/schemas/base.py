"""
Base Schemas.

Every JSON body the API returns, success or failure, has the same four keys:

    {"success": true,  "data": {...}, "error": null,  "metadata": {...}}
    {"success": false, "data": null,  "error": {...}, "metadata": {...}}

metadata.request_id echoes the X-Request-ID header so a client can quote it
when reporting a problem.
"""

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from storefront.backend.core.utils import utc_now

DataT = TypeVar("DataT")


class ResponseMetadata(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    request_id: str | None = None


class ErrorDetail(BaseModel):
    """Machine-readable code (AUTHZ_FORBIDDEN, VAL_REQUEST_INVALID, ...) plus a message."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class ApiResponse(BaseModel, Generic[DataT]):
    success: Literal[True] = True
    data: DataT | None = None
    error: None = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    @classmethod
    def for_request(cls, data: DataT, request_id: str | None) -> "ApiResponse[DataT]":
        return cls(data=data, metadata=ResponseMetadata(request_id=request_id))


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    data: None = None
    error: ErrorDetail
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    @classmethod
    def for_request(cls, error: ErrorDetail, request_id: str | None) -> "ErrorResponse":
        return cls(error=error, metadata=ResponseMetadata(request_id=request_id))

"""Protocol definitions and errors for service transports."""

from __future__ import annotations

from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from tessera_schemas.base import BaseSchema
from tessera_schemas.primitives import StageName
from tessera_schemas.requests import StageRequest
from tessera_schemas.responses import ErrorDetails, ErrorResponse
from tessera_schemas.stream import StreamEvent


class TransportErrorCode(StrEnum):
    """Categorized error codes for transport failures."""

    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    PERMISSION_DENIED = "permission_denied"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    HTTP_ERROR = "http_error"
    NO_BODY = "no_body"


class TransportErrorDetails(BaseSchema):
    """Detailed transport error context."""

    stage: StageName | None = Field(None, description="Stage being called")
    status_code: int | None = Field(None, ge=100, description="HTTP status code")
    url: str | None = Field(None, description="Request URL")
    detail: str | None = Field(None, description="Original error text")


class TransportErrorInfo(BaseSchema):
    """Structured transport error data."""

    code: TransportErrorCode = Field(..., description="Transport error code")
    message: str = Field(..., min_length=1, description="User-facing message")
    details: TransportErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert transport error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.detail is not None:
            details = ErrorDetails(field=None, provided=self.details.detail)
        code_value = getattr(self.code, "value", self.code)
        return ErrorResponse(
            code=str(code_value), message=self.message, details=details
        )


class TransportError(Exception):
    """Transport error with structured details."""

    def __init__(self, info: TransportErrorInfo) -> None:
        """Initialize the transport error.

        Args:
            info: Structured transport error information.
        """
        super().__init__(info.message)
        self.info = info


@runtime_checkable
class StreamTransportProtocol(Protocol):
    """Protocol for opening one service call per stage run.

    Implementations yield events in arrival order and must release the
    underlying connection when the iterator is closed early.
    """

    def open_stream(
        self, stage: StageName, request: StageRequest
    ) -> AsyncIterator[StreamEvent]:
        """Send a stage request and iterate over the events it produces.

        Raises:
            TransportError: If the service cannot be reached or rejects the call.
        """
        raise NotImplementedError

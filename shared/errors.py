"""
Shared error handling for the Library Gateway.

Every failure the gateway produces is a ``GatewayError``. The subclasses
double as the failure taxonomy used by the retry policy and as the error
values stored in batch results.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayError(Exception):
    """Base exception for gateway failures."""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class TransportFailure(GatewayError):
    """Connection, DNS, protocol or timeout failure talking to the upstream."""

    code = "TRANSPORT_FAILURE"

    def __init__(
        self,
        message: str = "Upstream unreachable",
        *,
        endpoint: Optional[str] = None,
        timeout: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if endpoint is not None:
            details.setdefault("endpoint", endpoint)
        details.setdefault("timeout", timeout)
        super().__init__(message, details)
        self.endpoint = endpoint
        self.timeout = timeout


class UpstreamError(GatewayError):
    """Upstream answered with an HTTP status >= 400."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        status: int,
        message: str = "Upstream error",
        *,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details.setdefault("status", status)
        if endpoint is not None:
            details.setdefault("endpoint", endpoint)
        super().__init__(f"{status}: {message}", details)
        self.status = status
        self.reason = message
        self.endpoint = endpoint


class DecodeFailure(GatewayError):
    """Payload is malformed or incompatible with the expected record shape."""

    code = "DECODE_FAILURE"

    def __init__(self, message: str = "Payload could not be decoded", *, kind: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if kind is not None:
            details.setdefault("kind", kind)
        super().__init__(message, details)
        self.kind = kind


class CacheFailure(GatewayError):
    """Cache store unavailable."""

    code = "CACHE_FAILURE"


def is_retryable(exc: BaseException) -> bool:
    """Return True when retrying ``exc`` can plausibly succeed."""
    if isinstance(exc, TransportFailure):
        return True
    if isinstance(exc, UpstreamError):
        return exc.status >= 500
    return False

"""Error taxonomy shared by the brokering pipeline."""
from __future__ import annotations

from typing import Optional

from fastapi import status


class BrokerError(RuntimeError):
    """Base class for failures surfaced to the caller as an error envelope.

    ``str(exc)`` carries the full diagnostic text and is only ever logged.
    ``public_message`` is the text returned to the client and must never
    include secrets or upstream response bodies.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_public_message: str = "Internal server error"

    def __init__(self, message: str, *, public_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.public_message = public_message or self.default_public_message


class ConfigurationError(BrokerError):
    """A required setting or request parameter is missing."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, public_message: Optional[str] = None) -> None:
        super().__init__(message, public_message=public_message or message)


class Unauthenticated(BrokerError):
    """The caller's session credential is missing, malformed or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_public_message = "Invalid or expired token"


class UpstreamAuthError(BrokerError):
    """The identity provider rejected the service principal grant."""

    default_public_message = "Authentication failed: unable to acquire service access token"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        public_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, public_message=public_message)
        self.upstream_status = upstream_status
        if upstream_status in (status.HTTP_400_BAD_REQUEST, status.HTTP_401_UNAUTHORIZED):
            self.status_code = status.HTTP_401_UNAUTHORIZED


class UpstreamApiError(BrokerError):
    """The Power BI REST API answered with a non-success status."""

    def __init__(self, *, upstream_status: Optional[int], body: str, operation: str) -> None:
        label = upstream_status if upstream_status is not None else "unreachable"
        super().__init__(
            f"Power BI API error during {operation} ({label}): {body}",
            public_message=f"Power BI API error ({label})",
        )
        self.upstream_status = upstream_status
        self.body = body
        self.operation = operation


class MalformedUpstreamResponse(BrokerError):
    """An upstream response is missing fields or has unexpected types."""

    default_public_message = "Unexpected response from Power BI"


class UpstreamTimeout(BrokerError):
    """An upstream call exceeded its time budget."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_public_message = "Upstream service timed out"


__all__ = [
    "BrokerError",
    "ConfigurationError",
    "MalformedUpstreamResponse",
    "Unauthenticated",
    "UpstreamApiError",
    "UpstreamAuthError",
    "UpstreamTimeout",
]

"""Consumer-side helpers for embedding front ends."""

from .broker_client import BrokerRequestError, EmbedConfigClient
from .refresh import ReportViewer, TokenRefreshLoop

__all__ = [
    "BrokerRequestError",
    "EmbedConfigClient",
    "ReportViewer",
    "TokenRefreshLoop",
]

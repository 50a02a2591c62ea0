"""Business services for the embed broker."""

from .broker import EmbedBroker
from .embed_config import EmbedConfigAssembler
from .power_bi import EmbedTokenMinter, ReportMetadataFetcher
from .service_principal import ServicePrincipalTokenProvider

__all__ = [
    "EmbedBroker",
    "EmbedConfigAssembler",
    "EmbedTokenMinter",
    "ReportMetadataFetcher",
    "ServicePrincipalTokenProvider",
]

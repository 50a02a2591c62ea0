"""Client credentials grant against Azure AD for the Power BI API."""
from __future__ import annotations

import logging

import httpx

from embed_broker.core.config import DEFAULT_AUTHORITY, ServicePrincipalCredential
from embed_broker.core.errors import (
    ConfigurationError,
    UpstreamAuthError,
    UpstreamTimeout,
)
from embed_broker.schemas.embed import AccessToken


logger = logging.getLogger(__name__)


class ServicePrincipalTokenProvider:
    """Exchange the service principal credential for a bearer token.

    Tokens are requested fresh on every call; nothing is cached between
    brokering calls.
    """

    def __init__(
        self,
        *,
        credential: ServicePrincipalCredential,
        http_client: httpx.AsyncClient,
        authority: str = DEFAULT_AUTHORITY,
    ) -> None:
        self._credential = credential
        self._client = http_client
        self._authority = authority if authority.endswith("/") else f"{authority}/"

    def token_url(self) -> str:
        return f"{self._authority}{self._credential.tenant_id}/oauth2/v2.0/token"

    async def acquire(self) -> AccessToken:
        """Perform the grant and return the resulting access token."""

        missing = self._credential.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Missing Azure Service Principal configuration: {', '.join(missing)}",
                public_message="Missing Azure Service Principal configuration",
            )

        form = {
            "client_id": self._credential.client_id,
            "client_secret": self._credential.client_secret,
            "scope": self._credential.scope,
            "grant_type": "client_credentials",
        }

        logger.info("Acquiring Azure AD access token for the service principal")
        try:
            response = await self._client.post(self.token_url(), data=form)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout("Azure AD token endpoint timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamAuthError(
                f"Unable to reach Azure AD token endpoint: {exc.__class__.__name__}"
            ) from exc

        if response.is_error:
            logger.error(
                "Azure AD rejected the client credentials grant (%s): %s",
                response.status_code,
                response.text,
            )
            raise UpstreamAuthError(
                f"Failed to acquire Azure AD token: {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamAuthError("Azure AD token response is not JSON") from exc

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            raise UpstreamAuthError("Azure AD token response has no access_token")

        expires_in = payload.get("expires_in")
        logger.info("Azure AD access token acquired")
        return AccessToken(
            value=value,
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_in_seconds=expires_in if isinstance(expires_in, int) else None,
        )


__all__ = ["ServicePrincipalTokenProvider"]

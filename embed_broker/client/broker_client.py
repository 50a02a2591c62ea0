"""HTTP client used by embedding front ends to call the broker."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from embed_broker.schemas.embed import EmbedConfiguration, EmbedSettingsOverride


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/api/embed/config"


class BrokerRequestError(RuntimeError):
    """Raised when the broker answers with an error envelope."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbedConfigClient:
    """Fetch embed configurations from the broker on behalf of a signed-in user."""

    def __init__(
        self,
        *,
        base_url: str,
        config_path: str = DEFAULT_CONFIG_PATH,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._config_path = config_path
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def fetch_embed_config(
        self,
        session_token: str,
        *,
        workspace_id: Optional[str] = None,
        report_id: Optional[str] = None,
        settings: Optional[EmbedSettingsOverride] = None,
    ) -> EmbedConfiguration:
        """Return a fresh configuration for the report viewer."""

        body: dict[str, Any] = {}
        if workspace_id:
            body["workspaceId"] = workspace_id
        if report_id:
            body["reportId"] = report_id
        if settings is not None:
            body["settings"] = settings.model_dump(by_alias=True, exclude_none=True)

        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    self._config_path,
                    json=body,
                    headers={"Authorization": f"Bearer {session_token}"},
                )
            except httpx.HTTPError as exc:
                raise BrokerRequestError(0, f"Embed service unreachable: {exc}") from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise BrokerRequestError(
                response.status_code, "Invalid response from embed service"
            ) from exc

        if not isinstance(envelope, dict) or not envelope.get("success"):
            message = "Failed to fetch embed configuration"
            if isinstance(envelope, dict) and envelope.get("error"):
                message = str(envelope["error"])
            raise BrokerRequestError(response.status_code, message)

        try:
            return EmbedConfiguration.model_validate(envelope.get("data"))
        except ValidationError as exc:
            raise BrokerRequestError(
                response.status_code, "Invalid response from embed service"
            ) from exc


__all__ = ["BrokerRequestError", "EmbedConfigClient"]

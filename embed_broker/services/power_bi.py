"""Power BI REST calls used while brokering an embed configuration."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from embed_broker.core.config import DEFAULT_POWERBI_API_URL
from embed_broker.core.errors import (
    ConfigurationError,
    MalformedUpstreamResponse,
    UpstreamApiError,
    UpstreamTimeout,
)
from embed_broker.schemas.embed import AccessToken, EmbedToken, ReportDescriptor


logger = logging.getLogger(__name__)


def _require_ids(**ids: Optional[str]) -> None:
    missing = [name for name, value in ids.items() if not value]
    if missing:
        verb = "are" if len(missing) > 1 else "is"
        raise ConfigurationError(f"{' and '.join(missing)} {verb} required")


def _describe_validation_error(exc: ValidationError) -> str:
    fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
    return ", ".join(fields) or "response body"


class _PowerBIResource:
    """Shared request handling for the Power BI REST API."""

    def __init__(
        self, *, http_client: httpx.AsyncClient, api_url: str = DEFAULT_POWERBI_API_URL
    ) -> None:
        self._client = http_client
        self._api_url = api_url.rstrip("/")

    def _group_url(self, workspace_id: str, *parts: str) -> str:
        path = "/".join((f"v1.0/myorg/groups/{workspace_id}",) + parts)
        return f"{self._api_url}/{path}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        access_token: AccessToken,
        operation: str,
        json_payload: dict[str, Any] | None = None,
    ) -> Any:
        headers = {
            "Authorization": access_token.authorization,
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.request(
                method, url, headers=headers, json=json_payload
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Power BI {operation} timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamApiError(
                upstream_status=None, body=str(exc), operation=operation
            ) from exc

        if response.is_error:
            logger.error(
                "Power BI %s failed (%s): %s",
                operation,
                response.status_code,
                response.text,
            )
            raise UpstreamApiError(
                upstream_status=response.status_code,
                body=response.text,
                operation=operation,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedUpstreamResponse(
                f"Power BI {operation} returned a non-JSON body"
            ) from exc


class ReportMetadataFetcher(_PowerBIResource):
    """Read report descriptors from a workspace."""

    async def fetch(
        self, access_token: AccessToken, workspace_id: str, report_id: str
    ) -> ReportDescriptor:
        """Return the descriptor of a single report."""

        _require_ids(workspaceId=workspace_id, reportId=report_id)
        logger.info("Fetching Power BI report details for %s", report_id)
        payload = await self._send(
            "GET",
            self._group_url(workspace_id, "reports", report_id),
            access_token=access_token,
            operation="report lookup",
        )
        try:
            return ReportDescriptor.model_validate(payload)
        except ValidationError as exc:
            raise MalformedUpstreamResponse(
                f"Report response is missing or has invalid fields: "
                f"{_describe_validation_error(exc)}"
            ) from exc

    async def list_reports(
        self, access_token: AccessToken, workspace_id: str
    ) -> list[ReportDescriptor]:
        """Return every report of ``workspace_id``."""

        _require_ids(workspaceId=workspace_id)
        logger.info("Listing Power BI reports in workspace %s", workspace_id)
        payload = await self._send(
            "GET",
            self._group_url(workspace_id, "reports"),
            access_token=access_token,
            operation="report listing",
        )
        items = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise MalformedUpstreamResponse("Report listing has no 'value' array")
        try:
            return [ReportDescriptor.model_validate(item) for item in items]
        except ValidationError as exc:
            raise MalformedUpstreamResponse(
                f"Report listing contains invalid entries: "
                f"{_describe_validation_error(exc)}"
            ) from exc


class EmbedTokenMinter(_PowerBIResource):
    """Generate view-only embed tokens for a report."""

    @staticmethod
    def build_request(user_id: Optional[str] = None) -> dict[str, Any]:
        """Return the ``GenerateToken`` body, bound to ``user_id`` when given."""

        body: dict[str, Any] = {"accessLevel": "View", "allowSaveAs": False}
        if user_id:
            # Roles and datasets stay empty until per-tenant RLS policies exist.
            body["identities"] = [{"username": user_id, "roles": [], "datasets": []}]
        return body

    async def mint(
        self,
        access_token: AccessToken,
        workspace_id: str,
        report_id: str,
        user_id: Optional[str] = None,
    ) -> EmbedToken:
        """Request an embed token for ``report_id``."""

        _require_ids(workspaceId=workspace_id, reportId=report_id)
        logger.info("Generating Power BI embed token for report %s", report_id)
        payload = await self._send(
            "POST",
            self._group_url(workspace_id, "reports", report_id, "GenerateToken"),
            access_token=access_token,
            operation="embed token generation",
            json_payload=self.build_request(user_id),
        )
        try:
            token = EmbedToken.model_validate(payload)
        except ValidationError as exc:
            raise MalformedUpstreamResponse(
                f"Embed token response is missing or has invalid fields: "
                f"{_describe_validation_error(exc)}"
            ) from exc
        logger.info("Embed token %s issued, expires %s", token.token_id, token.expiration)
        return token


__all__ = ["EmbedTokenMinter", "ReportMetadataFetcher"]

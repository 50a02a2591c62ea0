"""Orchestration of one brokering call, from caller identity to payload."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from fastapi import Request

from embed_broker.core.auth import RequestAuthenticator
from embed_broker.core.config import Settings
from embed_broker.core.errors import ConfigurationError
from embed_broker.schemas.embed import (
    AccessToken,
    EmbedConfiguration,
    EmbedSettingsOverride,
    EmbedToken,
    ReportDescriptor,
    UserIdentity,
)
from embed_broker.services.embed_config import EmbedConfigAssembler
from embed_broker.services.power_bi import EmbedTokenMinter, ReportMetadataFetcher
from embed_broker.services.service_principal import ServicePrincipalTokenProvider


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _CallServices:
    """Collaborators bound to the HTTP client of a single brokering call."""

    provider: ServicePrincipalTokenProvider
    fetcher: ReportMetadataFetcher
    minter: EmbedTokenMinter
    assembler: EmbedConfigAssembler


class EmbedBroker:
    """Broker embed configurations on behalf of authenticated users.

    One instance lives for the whole process and only holds read-only state:
    the settings and the transport used to build per-call HTTP clients.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        authenticator: Optional[RequestAuthenticator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.authenticator = authenticator or RequestAuthenticator(settings=settings)
        self._credential = settings.service_principal()
        self._transport = transport

    def authenticate(self, credentials: Optional[str]) -> UserIdentity:
        return self.authenticator.authenticate(credentials)

    def resolve_target(
        self, workspace_id: Optional[str] = None, report_id: Optional[str] = None
    ) -> tuple[str, str]:
        """Pick the requested workspace/report, falling back to configuration."""

        workspace = workspace_id or self.settings.powerbi_workspace_id
        report = report_id or self.settings.powerbi_report_id
        if not workspace or not report:
            raise ConfigurationError(
                "Missing Power BI workspace or report configuration: "
                "reportId and workspaceId are required"
            )
        return workspace, report

    def resolve_workspace(self, workspace_id: Optional[str] = None) -> str:
        workspace = workspace_id or self.settings.powerbi_workspace_id
        if not workspace:
            raise ConfigurationError(
                "Missing Power BI workspace configuration: workspaceId is required"
            )
        return workspace

    @asynccontextmanager
    async def _services(self) -> AsyncIterator[_CallServices]:
        timeout = httpx.Timeout(self.settings.http_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            fetcher = ReportMetadataFetcher(
                http_client=client, api_url=self.settings.powerbi_api_url
            )
            minter = EmbedTokenMinter(
                http_client=client, api_url=self.settings.powerbi_api_url
            )
            yield _CallServices(
                provider=ServicePrincipalTokenProvider(
                    credential=self._credential,
                    http_client=client,
                    authority=self.settings.azure_authority,
                ),
                fetcher=fetcher,
                minter=minter,
                assembler=EmbedConfigAssembler(fetcher=fetcher, minter=minter),
            )

    async def embed_configuration(
        self,
        identity: UserIdentity,
        *,
        workspace_id: Optional[str] = None,
        report_id: Optional[str] = None,
        overrides: Optional[EmbedSettingsOverride] = None,
    ) -> EmbedConfiguration:
        """Build a complete embed configuration bound to ``identity``."""

        workspace, report = self.resolve_target(workspace_id, report_id)
        logger.info("Brokering embed configuration for report %s", report)
        async with self._services() as services:
            access_token = await services.provider.acquire()
            config = await services.assembler.assemble(
                access_token,
                workspace,
                report,
                user_id=identity.user_id,
                overrides=overrides,
            )
        logger.info("Embed configuration ready for user %s", identity.user_id)
        return config

    async def embed_token(
        self,
        identity: UserIdentity,
        *,
        workspace_id: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> EmbedToken:
        """Mint only the embed token, for callers that already hold metadata."""

        workspace, report = self.resolve_target(workspace_id, report_id)
        async with self._services() as services:
            access_token = await services.provider.acquire()
            return await services.minter.mint(
                access_token, workspace, report, user_id=identity.user_id
            )

    async def list_reports(
        self, identity: UserIdentity, *, workspace_id: Optional[str] = None
    ) -> list[ReportDescriptor]:
        workspace = self.resolve_workspace(workspace_id)
        logger.info("User %s listing reports of %s", identity.user_id, workspace)
        async with self._services() as services:
            access_token = await services.provider.acquire()
            return await services.fetcher.list_reports(access_token, workspace)

    async def check_service_principal(self) -> AccessToken:
        """Run the client credentials grant once, for health checks."""

        async with self._services() as services:
            return await services.provider.acquire()


def get_broker(request: Request) -> EmbedBroker:
    """FastAPI dependency returning the broker built at application start."""

    return request.app.state.broker


__all__ = ["EmbedBroker", "get_broker"]

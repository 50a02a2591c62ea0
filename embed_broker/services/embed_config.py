"""Assemble an embed configuration from report metadata and an embed token."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional

from embed_broker.schemas.embed import (
    AccessToken,
    EmbedConfiguration,
    EmbedSettings,
    EmbedSettingsOverride,
    EmbedToken,
    ReportDescriptor,
)
from embed_broker.services.power_bi import EmbedTokenMinter, ReportMetadataFetcher


logger = logging.getLogger(__name__)


async def gather_fail_fast(*awaitables: Awaitable[Any]) -> tuple[Any, ...]:
    """Run ``awaitables`` concurrently and return their results in order.

    The first failure is raised as soon as it happens and the remaining tasks
    are cancelled.
    """

    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        # Every finished task's exception is read, not only the first one.
        failures = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            raise failures[0]  # type: ignore[misc]
        return tuple(task.result() for task in tasks)
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class EmbedConfigAssembler:
    """Combine a report descriptor and an embed token into one payload."""

    def __init__(
        self,
        *,
        fetcher: ReportMetadataFetcher,
        minter: EmbedTokenMinter,
        default_settings: Optional[EmbedSettings] = None,
    ) -> None:
        self._fetcher = fetcher
        self._minter = minter
        self._default_settings = default_settings or EmbedSettings()

    async def assemble(
        self,
        access_token: AccessToken,
        workspace_id: str,
        report_id: str,
        user_id: Optional[str] = None,
        overrides: Optional[EmbedSettingsOverride] = None,
    ) -> EmbedConfiguration:
        """Fetch report metadata and mint the token concurrently."""

        report, token = await gather_fail_fast(
            self._fetcher.fetch(access_token, workspace_id, report_id),
            self._minter.mint(access_token, workspace_id, report_id, user_id),
        )
        return self.compose(report, token, self._default_settings.apply(overrides))

    @staticmethod
    def compose(
        report: ReportDescriptor, token: EmbedToken, settings: EmbedSettings
    ) -> EmbedConfiguration:
        return EmbedConfiguration(
            id=report.id,
            embed_url=report.embed_url,
            access_token=token.token,
            token_id=token.token_id,
            expiration=token.expiration,
            settings=settings,
        )


__all__ = ["EmbedConfigAssembler", "gather_fail_fast"]

"""Keep the embed token of a running report viewer fresh."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Protocol

from embed_broker.schemas.embed import EmbedConfiguration


logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = timedelta(minutes=2)
DEFAULT_MIN_REFRESH_INTERVAL = timedelta(seconds=30)


class ReportViewer(Protocol):
    """The subset of an embedded report the refresh loop drives."""

    async def set_access_token(self, access_token: str) -> None:
        """Swap the embed token without reloading the report."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefreshLoop:
    """Re-fetch the embed configuration before its token expires.

    The loop owns one cancellable timer, armed from the ``expiration`` the
    broker returned, and reacts to :meth:`notify_expired`, which is the signal
    a report viewer raises when it sees an expired token. At most one refresh
    runs at a time. Failed refreshes are logged and reported through
    ``on_error``; the loop never retries on its own.
    """

    def __init__(
        self,
        *,
        fetch_config: Callable[[], Awaitable[EmbedConfiguration]],
        viewer: ReportViewer,
        refresh_margin: timedelta = DEFAULT_REFRESH_MARGIN,
        min_refresh_interval: timedelta = DEFAULT_MIN_REFRESH_INTERVAL,
        clock: Callable[[], datetime] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._fetch_config = fetch_config
        self._viewer = viewer
        self._refresh_margin = refresh_margin
        self._min_refresh_interval = min_refresh_interval.total_seconds()
        self._clock = clock or _utcnow
        self._on_error = on_error
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[EmbedConfiguration]] = None
        self._current: Optional[EmbedConfiguration] = None
        self._stopped = True

    @property
    def current(self) -> Optional[EmbedConfiguration]:
        return self._current

    @property
    def is_running(self) -> bool:
        return not self._stopped

    def start(self, config: EmbedConfiguration) -> None:
        """Begin tracking ``config``; must be called from the event loop."""

        self._stopped = False
        self._current = config
        self._schedule(config)

    def stop(self) -> None:
        """Cancel the timer and any refresh in flight."""

        self._stopped = True
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def seconds_until_refresh(self, config: EmbedConfiguration) -> float:
        due = config.expires_at - self._refresh_margin
        return max(0.0, (due - self._clock()).total_seconds())

    def notify_expired(self) -> None:
        """Start a refresh now unless one is already running."""

        if self._stopped:
            return
        self._ensure_task()

    async def refresh(self) -> EmbedConfiguration:
        """Refresh immediately and wait for the new configuration."""

        return await self._ensure_task()

    def _ensure_task(self) -> asyncio.Task[EmbedConfiguration]:
        if self._task is None or self._task.done():
            self._cancel_timer()
            self._task = asyncio.get_running_loop().create_task(self._refresh())
            self._task.add_done_callback(self._report_failure)
        return self._task

    async def _refresh(self) -> EmbedConfiguration:
        logger.info("Refreshing Power BI embed token")
        config = await self._fetch_config()
        await self._viewer.set_access_token(config.access_token)
        self._current = config
        logger.info("Embed token refreshed, expires %s", config.expiration)
        if not self._stopped:
            # Re-arm no sooner than the minimum interval after a refresh.
            self._schedule(config, minimum=self._min_refresh_interval)
        return config

    def _schedule(self, config: EmbedConfiguration, minimum: float = 0.0) -> None:
        self._cancel_timer()
        delay = max(minimum, self.seconds_until_refresh(config))
        self._timer = asyncio.get_running_loop().call_later(delay, self.notify_expired)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _report_failure(self, task: asyncio.Task[EmbedConfiguration]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Embed token refresh failed: %s", exc)
        if self._on_error is not None:
            self._on_error(exc)


__all__ = [
    "DEFAULT_MIN_REFRESH_INTERVAL",
    "DEFAULT_REFRESH_MARGIN",
    "ReportViewer",
    "TokenRefreshLoop",
]

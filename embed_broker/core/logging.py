"""Logging setup, request correlation and secret masking."""
from __future__ import annotations

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Iterable, Optional

from fastapi import FastAPI, Request
from pydantic import SecretStr
from starlette.middleware.base import BaseHTTPMiddleware

from embed_broker.core.config import Settings, get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(request_id)s | %(name)s | %(message)s"
REDACTED = "***"

_request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)

request_logger = logging.getLogger("embed_broker.requests")


def get_request_id() -> str | None:
    return _request_id_ctx_var.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, echo it back and log the outcome."""

    async def dispatch(self, request: Request, call_next: Callable[..., Any]):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = _request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            request_logger.info(
                "%s %s -> %s (%.1f ms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
        finally:
            _request_id_ctx_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = get_request_id() or "-"
        return True


class SecretRedactionFilter(logging.Filter):
    """Replace known secret values in rendered log messages.

    The message is rendered once with its arguments and the secrets are masked
    in the result, so a secret passed as a ``%s`` argument is caught too.
    """

    def __init__(self, secrets: Iterable[Optional[str]]) -> None:
        super().__init__()
        self._secrets = sorted({value for value in secrets if value}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, REDACTED)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _secret_values(settings: Settings) -> list[Optional[str]]:
    return [
        secret.get_secret_value() if secret is not None else None
        for secret in (settings.azure_client_secret, settings.session_jwt_secret)
    ]


def mask_secret(value: SecretStr | str | None) -> str:
    """Render a secret as a presence marker."""

    return "***configured***" if value else "Not configured"


def settings_summary(settings: Settings) -> dict[str, str]:
    """Describe the configuration without exposing secret values."""

    return {
        "Environment": settings.environment,
        "Azure Tenant": settings.azure_tenant_id or "Not configured",
        "Azure Client ID": mask_secret(settings.azure_client_id),
        "Azure Client Secret": mask_secret(settings.azure_client_secret),
        "Power BI API": settings.powerbi_api_url,
        "Power BI Workspace": settings.powerbi_workspace_id or "Not configured",
        "Power BI Report": settings.powerbi_report_id or "Not configured",
        "Session Secret": mask_secret(settings.session_jwt_secret),
        "CORS Origins": ", ".join(settings.allowed_origins) or "None",
    }


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Route every log record to stdout with request id and secret masking."""

    settings = settings or get_settings()
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SecretRedactionFilter(_secret_values(settings)))

    root.handlers = [handler]
    # httpx logs every outbound request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_app_logging(app: FastAPI, settings: Optional[Settings] = None) -> None:
    """Install the handlers and the request id middleware on ``app``."""

    setup_logging(settings)
    app.add_middleware(RequestIDMiddleware)


__all__ = [
    "LOG_FORMAT",
    "RequestIDMiddleware",
    "SecretRedactionFilter",
    "configure_app_logging",
    "get_request_id",
    "mask_secret",
    "settings_summary",
    "setup_logging",
]

"""FastAPI application entry point."""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers

from embed_broker import __version__
from embed_broker.core.config import Settings, get_settings, validate_settings
from embed_broker.core.exception_handlers import register_exception_handlers
from embed_broker.core.logging import configure_app_logging, settings_summary
from embed_broker.routers import embed as embed_router
from embed_broker.routers import health as health_router
from embed_broker.schemas.embed import utc_timestamp
from embed_broker.services.broker import EmbedBroker


logger = logging.getLogger(__name__)


class PreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware answering allowed preflights with ``204 No Content``."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != status.HTTP_200_OK:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)


def _log_configuration(settings: Settings) -> None:
    """Log a masked configuration summary and any validation problems."""

    for name, value in settings_summary(settings).items():
        logger.info("%s: %s", name, value)
    validation = validate_settings(settings)
    for error in validation.errors:
        logger.error("Configuration error: %s", error)
    for warning in validation.warnings:
        logger.warning("Configuration warning: %s", warning)


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application around an explicitly constructed broker."""

    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, version=__version__)

    @app.middleware("http")
    async def answer_options(request: Request, call_next):
        """Answer OPTIONS requests on any path without authentication."""

        if request.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return await call_next(request)

    configure_app_logging(app, settings)
    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    register_exception_handlers(app)

    app.state.broker = EmbedBroker(settings=settings, transport=transport)

    app.include_router(embed_router.router)
    app.include_router(embed_router.function_router)
    app.include_router(health_router.router)

    @app.get("/", tags=["meta"])
    async def describe_service() -> dict[str, object]:
        """Describe the service and its endpoints."""

        return {
            "name": settings.app_name,
            "version": __version__,
            "description": "Service principal based Power BI embed token broker",
            "endpoints": {
                "health": "/api/health",
                "embedConfig": "/api/embed/config",
                "embedToken": "/api/embed/token",
                "reports": "/api/embed/reports",
            },
            "timestamp": utc_timestamp(),
        }

    _log_configuration(settings)
    return app


app = create_app()

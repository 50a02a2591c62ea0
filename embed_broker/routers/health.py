"""Readiness endpoints reporting configuration state without secrets."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from embed_broker import __version__
from embed_broker.core.config import validate_settings
from embed_broker.core.errors import BrokerError
from embed_broker.schemas.embed import utc_timestamp
from embed_broker.services.broker import EmbedBroker, get_broker


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _state(ready: bool) -> str:
    return "ready" if ready else "misconfigured"


@router.get("/health")
@router.get("/api/health")
async def health_check(broker: EmbedBroker = Depends(get_broker)) -> JSONResponse:
    """Summarise which subsystems are configured."""

    settings = broker.settings
    validation = validate_settings(settings)
    sp_ready = not settings.service_principal().missing_fields()
    powerbi_ready = bool(settings.powerbi_workspace_id) and not any(
        error.startswith("POWERBI_") for error in validation.errors
    )

    body = {
        "status": "ok" if validation.is_valid else "degraded",
        "timestamp": utc_timestamp(),
        "version": __version__,
        "environment": settings.environment,
        "configuration": {
            "isValid": validation.is_valid,
            "errors": validation.errors,
            "warnings": validation.warnings,
        },
        "services": {
            "authentication": _state(sp_ready),
            "powerbi": _state(powerbi_ready),
            "session": _state(settings.session_jwt_secret is not None),
        },
    }
    status_code = (
        status.HTTP_200_OK if validation.is_valid else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=status_code, content=body)


@router.get("/api/health/auth")
async def health_auth(broker: EmbedBroker = Depends(get_broker)) -> JSONResponse:
    """Attempt the service principal grant and report the outcome."""

    try:
        token = await broker.check_service_principal()
    except BrokerError as exc:
        logger.error("Service principal health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "message": "Authentication failed",
                "error": exc.public_message,
                "timestamp": utc_timestamp(),
            },
        )

    return JSONResponse(
        content={
            "status": "ok",
            "message": "Authentication successful",
            "hasToken": bool(token.value),
            "tokenLength": len(token.value),
            "timestamp": utc_timestamp(),
        }
    )


__all__ = ["router"]

"""Translate exceptions into the ``{success: false}`` error envelope."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from embed_broker.core.errors import BrokerError
from embed_broker.schemas.embed import ErrorEnvelope


logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorEnvelope(error=message).model_dump(),
        headers=headers,
    )


async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s on %s: %s", exc.__class__.__name__, request.url.path, exc)
    else:
        logger.warning("%s on %s: %s", exc.__class__.__name__, request.url.path, exc)
    return _envelope(exc.status_code, exc.public_message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = f"Route {request.method} {request.url.path} not found"
    else:
        message = str(exc.detail)
    return _envelope(exc.status_code, message, getattr(exc, "headers", None))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    logger.warning("Rejected request to %s: %s", request.url.path, errors)
    if any(error.get("type") == "json_invalid" for error in errors):
        return _envelope(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    fields = sorted(
        {
            ".".join(str(part) for part in error["loc"][1:])
            if error["loc"][:1] in (("body",), ("query",))
            else ".".join(str(part) for part in error["loc"])
            for error in errors
        }
    )
    described = ", ".join(field for field in fields if field) or "request body"
    return _envelope(status.HTTP_400_BAD_REQUEST, f"Invalid request parameters: {described}")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every envelope-producing handler to ``app``."""

    app.add_exception_handler(BrokerError, broker_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]

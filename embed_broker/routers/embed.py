"""Endpoints brokering Power BI embed configurations."""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from embed_broker.core.auth import get_current_identity
from embed_broker.schemas.embed import (
    EmbedConfigEnvelope,
    EmbedConfigRequest,
    EmbedTokenEnvelope,
    ReportListEnvelope,
    UserIdentity,
)
from embed_broker.services.broker import EmbedBroker, get_broker


router = APIRouter(prefix="/api/embed", tags=["embed"])
function_router = APIRouter(tags=["embed"])


@router.get("/config", response_model=EmbedConfigEnvelope)
async def get_embed_config(
    workspace_id: Optional[str] = Query(default=None, alias="workspaceId"),
    report_id: Optional[str] = Query(default=None, alias="reportId"),
    identity: UserIdentity = Depends(get_current_identity),
    broker: EmbedBroker = Depends(get_broker),
) -> EmbedConfigEnvelope:
    """Return the embed configuration of the requested or default report."""

    config = await broker.embed_configuration(
        identity, workspace_id=workspace_id, report_id=report_id
    )
    return EmbedConfigEnvelope(data=config)


async def _read_config_request(request: Request) -> EmbedConfigRequest:
    """Parse the optional JSON body once the caller is authenticated."""

    raw = await request.body()
    if not raw.strip():
        return EmbedConfigRequest()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": str(exc), "input": None}]
        ) from exc
    if data is None:
        return EmbedConfigRequest()
    try:
        return EmbedConfigRequest.model_validate(data)
    except ValidationError as exc:
        errors = [
            {**error, "loc": ("body", *error["loc"])}
            for error in exc.errors(include_url=False, include_context=False)
        ]
        raise RequestValidationError(errors, body=data) from exc


@router.post("/config", response_model=EmbedConfigEnvelope)
async def post_embed_config(
    request: Request,
    identity: UserIdentity = Depends(get_current_identity),
    broker: EmbedBroker = Depends(get_broker),
) -> EmbedConfigEnvelope:
    """Return an embed configuration, applying display overrides from the body.

    The body is read by hand so that authentication always runs before it is
    decoded or validated.
    """

    payload = await _read_config_request(request)
    config = await broker.embed_configuration(
        identity,
        workspace_id=payload.workspace_id,
        report_id=payload.report_id,
        overrides=payload.settings,
    )
    return EmbedConfigEnvelope(data=config)


@router.get("/token", response_model=EmbedTokenEnvelope)
async def get_embed_token(
    workspace_id: Optional[str] = Query(default=None, alias="workspaceId"),
    report_id: Optional[str] = Query(default=None, alias="reportId"),
    identity: UserIdentity = Depends(get_current_identity),
    broker: EmbedBroker = Depends(get_broker),
) -> EmbedTokenEnvelope:
    """Return a fresh embed token only."""

    token = await broker.embed_token(
        identity, workspace_id=workspace_id, report_id=report_id
    )
    return EmbedTokenEnvelope(data=token)


@router.get("/reports", response_model=ReportListEnvelope)
async def list_reports(
    workspace_id: Optional[str] = Query(default=None, alias="workspaceId"),
    identity: UserIdentity = Depends(get_current_identity),
    broker: EmbedBroker = Depends(get_broker),
) -> ReportListEnvelope:
    """List the reports of a workspace."""

    reports = await broker.list_reports(identity, workspace_id=workspace_id)
    return ReportListEnvelope(data=reports, count=len(reports))


function_router.add_api_route(
    "/embed-config", get_embed_config, methods=["GET"], response_model=EmbedConfigEnvelope
)
function_router.add_api_route(
    "/embed-config", post_embed_config, methods=["POST"], response_model=EmbedConfigEnvelope
)


__all__ = ["function_router", "router"]

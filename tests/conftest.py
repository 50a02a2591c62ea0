"""Shared pytest fixtures."""
from __future__ import annotations

import asyncio
import re
from typing import Any, Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from embed_broker.core.config import Settings, reload_settings
from embed_broker.core.security import create_session_token
from embed_broker.main import create_app


SESSION_SECRET = "test-session-secret-0123456789abcdef"
CLIENT_SECRET = "sp-client-secret-do-not-leak"
TENANT_ID = "tenant-123"
WORKSPACE_ID = "workspace-1"
REPORT_ID = "report-1"

TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token"
REPORT_URL = f"https://api.powerbi.com/v1.0/myorg/groups/{WORKSPACE_ID}/reports/{REPORT_ID}"
GENERATE_TOKEN_URL = f"{REPORT_URL}/GenerateToken"

ENV_VARS = (
    "APP_NAME",
    "ENVIRONMENT",
    "LOG_LEVEL",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
    "AZURE_TENANT_ID",
    "AZURE_AUTHORITY",
    "POWERBI_SCOPE",
    "POWERBI_API_URL",
    "POWERBI_WORKSPACE_ID",
    "POWERBI_REPORT_ID",
    "SESSION_JWT_SECRET",
    "SESSION_JWT_AUDIENCE",
    "SESSION_JWT_ISSUER",
    "ALLOWED_ORIGINS",
    "HTTP_TIMEOUT_SECONDS",
)

_REPORT_PATH = re.compile(r"/v1\.0/myorg/groups/[^/]+/reports/[^/]+$")


class FakeUpstream:
    """Serve canned Azure AD and Power BI responses and record every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, tuple[int, Any]] = {
            "token": (
                200,
                {"token_type": "Bearer", "expires_in": 3599, "access_token": "aad-token"},
            ),
            "report": (
                200,
                {
                    "id": REPORT_ID,
                    "name": "Sales",
                    "embedUrl": "https://app.powerbi.com/reportEmbed?reportId=report-1",
                    "datasetId": "dataset-1",
                },
            ),
            "generate": (
                200,
                {
                    "token": "embed-token",
                    "tokenId": "token-id-1",
                    "expiration": "2099-01-01T00:00:00Z",
                },
            ),
            "reports": (
                200,
                {
                    "value": [
                        {"id": "r1", "name": "One", "embedUrl": "https://x/1", "datasetId": "d1"},
                        {"id": "r2", "name": "Two", "embedUrl": "https://x/2", "datasetId": "d2"},
                    ]
                },
            ),
        }
        self.delays: dict[str, float] = {}
        self.errors: dict[str, Exception] = {}

    @staticmethod
    def classify(request: httpx.Request) -> str:
        path = request.url.path
        if path.endswith("/oauth2/v2.0/token"):
            return "token"
        if path.endswith("/GenerateToken"):
            return "generate"
        if _REPORT_PATH.search(path):
            return "report"
        if path.endswith("/reports"):
            return "reports"
        return "unknown"

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        kind = self.classify(request)
        if kind in self.delays:
            await asyncio.sleep(self.delays[kind])
        if kind in self.errors:
            raise self.errors[kind]
        status_code, body = self.responses.get(kind, (404, {"error": "not found"}))
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    def respond(self, kind: str, status_code: int, body: Any) -> None:
        self.responses[kind] = (status_code, body)

    def calls(self, kind: str) -> list[httpx.Request]:
        return [request for request in self.requests if self.classify(request) == kind]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture()
def test_environment(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Prepare a complete broker configuration in the environment."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AZURE_CLIENT_ID", "client-id")
    monkeypatch.setenv("AZURE_CLIENT_SECRET", CLIENT_SECRET)
    monkeypatch.setenv("AZURE_TENANT_ID", TENANT_ID)
    monkeypatch.setenv("POWERBI_WORKSPACE_ID", WORKSPACE_ID)
    monkeypatch.setenv("POWERBI_REPORT_ID", REPORT_ID)
    monkeypatch.setenv("SESSION_JWT_SECRET", SESSION_SECRET)
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:3000")
    return reload_settings()


@pytest.fixture()
def settings(test_environment: Settings) -> Settings:
    return test_environment


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def api_client(
    settings: Settings, upstream: FakeUpstream
) -> Generator[TestClient, None, None]:
    """Return a TestClient whose outbound calls hit :class:`FakeUpstream`."""

    client = TestClient(create_app(settings, transport=upstream.transport))
    try:
        yield client
    finally:
        client.close()


@pytest.fixture()
def auth_headers(settings: Settings) -> dict[str, str]:
    token = create_session_token(
        settings=settings, sub="user-42", email="user@example.com"
    )
    return {"Authorization": f"Bearer {token}"}

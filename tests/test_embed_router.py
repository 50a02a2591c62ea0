"""End-to-end tests for the embed endpoints."""
from __future__ import annotations

import json
import logging

from fastapi.testclient import TestClient

from embed_broker.core.security import create_session_token
from embed_broker.main import create_app
from tests.conftest import CLIENT_SECRET, REPORT_ID, SESSION_SECRET


EXPECTED_SETTINGS = {
    "panes": {
        "filters": {"expanded": False, "visible": True},
        "pageNavigation": {"visible": True},
    },
    "bars": {"statusBar": {"visible": True}},
}


def test_embed_config_returns_envelope(api_client, upstream, auth_headers) -> None:
    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["timestamp"].endswith("Z")
    assert body["data"] == {
        "type": "report",
        "id": REPORT_ID,
        "embedUrl": "https://app.powerbi.com/reportEmbed?reportId=report-1",
        "accessToken": "embed-token",
        "tokenId": "token-id-1",
        "expiration": "2099-01-01T00:00:00Z",
        "settings": EXPECTED_SETTINGS,
    }
    assert len(upstream.calls("token")) == 1
    (generate,) = upstream.calls("generate")
    assert json.loads(generate.content)["identities"][0]["username"] == "user-42"
    assert response.headers["X-Request-ID"]


def test_missing_authorization_is_rejected_without_upstream_calls(api_client, upstream) -> None:
    response = api_client.get("/api/embed/config")

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.json()["error"] == "Missing or invalid Authorization header"
    assert upstream.requests == []


def test_invalid_token_gets_generic_error(api_client, upstream) -> None:
    response = api_client.get(
        "/api/embed/config", headers={"Authorization": "Bearer not.a.jwt"}
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"
    assert upstream.requests == []


def test_missing_target_is_a_bad_request(api_client, upstream, auth_headers, monkeypatch) -> None:
    broker = api_client.app.state.broker
    monkeypatch.setattr(
        broker,
        "settings",
        broker.settings.model_copy(update={"powerbi_report_id": None}),
    )

    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 400
    assert "reportId and workspaceId are required" in response.json()["error"]
    assert upstream.requests == []


def test_query_parameters_select_the_report(api_client, upstream, auth_headers) -> None:
    upstream.respond(
        "report",
        200,
        {"id": "other", "embedUrl": "https://app.powerbi.com/reportEmbed?reportId=other"},
    )

    response = api_client.get(
        "/api/embed/config",
        params={"workspaceId": "ws-9", "reportId": "other"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["id"] == "other"
    (report,) = upstream.calls("report")
    assert report.url.path == "/v1.0/myorg/groups/ws-9/reports/other"


def test_rejected_grant_maps_to_401_and_skips_power_bi(api_client, upstream, auth_headers) -> None:
    upstream.respond("token", 401, {"error": "invalid_client"})

    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 401
    assert response.json()["error"].startswith("Authentication failed")
    assert upstream.calls("report") == []
    assert upstream.calls("generate") == []


def test_grant_server_error_maps_to_500(api_client, upstream, auth_headers) -> None:
    upstream.respond("token", 500, "upstream exploded")

    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 500
    assert "upstream exploded" not in response.text


def test_power_bi_error_body_is_not_returned(api_client, upstream, auth_headers) -> None:
    upstream.respond("generate", 403, {"error": {"message": "secret internals"}})

    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["error"] == "Power BI API error (403)"
    assert "secret internals" not in response.text


def test_malformed_token_response_is_a_server_error(api_client, upstream, auth_headers) -> None:
    upstream.respond("generate", 200, {"token": "t", "expiration": "2099-01-01T00:00:00Z"})

    response = api_client.get("/api/embed/config", headers=auth_headers)

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Unexpected response from Power BI",
        "timestamp": response.json()["timestamp"],
    }


def test_post_applies_body(api_client, upstream, auth_headers) -> None:
    response = api_client.post(
        "/api/embed/config",
        headers=auth_headers,
        json={
            "workspaceId": "ws-2",
            "reportId": REPORT_ID,
            "settings": {"filterPaneVisible": False, "statusBarVisible": False},
        },
    )

    assert response.status_code == 200
    settings = response.json()["data"]["settings"]
    assert settings["panes"]["filters"] == {"expanded": False, "visible": False}
    assert settings["bars"]["statusBar"] == {"visible": False}
    (generate,) = upstream.calls("generate")
    assert "/groups/ws-2/" in generate.url.path


def test_post_without_body_uses_defaults(api_client, auth_headers) -> None:
    response = api_client.post("/api/embed/config", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["settings"] == EXPECTED_SETTINGS


def test_post_rejects_unknown_settings(api_client, upstream, auth_headers) -> None:
    response = api_client.post(
        "/api/embed/config",
        headers=auth_headers,
        json={"settings": {"background": "transparent"}},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request parameters: settings.background"
    assert upstream.requests == []


def test_post_authenticates_before_reading_body(api_client, upstream) -> None:
    response = api_client.post(
        "/api/embed/config",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Missing or invalid Authorization header"
    assert upstream.requests == []


def test_post_with_malformed_json_is_a_bad_request(api_client, upstream, auth_headers) -> None:
    response = api_client.post(
        "/api/embed/config",
        content=b"{not json",
        headers={**auth_headers, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON body"
    assert upstream.requests == []


def test_post_with_non_object_body_is_a_bad_request(api_client, upstream, auth_headers) -> None:
    response = api_client.post("/api/embed/config", headers=auth_headers, json=[1, 2])

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request parameters: request body"
    assert upstream.requests == []


def test_function_style_alias(api_client, auth_headers) -> None:
    response = api_client.get("/embed-config", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["tokenId"] == "token-id-1"


def test_token_endpoint_returns_only_the_token(api_client, upstream, auth_headers) -> None:
    response = api_client.get("/api/embed/token", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {
        "token": "embed-token",
        "tokenId": "token-id-1",
        "expiration": "2099-01-01T00:00:00Z",
    }
    assert upstream.calls("report") == []


def test_reports_endpoint_lists_workspace(api_client, auth_headers) -> None:
    response = api_client.get("/api/embed/reports", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [report["id"] for report in body["data"]] == ["r1", "r2"]
    assert body["data"][0]["embedUrl"] == "https://x/1"


def test_options_is_answered_without_authentication(api_client, upstream) -> None:
    response = api_client.options("/api/embed/config")

    assert response.status_code == 204
    assert upstream.requests == []


def test_cors_preflight_for_allowed_origin(api_client) -> None:
    response = api_client.options(
        "/api/embed/config",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert "Authorization" in response.headers["access-control-allow-headers"]


def test_cors_preflight_for_unknown_origin_is_refused(api_client) -> None:
    response = api_client.options(
        "/api/embed/config",
        headers={
            "Origin": "https://evil.example.com",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 400
    assert "access-control-allow-origin" not in response.headers


def test_unknown_route_uses_error_envelope(api_client) -> None:
    response = api_client.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"] == "Route GET /api/nope not found"


def test_repeated_calls_mint_fresh_tokens(api_client, upstream, auth_headers) -> None:
    first = api_client.get("/api/embed/config", headers=auth_headers)
    second = api_client.get("/api/embed/config", headers=auth_headers)

    assert first.json()["data"] == second.json()["data"]
    assert len(upstream.calls("token")) == 2
    assert len(upstream.calls("generate")) == 2


def test_expired_session_is_rejected(api_client, upstream, settings) -> None:
    token = create_session_token(settings=settings, sub="user-1", expires_minutes=-5)

    response = api_client.get(
        "/api/embed/config", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"
    assert upstream.requests == []


def test_secrets_never_reach_responses_or_logs(
    settings, upstream, auth_headers, capsys, monkeypatch
) -> None:
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", list(root.handlers))
    upstream.respond("token", 401, {"error": "invalid_client"})
    client = TestClient(create_app(settings, transport=upstream.transport))

    try:
        ok = client.get("/api/health")
        failed = client.get("/api/embed/config", headers=auth_headers)
    finally:
        client.close()

    output = capsys.readouterr()
    for text in (ok.text, failed.text, output.out, output.err):
        assert CLIENT_SECRET not in text
        assert SESSION_SECRET not in text

# -*- coding: utf-8 -*-
"""Location: ./tests/unit/saasgateway/test_main.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Tests for the HTTP application: health, CORS and transport dispatch.
"""

# Standard
from unittest.mock import AsyncMock

# Third-Party
from fastapi.testclient import TestClient
import pytest

# First-Party
from saasgateway.config import Settings
from saasgateway.main import create_app

ORIGIN = "http://localhost:3000"


@pytest.fixture
def app(registry):
    return create_app(registry, Settings(allowed_origins={ORIGIN}, json_response_enabled=True))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "timestamp" in body


def test_preflight_allows_configuration_headers(client):
    response = client.options(
        "/mcp",
        headers={
            "Origin": ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type, Mcp-Session-Id, Alpha-Token, Beta-Base-Url",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == ORIGIN


def test_preflight_rejects_unknown_headers(client):
    response = client.options(
        "/mcp",
        headers={"Origin": ORIGIN, "Access-Control-Request-Method": "POST", "Access-Control-Request-Headers": "X-Unknown-Token"},
    )
    assert response.status_code == 400


def test_preflight_rejects_unknown_origin(client):
    response = client.options("/mcp", headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"})
    assert response.status_code == 400


def test_session_id_header_is_exposed(client):
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"}, headers={"Origin": ORIGIN})
    assert "mcp-session-id" in response.headers["access-control-expose-headers"].lower()


def test_handler_crash_is_500(client, app):
    app.state.streamable_http.handle_streamable_http = AsyncMock(side_effect=RuntimeError("boom"))

    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})

    assert response.status_code == 500
    assert response.text == "Internal server error"


def test_other_paths_fall_through(client):
    assert client.get("/message").status_code in (404, 405)
    assert client.get("/unknown").status_code == 404

"""Tests for the health endpoint and app factory."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from streampay.api.app import create_app


@pytest.fixture
def test_client(app_config):
    """TestClient without a running lifespan (no engine attached)."""
    app = create_app(config=app_config)
    return TestClient(app, raise_server_exceptions=False)


def test_health_without_engine(test_client):
    """GET /health should report the engine as not initialized."""
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "engine": "not_initialized"}


def test_health_with_engine(app_config):
    app = create_app(config=app_config)
    app.state.engine = SimpleNamespace(
        is_initialized=True,
        health_check=AsyncMock(return_value={"engine": "ok", "rpc": "ok", "discovery": "error"}),
    )
    client = TestClient(app, raise_server_exceptions=False)

    data = client.get("/health").json()
    assert data == {"status": "ok", "engine": "ok", "rpc": "ok", "discovery": "error"}


def test_app_has_openapi(test_client):
    """The app should serve an OpenAPI schema."""
    response = test_client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    assert schema["info"]["title"] == "streampay"
    assert "/draft" in schema["paths"]


def test_cors_headers(test_client):
    response = test_client.options(
        "/health",
        headers={"Origin": "http://ui.test", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["access-control-allow-origin"] == "*"


def test_draft_without_engine_is_503(test_client):
    response = test_client.get("/draft")
    assert response.status_code == 503
    assert response.json() == {"code": "engine-not-initialized", "message": "engine not initialized"}

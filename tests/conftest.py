"""Shared test fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from helpers.fakes import FakeClock


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.setenv("APIGUARD_ENVIRONMENT", "development")
    monkeypatch.setenv("APIGUARD_SESSION_SECRET", "test-session-secret")
    monkeypatch.setenv("APIGUARD_LOG_JSON", "false")
    monkeypatch.setenv("APIGUARD_LOG_LEVEL", "debug")
    monkeypatch.delenv("APIGUARD_API_KEY", raising=False)

    # Reset cached settings
    import apiguard.config.loader as loader
    loader._settings = None
    yield
    loader._settings = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings():
    from apiguard.config.loader import GuardSettings

    return GuardSettings()


@pytest.fixture
def app(settings):
    """App with a few stand-in marketplace routes behind the security layer."""
    from fastapi.responses import JSONResponse

    from apiguard.config import error_codes
    from apiguard.main import create_app

    app = create_app(settings=settings)

    @app.post("/services")
    async def create_service():
        return {"created": True}

    @app.delete("/services/{service_id}")
    async def delete_service(service_id: int):
        return {"deleted": service_id}

    @app.post("/auth/login")
    async def login(payload: dict):
        if payload.get("password") == "correct":
            return {"access_token": "t"}
        return JSONResponse(
            status_code=401,
            content={"error_code": error_codes.AUTH_INVALID_CREDENTIALS.code, "message": "Invalid credentials"},
        )

    @app.post("/auth/refresh")
    async def refresh(payload: dict):
        if payload.get("refresh_token") == "valid":
            return {"access_token": "t2"}
        return JSONResponse(
            status_code=401,
            content={"error_code": error_codes.AUTH_REFRESH_FAILED.code, "message": "Token refresh failed"},
        )

    return app


@pytest.fixture
def client(app):
    """Test client with the app lifespan running."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

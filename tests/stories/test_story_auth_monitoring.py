"""Passive monitoring of authentication traffic.

Acceptance Criteria:
  AC1: Every request under /auth/ is counted; outcomes are classified by status and path.
  AC2: Failures from scripted clients or failed refreshes count as suspicious.
  AC3: One summary is emitted and counters reset per elapsed hour, with exact counts.
  AC4: The monitor never fails a request or changes its response.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from apiguard.layer import SecurityLayer
from apiguard.main import create_app

BROWSER = {"user-agent": "Mozilla/5.0"}


@pytest.fixture
def layer(settings, clock) -> SecurityLayer:
    return SecurityLayer(settings=settings, clock=clock)


@pytest.fixture
def auth_client(settings, layer):
    app = create_app(settings=settings, layer=layer)

    @app.post("/auth/login")
    async def login(payload: dict):
        from fastapi.responses import JSONResponse

        if payload.get("password") == "correct":
            return {"access_token": "t"}
        return JSONResponse(status_code=401, content={"error_code": "AUTH_1001"})

    with TestClient(app) as c:
        yield c


class TestAC1AC2Classification:
    def test_mixed_traffic(self, auth_client, layer):
        auth_client.post("/auth/login", json={"password": "correct"}, headers=BROWSER)
        auth_client.post("/auth/login", json={"password": "nope"}, headers=BROWSER)
        auth_client.post("/auth/login", json={"password": "nope"}, headers={"user-agent": "python-httpx"})
        auth_client.get("/auth/unknown", headers=BROWSER)

        snap = layer.auth_monitor.snapshot()
        assert snap["total_requests"] == 4
        assert snap["auth_successes"] == 1
        assert snap["auth_failures"] == 2
        assert snap["suspicious_activity"] == 1


class TestAC3Rollup:
    def test_one_rollup_per_hour_boundary(self, auth_client, layer, clock):
        for _ in range(61):
            auth_client.post("/auth/login", json={"password": "correct"}, headers=BROWSER)
            # stay under the public limit of 10 POSTs per minute
            clock.advance(60)
        assert layer.auth_monitor.last_summary is None

        auth_client.post("/auth/login", json={"password": "nope"}, headers=BROWSER)

        summary = layer.auth_monitor.last_summary
        assert summary["total_requests"] == 61
        assert summary["auth_successes"] == 61
        assert summary["auth_failures"] == 0
        assert summary["success_rate"] == "100.00%"

        snap = layer.auth_monitor.snapshot()
        assert snap["total_requests"] == 1
        assert snap["auth_failures"] == 1

    def test_two_hours_two_rollups(self, layer, clock):
        monitor = layer.auth_monitor
        emitted = []
        for _ in range(125):
            emitted.append(monitor.record_request())
            clock.advance(60)
        assert len([s for s in emitted if s]) == 2


class TestAC4PassiveObserver:
    def test_response_untouched_when_monitor_breaks(self, auth_client, layer, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("metrics down")

        monkeypatch.setattr(layer.auth_monitor, "record_outcome", broken)
        resp = auth_client.post("/auth/login", json={"password": "correct"}, headers=BROWSER)
        assert resp.status_code == 200
        assert resp.json() == {"access_token": "t"}

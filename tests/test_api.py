"""Endpoint tests through the full middleware stack."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.authentication import AuthCredentials, AuthenticationBackend, SimpleUser
from starlette.middleware.authentication import AuthenticationMiddleware


class HeaderAuthBackend(AuthenticationBackend):
    """Stand-in for the account service: ``X-Test-User: name[:role]``."""

    async def authenticate(self, conn):
        raw = conn.headers.get("x-test-user")
        if not raw:
            return None
        name, _, role = raw.partition(":")
        scopes = ["authenticated"] + ([role] if role else [])
        return AuthCredentials(scopes), SimpleUser(name)


def _csrf_headers(client) -> dict[str, str]:
    resp = client.get("/csrf-token")
    assert resp.status_code == 200
    return {"x-csrf-token": resp.json()["csrf_token"]}


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["rate_limit_sweeper"] == "running"
        assert data["middleware"] == ["ContextInjector", "AuthAnomalyMonitor", "RateLimiter", "CsrfGuard"]

    def test_request_id_header(self, client):
        resp = client.get("/health")
        assert len(resp.headers["x-request-id"]) == 8

    def test_sweeper_stopped_after_shutdown(self, app):
        with TestClient(app) as c:
            c.get("/health")
        assert app.state.security.store.sweeper_running is False


class TestCsrf:
    def test_bootstrap_returns_token_and_cookie(self, client):
        resp = client.get("/csrf-token")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data["csrf_token"]) == 64
        assert data["header_name"] == "x-csrf-token"
        assert resp.cookies.get("csrf-token") == data["csrf_token"]

    def test_token_stable_within_session(self, client):
        first = client.get("/csrf-token").json()["csrf_token"]
        second = client.get("/csrf-token").json()["csrf_token"]
        assert first == second

    def test_post_with_token(self, client):
        resp = client.post("/services", headers=_csrf_headers(client))
        assert resp.status_code == 200
        assert resp.json() == {"created": True}

    def test_post_without_token(self, client):
        _csrf_headers(client)
        resp = client.post("/services")
        assert resp.status_code == 400
        assert resp.json()["error_code"] == "SEC_5002"

    def test_post_without_session(self, client):
        resp = client.post("/services", headers={"x-csrf-token": "a" * 64})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid CSRF token"

    def test_post_with_wrong_token(self, client):
        _csrf_headers(client)
        resp = client.delete("/services/1", headers={"x-csrf-token": "b" * 64})
        assert resp.status_code == 400

    def test_body_field(self, client):
        token = _csrf_headers(client)["x-csrf-token"]
        resp = client.post("/services", data={"_csrf": token})
        assert resp.status_code == 200

    def test_exempt_route(self, client):
        resp = client.post("/auth/login", json={"password": "correct"})
        assert resp.status_code == 200


class TestRateLimit:
    def test_eleventh_public_post_rejected(self, client):
        headers = _csrf_headers(client)
        for i in range(10):
            resp = client.post("/services", headers=headers)
            assert resp.status_code == 200
            assert resp.headers["x-ratelimit-remaining"] == str(9 - i)

        resp = client.post("/services", headers=headers)
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "60"
        assert resp.json()["error_code"] == "SEC_5003"

    def test_reads_not_limited(self, client):
        for _ in range(50):
            assert client.get("/health").status_code == 200

    def test_rejected_before_csrf(self, client):
        """A forged flood still exhausts the limit; the 11th gets 429, not 400."""
        for _ in range(10):
            assert client.post("/services").status_code == 400
        assert client.post("/services").status_code == 429

    def test_authenticated_tier(self, app):
        app.add_middleware(AuthenticationMiddleware, backend=HeaderAuthBackend())
        with TestClient(app) as c:
            headers = _csrf_headers(c)
            headers["x-test-user"] = "alice"
            for _ in range(30):
                assert c.post("/services", headers=headers).status_code == 200
            resp = c.post("/services", headers=headers)
            assert resp.status_code == 429
            assert resp.headers["x-ratelimit-limit"] == "30"

    def test_admin_tier(self, app):
        app.add_middleware(AuthenticationMiddleware, backend=HeaderAuthBackend())
        with TestClient(app) as c:
            headers = _csrf_headers(c)
            headers["x-test-user"] = "root:admin"
            resp = c.post("/services", headers=headers)
            assert resp.headers["x-ratelimit-limit"] == "100"
            assert resp.headers["x-ratelimit-remaining"] == "99"


class TestPasswordStrength:
    def test_valid_password(self, client):
        resp = client.post("/password/strength", json={"password": "Tr0ub4dor&3XYZ"})
        assert resp.status_code == 200
        assert resp.json() == {
            "valid": True,
            "score": 88,
            "label": "strong",
            "violation": None,
            "message": None,
        }

    def test_invalid_password(self, client):
        resp = client.post("/password/strength", json={"password": "Password1!"})
        data = resp.json()
        assert data["valid"] is False
        assert data["violation"] == "too_short"
        assert data["score"] == 28

    def test_missing_field(self, client):
        assert client.post("/password/strength", json={}).status_code == 422


class TestAuthMetricsEndpoint:
    def test_not_configured(self, client):
        assert client.get("/security/auth-metrics").status_code == 503

    @pytest.fixture
    def keyed_client(self, monkeypatch):
        from apiguard.config.loader import GuardSettings
        from apiguard.main import create_app

        monkeypatch.setenv("APIGUARD_API_KEY", "monitor-key")
        with TestClient(create_app(settings=GuardSettings())) as c:
            yield c

    def test_missing_key(self, keyed_client):
        assert keyed_client.get("/security/auth-metrics").status_code == 401

    def test_wrong_key(self, keyed_client):
        resp = keyed_client.get("/security/auth-metrics", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 403

    def test_valid_key(self, keyed_client):
        resp = keyed_client.get("/security/auth-metrics", headers={"Authorization": "Bearer monitor-key"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_requests"] == 0
        assert "uptime_seconds" in data

    def test_endpoint_not_counted_as_auth_traffic(self, keyed_client):
        headers = {"Authorization": "Bearer monitor-key"}
        keyed_client.get("/security/auth-metrics", headers=headers)
        assert keyed_client.get("/security/auth-metrics", headers=headers).json()["total_requests"] == 0


class TestAuthMonitoring:
    def test_scripted_failed_login(self, app, client):
        resp = client.post(
            "/auth/login",
            json={"password": "wrong"},
            headers={"user-agent": "curl/8.4.0"},
        )
        assert resp.status_code == 401
        assert resp.json()["error_code"] == "AUTH_1001"

        snap = app.state.security.auth_monitor.snapshot()
        assert snap["total_requests"] == 1
        assert snap["auth_failures"] == 1
        assert snap["suspicious_activity"] == 1

    def test_browser_login_success(self, app, client):
        client.post("/auth/login", json={"password": "correct"}, headers={"user-agent": "Mozilla/5.0"})
        snap = app.state.security.auth_monitor.snapshot()
        assert snap["auth_successes"] == 1
        assert snap["suspicious_activity"] == 0

    def test_failed_refresh_reads_error_code(self, app, client):
        resp = client.post(
            "/auth/refresh",
            json={"refresh_token": "expired"},
            headers={"user-agent": "Mozilla/5.0"},
        )
        assert resp.status_code == 401
        snap = app.state.security.auth_monitor.snapshot()
        assert snap["auth_failures"] == 1
        assert snap["suspicious_activity"] == 1

    def test_rejected_auth_request_still_observed(self, app, client):
        for _ in range(11):
            client.post("/auth/login", json={"password": "correct"}, headers={"user-agent": "Mozilla/5.0"})
        snap = app.state.security.auth_monitor.snapshot()
        assert snap["total_requests"] == 11
        assert snap["auth_successes"] == 10

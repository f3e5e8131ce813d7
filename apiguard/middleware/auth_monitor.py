"""Auth anomaly monitor: passive counters over authentication endpoints."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field

import structlog
from starlette.requests import Request
from starlette.responses import Response

from apiguard.config import error_codes
from apiguard.config.loader import GuardSettings, get_settings
from apiguard.middleware.pipeline import Middleware, RequestContext
from apiguard.utils.sanitize import for_log

logger = structlog.get_logger()

# User-agent fragments typical of scripted credential stuffing
AUTOMATION_UA_MARKERS: tuple[str, ...] = ("python", "curl", "bot")

_START_KEY = "auth_monitor_started_at"


@dataclass
class AuthMetricsSnapshot:
    total_requests: int = 0
    auth_successes: int = 0
    auth_failures: int = 0
    token_refreshes: int = 0
    suspicious_activity: int = 0
    window_start: float = field(default_factory=time.time)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.auth_successes / self.total_requests * 100


def is_credential_stuffing(user_agent: str | None) -> bool:
    """Missing user-agent, or one that looks like a script, CLI tool or bot."""
    if not user_agent:
        return True
    lowered = user_agent.lower()
    return any(marker in lowered for marker in AUTOMATION_UA_MARKERS)


def is_high_frequency_request(client_key: str) -> bool:
    """Placeholder: no per-client frequency tracking exists, always False."""
    return False


def _error_code_from(response: Response) -> str | None:
    body = getattr(response, "body", None)
    if not body:
        return None
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(data, dict):
        code = data.get("error_code")
        return str(code) if code else None
    return None


class AuthAnomalyMonitor(Middleware):
    """Observe auth endpoints and aggregate outcome counters.

    - Counts every request under the auth prefix on entry
    - 2xx on a login/register path is a success, on a refresh path a refresh
    - 401/403 is a failure; suspicious heuristics then decide whether it is
      also counted as suspicious activity. A scripted user-agent only counts
      on an invalid-credentials (``AUTH_1001``) failure
    - Requests slower than the threshold are logged individually
    - Rollup is lazy: on the first request after the window has run for
      longer than ``auth_rollup_seconds`` the summary is logged and all
      counters reset. An idle period delays the rollup until traffic resumes.

    Never changes the response; its own errors are logged and swallowed.
    """

    def __init__(
        self,
        settings: GuardSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self._clock = clock
        self._metrics = AuthMetricsSnapshot(window_start=clock())
        self._lock = threading.Lock()
        self.last_summary: dict | None = None

    def observes(self, path: str) -> bool:
        return path.startswith(self.settings.auth_route_prefix)

    # ── counters ──

    def record_request(self) -> dict | None:
        """Count one auth request, rolling the window up first if it is due."""
        summary = self.maybe_rollup()
        with self._lock:
            self._metrics.total_requests += 1
        return summary

    def record_outcome(
        self,
        path: str,
        status_code: int,
        error_code: str | None = None,
        user_agent: str | None = None,
        client_key: str = "",
    ) -> None:
        with self._lock:
            if 200 <= status_code < 300:
                if "login" in path or "register" in path:
                    self._metrics.auth_successes += 1
                elif "refresh" in path:
                    self._metrics.token_refreshes += 1
            elif status_code in (401, 403):
                self._metrics.auth_failures += 1
                if self.is_suspicious(path, error_code, user_agent, client_key):
                    self._metrics.suspicious_activity += 1
                    logger.warning(
                        "suspicious_auth_activity",
                        code=error_codes.SEC_SUSPICIOUS_ACTIVITY.code,
                        path=for_log(path),
                        error_code=error_code,
                        user_agent=for_log(user_agent, 50),
                    )

    @staticmethod
    def is_suspicious(
        path: str,
        error_code: str | None,
        user_agent: str | None,
        client_key: str = "",
    ) -> bool:
        return any((
            error_code == error_codes.AUTH_TOKEN_INVALID.code and is_high_frequency_request(client_key),
            error_code == error_codes.AUTH_REFRESH_FAILED.code and "refresh" in path,
            error_code == error_codes.AUTH_INVALID_CREDENTIALS.code and is_credential_stuffing(user_agent),
        ))

    # ── rollup ──

    def maybe_rollup(self) -> dict | None:
        """Emit and reset if the window is older than the rollup interval."""
        now = self._clock()
        with self._lock:
            if now - self._metrics.window_start <= self.settings.auth_rollup_seconds:
                return None
            summary = self._summary()
            self._metrics = AuthMetricsSnapshot(window_start=now)
        self.last_summary = summary
        logger.info("auth_metrics_summary", **summary)
        return summary

    def _summary(self) -> dict:
        m = self._metrics
        return {
            "period_seconds": self.settings.auth_rollup_seconds,
            "total_requests": m.total_requests,
            "auth_successes": m.auth_successes,
            "auth_failures": m.auth_failures,
            "token_refreshes": m.token_refreshes,
            "suspicious_activity": m.suspicious_activity,
            "success_rate": f"{m.success_rate:.2f}%" if m.total_requests else "0%",
        }

    def snapshot(self) -> dict:
        """Live counters plus seconds since the last reset (read-only copy)."""
        with self._lock:
            data = asdict(self._metrics)
        data["uptime_seconds"] = max(0.0, self._clock() - data["window_start"])
        return data

    # ── pipeline hooks ──

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        if not self.observes(request.url.path):
            return None
        try:
            context.extra[_START_KEY] = self._clock()
            context.extra["capture_body"] = True
            self.record_request()
        except Exception:
            logger.exception("auth_monitor_request_error")
        return None

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        started = context.extra.get(_START_KEY)
        if started is None:
            return response
        try:
            path = request.url.path
            duration_ms = (self._clock() - started) * 1000
            self.record_outcome(
                path,
                response.status_code,
                error_code=_error_code_from(response),
                user_agent=request.headers.get("user-agent"),
                client_key=context.client_key,
            )
            if duration_ms > self.settings.auth_slow_request_ms:
                logger.warning(
                    "slow_auth_request",
                    method=request.method,
                    path=for_log(path),
                    duration_ms=round(duration_ms, 1),
                    status=response.status_code,
                )
        except Exception:
            logger.exception("auth_monitor_response_error")
        return response

"""CSRF guard middleware: double-submit cookie with a session-held token."""

from __future__ import annotations

import json
import secrets
from collections.abc import Mapping, MutableMapping
from typing import Any
from urllib.parse import parse_qs

import structlog
from starlette.requests import Request
from starlette.responses import Response

from apiguard.config.loader import GuardSettings, get_settings
from apiguard.config.route_policies import RouteTable, load_route_table
from apiguard.errors import CsrfError, CsrfTokenInvalid, CsrfTokenMissing, CsrfTokenRequired
from apiguard.middleware.pipeline import Middleware, RequestContext
from apiguard.utils.sanitize import for_log

logger = structlog.get_logger()

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
SESSION_TOKEN_KEY = "csrf_token"
TOKEN_BYTES = 32


def generate_csrf_token() -> str:
    """256-bit random token, hex encoded."""
    return secrets.token_hex(TOKEN_BYTES)


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings without leaking the position of the first difference.

    A length mismatch returns immediately; token length is not secret.
    """
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= ord(x) ^ ord(y)
    return result == 0


def _parse_body(raw: bytes, content_type: str) -> Mapping[str, Any]:
    """Decode a JSON object or urlencoded form; anything else yields ``{}``."""
    if not raw:
        return {}
    if "application/json" in content_type:
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    if "application/x-www-form-urlencoded" in content_type:
        parsed = parse_qs(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
        return {key: values[0] for key, values in parsed.items()}
    return {}


class CsrfGuard(Middleware):
    """Issue and validate anti-forgery tokens.

    - Exempt routes (route policy table) always pass
    - GET/HEAD/OPTIONS pass and lazily issue one token per session, mirrored
      into a script-readable ``csrf-token`` cookie (24h, SameSite=Lax,
      Secure in production); an existing token is never replaced
    - Other methods must present the session token in ``X-CSRF-Token``, else
      ``X-XSRF-Token``, else the ``_csrf`` body field
    - Failures return a terse 400; the specific reason is only logged
    """

    def __init__(
        self,
        route_table: RouteTable | None = None,
        settings: GuardSettings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        if route_table is None:
            route_table = load_route_table(self.settings.route_policy_file)
        self.route_table = route_table

    def presented_token(
        self, headers: Mapping[str, str], body: Mapping[str, Any] | None
    ) -> str | None:
        for header in self.settings.csrf_header_names:
            value = headers.get(header)
            if value:
                return value
        if body:
            value = body.get(self.settings.csrf_body_field)
            if isinstance(value, str) and value:
                return value
        return None

    def check(
        self,
        method: str,
        session: MutableMapping[str, Any],
        headers: Mapping[str, str],
        body: Mapping[str, Any] | None = None,
        exempt: bool = False,
    ) -> str | None:
        """Allow the request or raise a ``CsrfError``.

        Returns the token when a safe request issued a new one, else None.
        """
        if exempt:
            return None

        if method.upper() in SAFE_METHODS:
            if session.get(SESSION_TOKEN_KEY):
                return None
            token = generate_csrf_token()
            session[SESSION_TOKEN_KEY] = token
            logger.debug("csrf_token_generated", token_prefix=token[:8])
            return token

        session_token = session.get(SESSION_TOKEN_KEY)
        if not session_token:
            raise CsrfTokenRequired()
        presented = self.presented_token(headers, body)
        if not presented:
            raise CsrfTokenMissing()
        if not constant_time_compare(session_token, presented):
            raise CsrfTokenInvalid()
        return None

    @staticmethod
    def session_for(request: Request, context: RequestContext) -> MutableMapping[str, Any]:
        """Starlette's session when SessionMiddleware is installed, else the context's."""
        if "session" in request.scope:
            return request.session
        return context.session

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        method = request.method.upper()
        exempt = self.route_table.is_exempt(method, request.url.path)
        session = self.session_for(request, context)

        body: Mapping[str, Any] | None = None
        if not exempt and method not in SAFE_METHODS and self.presented_token(request.headers, None) is None:
            raw = await request.body()
            body = _parse_body(raw, request.headers.get("content-type", ""))

        try:
            issued = self.check(method, session, request.headers, body, exempt=exempt)
        except CsrfError as exc:
            logger.warning(
                "csrf_validation_failed",
                reason=exc.reason,
                method=method,
                path=for_log(request.url.path),
            )
            return exc.to_response()

        if issued:
            context.extra["csrf_issued"] = issued
        elif method not in SAFE_METHODS and not exempt:
            logger.debug("csrf_token_validated")
        return None

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        token = context.extra.get("csrf_issued")
        if token:
            response.set_cookie(
                self.settings.csrf_cookie_name,
                token,
                max_age=self.settings.csrf_cookie_max_age,
                path="/",
                secure=self.settings.is_production,
                httponly=False,
                samesite="lax",
            )
        return response

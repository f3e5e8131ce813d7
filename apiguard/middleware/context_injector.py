"""Context injector middleware: request ID, client key and caller identity."""

from __future__ import annotations

from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

from apiguard.middleware.pipeline import Middleware, RequestContext
from apiguard.utils.net import resolve_client_key
from apiguard.utils.sanitize import strip_control_chars

logger = structlog.get_logger()

_MAX_REQUEST_ID_LENGTH = 256


def _user_attr(user: object, *names: str) -> str:
    """First non-empty attribute; Starlette's BaseUser raises NotImplementedError."""
    for name in names:
        try:
            value = getattr(user, name, None)
        except NotImplementedError:
            continue
        if value:
            return str(value)
    return ""


def _resolve_identity(request: Request) -> tuple[str, str]:
    """Read ``(user_id, role)`` from Starlette's authentication scope.

    The account service authenticates; this layer only consumes the result.
    An ``admin`` auth scope is treated the same as an ``admin`` role attribute.
    """
    user = request.scope.get("user")
    if user is None or not getattr(user, "is_authenticated", False):
        return "", ""
    user_id = _user_attr(user, "identity", "id", "display_name")
    role = _user_attr(user, "role")
    auth = request.scope.get("auth")
    scopes = getattr(auth, "scopes", None) or []
    if not role and "admin" in scopes:
        role = "admin"
    return user_id, role


class ContextInjector(Middleware):
    """Populate the request context before any policy runs.

    - Generates a request ID and echoes it as ``X-Request-ID``
    - Keeps a sanitized client-supplied request ID as ``X-Original-Request-ID``
    - Resolves the client key (first X-Forwarded-For hop, peer, ``unknown``)
    - Copies authenticated identity and role from the auth scope
    - Binds request_id/client_key to structlog contextvars
    """

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        context.request_id = uuid4().hex[:8]

        client_request_id = request.headers.get("x-request-id")
        if client_request_id:
            context.extra["original_request_id"] = strip_control_chars(
                client_request_id[:_MAX_REQUEST_ID_LENGTH]
            )

        peer = request.client.host if request.client else None
        context.client_key = resolve_client_key(request.headers, peer)
        context.user_id, context.user_role = _resolve_identity(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=context.request_id,
            client_key=context.client_key,
        )

        logger.debug(
            "context_injected",
            authenticated=context.is_authenticated,
            role=context.user_role or None,
        )
        return None

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        response.headers["x-request-id"] = context.request_id
        if context.extra.get("original_request_id"):
            response.headers["x-original-request-id"] = context.extra["original_request_id"]
        return response

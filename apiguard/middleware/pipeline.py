"""Ordered security middleware chain.

Each request gets a fresh ``RequestContext``. Request hooks run in
registration order and may short-circuit with a response; response hooks run
in reverse over every enabled middleware, including for short-circuited
requests (the ASGI adapter feeds those back through ``process_response``).
"""

from __future__ import annotations

import abc
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, TypeVar
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

M = TypeVar("M", bound="Middleware")


@dataclass
class RequestContext:
    """Per-request state shared by the security middleware."""

    request_id: str = field(default_factory=lambda: uuid4().hex[:8])
    client_key: str = ""
    user_id: str = ""
    user_role: str = ""
    # used when no SessionMiddleware put a session in the scope
    session: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


class Middleware(abc.ABC):
    """One policy step. Subclasses implement ``process_request``."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Return a Response to reject the request, or None to let it through."""

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        return response


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": True, "message": "Internal server error"},
    )


class MiddlewarePipeline:
    def __init__(self) -> None:
        self._chain: list[Middleware] = []
        self._enabled: dict[str, bool] = {}

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._chain)

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        self._chain.append(middleware)
        self._enabled[middleware.name] = enabled
        logger.info("middleware_registered", name=middleware.name, enabled=enabled)

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Toggle a registered middleware; unknown names are ignored."""
        if name in self._enabled:
            self._enabled[name] = enabled

    def is_enabled(self, name: str) -> bool:
        return self._enabled.get(name, True)

    def get_middleware(self, kind: type[M]) -> M | None:
        return next((mw for mw in self._chain if isinstance(mw, kind)), None)

    def _active(self, reverse: bool = False) -> Iterator[Middleware]:
        chain = reversed(self._chain) if reverse else self._chain
        return (mw for mw in chain if self.is_enabled(mw.name))

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Run the request hooks. An exception rejects the request with a 500."""
        for mw in self._active():
            try:
                rejection = await mw.process_request(request, context)
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name)
                return _internal_error()
            if rejection is not None:
                logger.info("middleware_short_circuit", middleware=mw.name, status=rejection.status_code)
                return rejection
        return None

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        """Run the response hooks in reverse. A hook that raises is skipped."""
        for mw in self._active(reverse=True):
            try:
                response = await mw.process_response(request, response, context)
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name)
        return response

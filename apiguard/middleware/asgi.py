"""Run the security pipeline around a Starlette/FastAPI application."""

from __future__ import annotations

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from apiguard.middleware.pipeline import MiddlewarePipeline, RequestContext

logger = structlog.get_logger()


async def _buffer(response: Response) -> Response:
    """Materialize a streamed response so response middleware can read ``body``."""
    body = b""
    async for chunk in response.body_iterator:
        body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
    buffered = Response(content=body, status_code=response.status_code)
    buffered.raw_headers = list(response.raw_headers)
    buffered.background = response.background
    return buffered


class SecurityMiddleware(BaseHTTPMiddleware):
    """ASGI adapter: request phase, downstream handler, response phase.

    Short-circuit responses from the request phase still go through the
    response phase so headers and observers see every outcome.
    """

    def __init__(self, app: ASGIApp, pipeline: MiddlewarePipeline) -> None:
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext()

        short_circuit = await self.pipeline.process_request(request, context)
        if short_circuit is not None:
            return await self.pipeline.process_response(request, short_circuit, context)

        response = await call_next(request)
        if context.extra.get("capture_body"):
            response = await _buffer(response)
        return await self.pipeline.process_response(request, response, context)

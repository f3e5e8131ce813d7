"""API key authentication for monitoring endpoints."""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

_api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


async def require_api_key(request: Request, api_key: str | None = Security(_api_key_header)) -> str:
    """Validate ``Authorization: Bearer <key>`` against the configured key."""
    settings = request.app.state.security.settings

    if not settings.api_key:
        raise HTTPException(status_code=503, detail="Monitoring API key not configured")

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    token = api_key
    if token.lower().startswith("bearer "):
        token = token[7:]

    if not hmac.compare_digest(token.encode(), settings.api_key.encode()):
        raise HTTPException(status_code=403, detail="Invalid API key")

    return token

"""Security endpoints: CSRF bootstrap, password feedback, auth metrics."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from apiguard.api.auth import require_api_key
from apiguard.middleware.csrf_guard import SESSION_TOKEN_KEY
from apiguard.models.security import (
    AuthMetricsResponse,
    CsrfTokenResponse,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
)
from apiguard.policy.passwords import PasswordPolicy

logger = structlog.get_logger()
router = APIRouter()

_policy = PasswordPolicy()


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(request: Request) -> CsrfTokenResponse:
    """Return the session's CSRF token; the guard issues it on this GET if needed."""
    token = request.session.get(SESSION_TOKEN_KEY)
    if not token:
        raise HTTPException(status_code=503, detail="CSRF protection is disabled")
    settings = request.app.state.security.settings
    return CsrfTokenResponse(csrf_token=token, header_name=settings.csrf_header_names[0])


@router.post("/password/strength", response_model=PasswordStrengthResponse)
async def password_strength(body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    """Validation result and strength score for registration/password-change forms."""
    assessment = _policy.assess(body.password)
    return PasswordStrengthResponse(**assessment.to_dict())


@router.get("/security/auth-metrics", response_model=AuthMetricsResponse)
async def auth_metrics(request: Request, _key: str = Depends(require_api_key)) -> AuthMetricsResponse:
    """Live auth counters for monitoring. Read-only."""
    layer = request.app.state.security
    return AuthMetricsResponse(
        **layer.auth_monitor.snapshot(),
        tracked_clients=len(layer.store),
    )

"""Request/response schemas for the security endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PasswordStrengthRequest(BaseModel):
    password: str = Field(..., max_length=4096)


class PasswordStrengthResponse(BaseModel):
    valid: bool
    score: int = Field(..., ge=0, le=100)
    label: str
    violation: str | None = None
    message: str | None = None


class CsrfTokenResponse(BaseModel):
    csrf_token: str
    header_name: str


class AuthMetricsResponse(BaseModel):
    total_requests: int
    auth_successes: int
    auth_failures: int
    token_refreshes: int
    suspicious_activity: int
    window_start: float
    uptime_seconds: float
    tracked_clients: int

"""Terminal security-policy errors and their HTTP rendering."""

from __future__ import annotations

import math
from collections.abc import Iterable

from starlette.responses import JSONResponse

from apiguard.config import error_codes
from apiguard.config.error_codes import ErrorCode


class GuardError(Exception):
    """Base class for every rejection raised by the security layer."""

    status_code: int = 400
    error_code: ErrorCode = error_codes.AUTH_UNAUTHORIZED

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.error_code.message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {
            "error": True,
            "error_code": self.error_code.code,
            "message": self.message,
        }

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_payload())


# ── Rate limiting ───────────────────────────────────────────────────────


class RateLimitExceeded(GuardError):
    status_code = 429
    error_code = error_codes.SEC_RATE_LIMIT_EXCEEDED

    def __init__(self, limit: int, retry_after: float, window_seconds: int = 60) -> None:
        self.limit = limit
        self.retry_after = max(0, math.ceil(retry_after))
        per = "minute" if window_seconds == 60 else f"{window_seconds} seconds"
        super().__init__(
            f"Rate limit exceeded. Maximum {limit} requests per {per}. "
            f"Try again in {self.retry_after} seconds."
        )

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["limit"] = self.limit
        payload["retry_after"] = self.retry_after
        return payload

    def to_response(self) -> JSONResponse:
        response = super().to_response()
        response.headers["Retry-After"] = str(self.retry_after)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = "0"
        return response


# ── CSRF ────────────────────────────────────────────────────────────────
# All three render the same public message; ``reason`` is for logs only.


class CsrfError(GuardError):
    status_code = 400
    error_code = error_codes.SEC_CSRF_TOKEN_INVALID
    reason = "csrf_failed"

    def __init__(self) -> None:
        super().__init__(error_codes.SEC_CSRF_TOKEN_INVALID.message)


class CsrfTokenRequired(CsrfError):
    reason = "no_session_token"


class CsrfTokenMissing(CsrfError):
    reason = "no_presented_token"


class CsrfTokenInvalid(CsrfError):
    reason = "token_mismatch"


# ── Password policy ─────────────────────────────────────────────────────


class PasswordPolicyError(GuardError):
    status_code = 400
    error_code = error_codes.REG_WEAK_PASSWORD
    rule = "password"


class PasswordTooShort(PasswordPolicyError):
    rule = "too_short"

    def __init__(self, min_length: int) -> None:
        self.min_length = min_length
        super().__init__(f"Password must be at least {min_length} characters long")


class PasswordTooLong(PasswordPolicyError):
    rule = "too_long"

    def __init__(self, max_length: int) -> None:
        self.max_length = max_length
        super().__init__(f"Password must not exceed {max_length} characters")


class PasswordMissingComplexity(PasswordPolicyError):
    rule = "missing_complexity"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Password must contain at least: {', '.join(self.missing)}")


class PasswordCommon(PasswordPolicyError):
    rule = "common"

    def __init__(self) -> None:
        super().__init__("This password is too common. Please choose a stronger password")


class PasswordSequential(PasswordPolicyError):
    rule = "sequential"

    def __init__(self) -> None:
        super().__init__("Password must not contain obvious character sequences")


class PasswordRepeated(PasswordPolicyError):
    rule = "repeated"

    def __init__(self) -> None:
        super().__init__("Password must not contain too many repeated characters")

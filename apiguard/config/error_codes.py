"""Application error codes shared with the account service and the UI."""

from __future__ import annotations

from typing import NamedTuple


class ErrorCode(NamedTuple):
    code: str
    message: str


# Authentication (1000-1999)
AUTH_INVALID_CREDENTIALS = ErrorCode("AUTH_1001", "Invalid credentials")
AUTH_TOKEN_INVALID = ErrorCode("AUTH_1005", "Invalid token")
AUTH_UNAUTHORIZED = ErrorCode("AUTH_1006", "Unauthorized")
AUTH_REFRESH_FAILED = ErrorCode("AUTH_1010", "Token refresh failed")

# Registration (2000-2999)
REG_WEAK_PASSWORD = ErrorCode("REG_2003", "Password does not meet the minimum requirements")

# Security (5000-5999)
SEC_CSRF_TOKEN_INVALID = ErrorCode("SEC_5002", "Invalid CSRF token")
SEC_RATE_LIMIT_EXCEEDED = ErrorCode("SEC_5003", "Rate limit exceeded")
SEC_SUSPICIOUS_ACTIVITY = ErrorCode("SEC_5004", "Suspicious activity detected")

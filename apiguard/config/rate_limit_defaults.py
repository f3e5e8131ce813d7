"""Default rate-limit tiers and the methods that are counted."""

from __future__ import annotations

import enum


class CallerTier(str, enum.Enum):
    public = "public"
    authenticated = "authenticated"
    admin = "admin"


# Requests per window for each caller tier
PUBLIC_RATE_LIMIT = 10
AUTHENTICATED_RATE_LIMIT = 30
ADMIN_RATE_LIMIT = 100

WINDOW_SECONDS = 60  # fixed window
SWEEP_INTERVAL_SECONDS = 300  # expired-entry cleanup

# Only mutating methods are counted; reads always pass
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def is_mutating(method: str) -> bool:
    """Return True if the HTTP method creates, updates or deletes state."""
    return method.upper() in MUTATING_METHODS

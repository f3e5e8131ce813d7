"""Tiered fixed-window rate limiter for mutating requests."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import Response

from apiguard.config.loader import GuardSettings, get_settings
from apiguard.config.rate_limit_defaults import CallerTier, is_mutating
from apiguard.errors import RateLimitExceeded
from apiguard.middleware.pipeline import Middleware, RequestContext
from apiguard.store.rate_limit import InMemoryRateLimitStore, RateLimitEntry
from apiguard.utils.sanitize import for_log

logger = structlog.get_logger()


def resolve_tier(context: RequestContext, admin_role: str = "admin") -> CallerTier:
    """Admins first, then any authenticated caller, else public."""
    if context.user_role and context.user_role == admin_role:
        return CallerTier.admin
    if context.is_authenticated:
        return CallerTier.authenticated
    return CallerTier.public


class RateLimiter(Middleware):
    """Fixed-window limiter keyed by client address.

    - Only POST/PUT/PATCH/DELETE are counted; reads always pass
    - Limits per window: admin 100, authenticated 30, public 10 (configurable)
    - The first request of a window opens it and is never rejected
    - ``limit`` requests succeed per window; request ``limit + 1`` gets a 429
      with ``Retry-After`` set to the seconds left in the window
    - Injects X-RateLimit-* headers on allowed mutating responses
    """

    def __init__(
        self,
        store: InMemoryRateLimitStore | None = None,
        settings: GuardSettings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.store = store if store is not None else InMemoryRateLimitStore(
            window_seconds=self.settings.rate_limit_window_seconds,
        )

    def tier_limit(self, tier: CallerTier) -> int:
        if tier is CallerTier.admin:
            return self.settings.rate_limit_admin_max
        if tier is CallerTier.authenticated:
            return self.settings.rate_limit_authenticated_max
        return self.settings.rate_limit_public_max

    def check(self, method: str, tier: CallerTier, client_key: str) -> RateLimitEntry | None:
        """Count a request and raise ``RateLimitExceeded`` if it is over the limit.

        Returns None for methods that are not counted, else the updated entry.
        """
        if not is_mutating(method):
            return None

        entry, new_window = self.store.hit(client_key)
        if new_window:
            return entry

        limit = self.tier_limit(tier)
        if entry.count > limit:
            raise RateLimitExceeded(
                limit=limit,
                retry_after=entry.seconds_remaining(self.store.now()),
                window_seconds=self.store.window_seconds,
            )
        return entry

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        tier = resolve_tier(context, self.settings.admin_role)
        try:
            entry = self.check(request.method, tier, context.client_key)
        except RateLimitExceeded as exc:
            logger.warning(
                "rate_limit_exceeded",
                client_key=context.client_key,
                tier=tier.value,
                limit=exc.limit,
                retry_after=exc.retry_after,
                method=request.method,
                path=for_log(request.url.path),
                user_agent=for_log(request.headers.get("user-agent"), 50),
            )
            response = exc.to_response()
            entry = self.store.get(context.client_key)
            if entry is not None:
                response.headers["X-RateLimit-Reset"] = str(int(entry.window_reset_at))
            return response

        if entry is not None:
            limit = self.tier_limit(tier)
            context.extra["rate_limit_max"] = limit
            context.extra["rate_limit_remaining"] = max(0, limit - entry.count)
            context.extra["rate_limit_reset"] = int(entry.window_reset_at)
        return None

    async def process_response(
        self, request: Request, response: Response, context: RequestContext
    ) -> Response:
        """Inject X-RateLimit-* headers into allowed mutating responses."""
        if "rate_limit_max" in context.extra:
            response.headers["X-RateLimit-Limit"] = str(context.extra["rate_limit_max"])
            response.headers["X-RateLimit-Remaining"] = str(context.extra["rate_limit_remaining"])
            response.headers["X-RateLimit-Reset"] = str(context.extra["rate_limit_reset"])
        return response

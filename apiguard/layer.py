"""Process-wide security layer: component instances, pipeline and lifecycle."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from starlette.applications import Starlette
from starlette.middleware.sessions import SessionMiddleware

from apiguard.config.loader import GuardSettings, get_settings
from apiguard.config.route_policies import RouteTable, load_route_table
from apiguard.middleware.asgi import SecurityMiddleware
from apiguard.middleware.auth_monitor import AuthAnomalyMonitor
from apiguard.middleware.context_injector import ContextInjector
from apiguard.middleware.csrf_guard import CsrfGuard
from apiguard.middleware.pipeline import MiddlewarePipeline
from apiguard.middleware.rate_limiter import RateLimiter
from apiguard.store.rate_limit import InMemoryRateLimitStore

logger = structlog.get_logger()


class SecurityLayer:
    """Owns the limiter table, the auth counters and the ordered pipeline.

    Build one per process at startup and pass it by reference. ``start`` and
    ``stop`` bracket the rate-limit sweep task.
    """

    def __init__(
        self,
        settings: GuardSettings | None = None,
        route_table: RouteTable | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        if route_table is None:
            route_table = load_route_table(self.settings.route_policy_file)

        self.store = InMemoryRateLimitStore(
            window_seconds=self.settings.rate_limit_window_seconds,
            clock=clock,
        )
        self.auth_monitor = AuthAnomalyMonitor(settings=self.settings, clock=clock)
        self.rate_limiter = RateLimiter(store=self.store, settings=self.settings)
        self.csrf_guard = CsrfGuard(route_table=route_table, settings=self.settings)
        self.pipeline = self._build_pipeline()

    def _build_pipeline(self) -> MiddlewarePipeline:
        """Build the ordered pipeline.

        The auth monitor sits ahead of the limiter and the CSRF guard so it
        also observes requests they reject.
        """
        pipeline = MiddlewarePipeline()
        pipeline.add(ContextInjector())   # 0: request ID, client key, identity
        pipeline.add(self.auth_monitor)   # 1: timing + counters on auth routes
        pipeline.add(self.rate_limiter)   # 2: mutating methods only
        pipeline.add(self.csrf_guard)     # 3: state-changing methods
        return pipeline

    def apply_settings(self, settings: GuardSettings) -> None:
        """Swap in reloaded settings on every component.

        Tier limits, CSRF names and auth thresholds take effect on the next
        request. A new window length applies to entries created after the
        swap; a new sweep interval applies on the next ``start``.
        """
        previous = self.settings
        self.settings = settings
        self.rate_limiter.settings = settings
        self.csrf_guard.settings = settings
        self.auth_monitor.settings = settings
        self.store.window_seconds = settings.rate_limit_window_seconds
        if settings.route_policy_file != previous.route_policy_file:
            self.csrf_guard.route_table = load_route_table(settings.route_policy_file)
        logger.info(
            "security_settings_applied",
            public_max=settings.rate_limit_public_max,
            authenticated_max=settings.rate_limit_authenticated_max,
            admin_max=settings.rate_limit_admin_max,
        )

    async def start(self) -> None:
        await self.store.start_sweeper(self.settings.rate_limit_sweep_seconds)

    async def stop(self) -> None:
        await self.store.stop_sweeper()


def install_security(app: Starlette, layer: SecurityLayer) -> None:
    """Wrap ``app`` with the pipeline and a session container for CSRF tokens.

    The session middleware is added last so it runs outermost.
    """
    settings = layer.settings
    app.add_middleware(SecurityMiddleware, pipeline=layer.pipeline)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie_name,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.state.security = layer
    logger.info("security_layer_installed", middleware=[mw.name for mw in layer.pipeline])

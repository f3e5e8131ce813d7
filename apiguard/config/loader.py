"""Env var config loading with pydantic-settings."""

from __future__ import annotations

import signal
from collections.abc import Callable
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

from apiguard.config import rate_limit_defaults as rl

logger = structlog.get_logger()

_ROUTE_POLICIES_PATH = Path(__file__).parent / "route_policies.yaml"


class GuardSettings(BaseSettings):
    """Security layer configuration, overridden by ``APIGUARD_*`` env vars."""

    model_config = SettingsConfigDict(
        env_prefix="APIGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    listen_port: int = 8000
    log_level: str = "info"
    log_json: bool = True

    # Session container (Starlette SessionMiddleware)
    session_secret: str = "change-me"
    session_cookie_name: str = "apiguard_session"

    # Bearer key for the monitoring endpoint; empty disables it
    api_key: str = ""

    # Rate limiting (fixed window, mutating methods only)
    rate_limit_public_max: int = rl.PUBLIC_RATE_LIMIT
    rate_limit_authenticated_max: int = rl.AUTHENTICATED_RATE_LIMIT
    rate_limit_admin_max: int = rl.ADMIN_RATE_LIMIT
    rate_limit_window_seconds: int = rl.WINDOW_SECONDS
    rate_limit_sweep_seconds: int = rl.SWEEP_INTERVAL_SECONDS
    admin_role: str = rl.CallerTier.admin.value

    # CSRF double-submit cookie
    csrf_cookie_name: str = "csrf-token"
    csrf_cookie_max_age: int = 24 * 60 * 60
    csrf_header_names: list[str] = ["x-csrf-token", "x-xsrf-token"]
    csrf_body_field: str = "_csrf"
    route_policy_file: str = str(_ROUTE_POLICIES_PATH)

    # Auth anomaly monitor
    auth_route_prefix: str = "/auth/"
    auth_slow_request_ms: int = 1000
    auth_rollup_seconds: int = 3600

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


_settings: GuardSettings | None = None


def get_settings() -> GuardSettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> GuardSettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = GuardSettings()
    logger.info(
        "config_loaded",
        environment=_settings.environment,
        port=_settings.listen_port,
    )
    return _settings


def register_reload_handler(on_reload: Callable[[GuardSettings], None] | None = None) -> None:
    """Register SIGHUP handler for hot-reload of configuration.

    ``on_reload`` receives the fresh settings so components that were built
    with the old instance can switch over.
    """
    import threading

    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        settings = load_settings()
        if on_reload is not None:
            on_reload(settings)

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")

"""FastAPI application hosting the security layer."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from apiguard.api.health import router as health_router
from apiguard.api.security_routes import router as security_router
from apiguard.config.loader import GuardSettings, load_settings, register_reload_handler
from apiguard.layer import SecurityLayer, install_security
from apiguard.logging_config import setup_logging

logger = structlog.get_logger()


def create_app(settings: GuardSettings | None = None, layer: SecurityLayer | None = None) -> FastAPI:
    """Build the app; the security layer is created once and shared by reference."""
    if settings is None:
        settings = load_settings()
    if layer is None:
        layer = SecurityLayer(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(log_level=settings.log_level, json_format=settings.log_json)
        register_reload_handler(on_reload=layer.apply_settings)
        await layer.start()
        logger.info("apiguard_started", environment=settings.environment, port=settings.listen_port)

        yield

        logger.info("apiguard_shutting_down")
        await layer.stop()
        logger.info("apiguard_stopped")

    app = FastAPI(title="Marketplace API security layer", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(security_router)
    install_security(app, layer)
    return app

"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from apiguard import __version__

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Liveness plus the state of the in-process security components."""
    layer = request.app.state.security
    return {
        "status": "healthy",
        "version": __version__,
        "rate_limit_sweeper": "running" if layer.store.sweeper_running else "stopped",
        "tracked_clients": len(layer.store),
        "middleware": [mw.name for mw in layer.pipeline if layer.pipeline.is_enabled(mw.name)],
    }

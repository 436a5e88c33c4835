"""Configuration and health endpoints."""

import time

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from prospector.web.state import AppState, get_state

router = APIRouter()

_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    exa_configured: bool
    quota_enforced: bool
    active_streams: int
    cached_websets: int
    version: str
    uptime_seconds: int


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_state)):
    """Health check endpoint."""
    from prospector import __version__

    configured = bool(state.settings.exa_api_key)
    return HealthResponse(
        status="healthy" if configured else "degraded",
        exa_configured=configured,
        quota_enforced=not state.settings.skip_quota_check,
        active_streams=len(state.registry),
        cached_websets=len(state.cache),
        version=__version__,
        uptime_seconds=int(time.time() - _start_time),
    )


@router.get("/cache")
async def cache_stats(state: AppState = Depends(get_state)):
    """Webset cache statistics."""
    return state.cache.stats()

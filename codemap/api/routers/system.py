"""
System Router - Health and status endpoints.

Provides REST API endpoints for system monitoring. Prometheus metrics are
exposed separately at /metrics by the instrumentator.
"""

import time

from fastapi import APIRouter, Depends, Request

from codemap import __version__
from codemap.api.dependencies import get_storage
from codemap.api.models import HealthResponse, ServiceHealth, StatusResponse
from codemap.storage import HybridStorage


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def get_health(storage: HybridStorage = Depends(get_storage)) -> HealthResponse:
    """Get storage health status.

    Pings the primary and, when configured, the replica.

    Returns:
        HealthResponse with overall status and individual backend states:
        - "healthy": All backends are up
        - "degraded": Some backends are down
        - "unhealthy": All backends are down
    """
    report = await storage.health()
    return HealthResponse(
        status=report.status,
        timestamp=report.timestamp,
        services=[
            ServiceHealth(
                name=backend.name,
                role=backend.role,
                healthy=backend.healthy,
                latency_ms=backend.latency_ms,
                error=backend.error,
            )
            for backend in report.backends
        ],
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(
    request: Request,
    storage: HybridStorage = Depends(get_storage),
) -> StatusResponse:
    """Get API status information."""
    start_time = getattr(request.app.state, "start_time", time.time())
    uptime_seconds = time.time() - start_time
    config = getattr(request.app.state, "config", None)

    return StatusResponse(
        version=__version__,
        uptime_seconds=round(uptime_seconds, 2),
        backend=config.backend if config is not None else "unknown",
        pending_background_tasks=storage.pending_background_tasks,
    )

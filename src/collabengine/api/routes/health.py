"""
Health and metrics endpoints.

  GET /health  -- Liveness probe (always returns 200 if process is alive)
  GET /metrics -- Session totals, spend and provider limiter state
"""

import logging
import time

from fastapi import APIRouter, Request

from ..models.responses import HealthResponse, MetricsResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def liveness(request: Request) -> HealthResponse:
    """Liveness probe -- returns 200 if the process is running."""
    service = request.app.state.service
    start_time = getattr(request.app.state, "start_time", time.time())
    client = getattr(request.app.state, "client", None)
    return HealthResponse(
        status="healthy" if client is not None else "degraded",
        uptime_seconds=round(time.time() - start_time, 1),
        active_sessions=len(service.active_sessions),
        providers_configured=list(getattr(client, "available_providers", []) or []),
    )


@router.get("/metrics", response_model=MetricsResponse)
async def metrics(request: Request) -> MetricsResponse:
    """Basic operational metrics."""
    snapshot = request.app.state.service.snapshot()
    stats = snapshot["stats"]
    return MetricsResponse(
        sessions_started=stats["sessions_started"],
        sessions_completed=stats["sessions_completed"],
        sessions_failed=stats["sessions_failed"],
        sessions_refused=stats["sessions_refused"],
        sessions_aborted=stats["sessions_aborted"],
        active_sessions=snapshot["active_sessions"],
        total_spent_usd=stats["total_spent_usd"],
        total_agent_calls=stats["total_agent_calls"],
        average_duration_seconds=stats["average_duration_seconds"],
        limiter=snapshot["limiter"],
    )

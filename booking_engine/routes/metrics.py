"""
Prometheus metrics endpoint.

Example:
    GET /metrics

    Response:
        # HELP booking_engine_sync_runs_total Total number of external calendar sync runs by outcome
        # TYPE booking_engine_sync_runs_total counter
        booking_engine_sync_runs_total{platform="airbnb",status="success"} 42.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """Expose all registered metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

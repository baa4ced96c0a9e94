from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics() -> Response:
    """
    Expose Prometheus metrics for this service.

    Covers HTTP traffic, workflow node timings and the suggestion pipeline
    counters (tool invocations, duplicates, approvals, failed turns).
    """
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)

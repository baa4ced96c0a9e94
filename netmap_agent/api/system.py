from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from .. import __version__
from ..config import Settings, get_settings
from ..dependencies import get_logger, get_redis_client, get_stream_source

router = APIRouter(tags=["system"])


@router.get("/health", summary="Liveness check")
async def health() -> Dict[str, str]:
    """
    Simple liveness check to verify the process is running.
    """
    return {"status": "ok"}


@router.get("/ready", summary="Readiness check")
async def ready(
    settings: Settings = Depends(get_settings),
    logger=Depends(get_logger),
) -> Dict[str, Any]:
    """
    Readiness probe: session backend connectivity and LLM configuration.

    A missing API key is reported but does not degrade readiness; chat
    turns answer 503 until it is configured.
    """
    log = logger
    status: Dict[str, Any] = {
        "status": "ok",
        "sessions": settings.session_backend,
        "redis": "unknown",
        "llm": "configured" if get_stream_source() is not None else "not_configured",
    }

    # Redis check
    redis_client = get_redis_client()
    if redis_client is None:
        status["redis"] = "disabled"
    else:
        try:
            await redis_client.ping()
            status["redis"] = "ok"
        except Exception as exc:  # pragma: no cover
            log.error("ready_redis_check_failed", error=str(exc))
            status["redis"] = f"error: {exc}"
            status["status"] = "degraded"

    return status


@router.get("/version", summary="Service version")
async def version(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    """
    Report application version and environment.
    """
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "env": settings.env,
    }

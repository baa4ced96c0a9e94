from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager

import structlog

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .api.http_metrics import API_REQUESTS, API_REQUEST_DURATION
from .config import get_settings
from .dependencies import close_resources, init_resources
from .topology.registry import RegistryWriteError

http_logger = structlog.get_logger("http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the registry, session store, LLM stream source and turn workflow
    on startup; close the LLM and Redis clients on shutdown.
    """
    await init_resources()
    try:
        yield
    finally:
        await close_resources()


def _route_label(request: Request) -> str:
    """
    Path label for HTTP metrics.

    Uses the matched route template (`/api/chat/sessions/{session_id}`) so
    session ids never become label values; unmatched requests share one
    label.
    """
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    return template or "unmatched"


def create_app() -> FastAPI:
    """
    Application factory for the NetMap assistant API.
    """
    settings = get_settings()
    api_prefix = settings.api_prefix.rstrip("/")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        docs_url=f"{api_prefix}/docs",
        openapi_url=f"{api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Session-ID"],
    )

    # ------------------------------------------------------------------ #
    # Correlation ids
    # ------------------------------------------------------------------ #
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        # Every log line emitted while serving this request carries the id,
        # including the turn workflow nodes.
        structlog.contextvars.bind_contextvars(request_id=request_id)
        http_logger.info("http_request_start", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
            http_logger.info(
                "http_request_end",
                path=request.url.path,
                status_code=response.status_code,
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response

    # ------------------------------------------------------------------ #
    # Prometheus HTTP metrics
    # ------------------------------------------------------------------ #
    @app.middleware("http")
    async def http_metrics_middleware(request: Request, call_next):
        """
        Records netmap_api_requests_total{path,method,status} and
        netmap_api_request_duration_seconds{path,method}.

        For SSE chat turns the duration covers response setup only; the
        stream itself is timed by netmap_llm_stream_duration_seconds.
        """
        start = time.perf_counter()
        status_label = "500"
        try:
            response = await call_next(request)
            status_label = str(response.status_code)
            return response
        finally:
            path = _route_label(request)
            method = request.method.upper()
            API_REQUESTS.labels(path=path, method=method, status=status_label).inc()
            API_REQUEST_DURATION.labels(path=path, method=method).observe(
                time.perf_counter() - start
            )

    # A refused registry write leaves the topology untouched; report it as
    # a conflict wherever it surfaces.
    @app.exception_handler(RegistryWriteError)
    async def registry_write_error_handler(request: Request, exc: RegistryWriteError):
        http_logger.warning("registry_write_refused", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    app.include_router(api_router, prefix=api_prefix)

    return app


# uvicorn netmap_agent.main:app --reload
app = create_app()

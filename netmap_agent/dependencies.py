from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis
import structlog
from fastapi import Depends, HTTPException, status

from .cache.redis_client import RedisCache, create_redis_client
from .config import Settings, get_settings
from .llm.client import NOT_CONFIGURED_ERROR, AnthropicStreamSource
from .logging_config import setup_logging
from .orchestrator.approval import ApprovalService
from .orchestrator.sessions import InMemorySessionStore, RedisSessionStore, SessionStore
from .orchestrator.turn import ChatTurnService, StreamSource
from .topology.registry import InMemoryTopologyRegistry

# Global singletons initialized at startup
_registry: InMemoryTopologyRegistry | None = None
_session_store: SessionStore | None = None
_redis_client: redis.Redis | None = None
_stream_source: AnthropicStreamSource | None = None
_graph_app: Any = None  # LangGraph compiled graph


async def init_resources() -> None:
    """
    Initialize shared resources:

    - structlog logging
    - topology registry
    - session store (memory, or Redis when configured)
    - Anthropic stream source (optional; chat turns answer 503 without it)
    - LangGraph compiled turn workflow
    """
    global _registry, _session_store, _redis_client, _stream_source, _graph_app

    # Logging first so everything after can log nicely
    setup_logging()
    log = structlog.get_logger("startup")
    settings = get_settings()

    log.info("initializing_resources", env=settings.env)

    _registry = InMemoryTopologyRegistry()

    # Sessions
    if settings.session_backend == "redis":
        if not settings.redis_url:
            raise RuntimeError("session_backend=redis requires NETMAP_AGENT_REDIS_URL")
        _redis_client = create_redis_client(settings.redis_url, decode_responses=True)
        _session_store = RedisSessionStore(
            RedisCache(_redis_client),
            ttl_seconds=settings.session_ttl_seconds,
        )
        log.info("session_store_initialized", backend="redis", redis_url=settings.redis_url)
    else:
        _redis_client = None
        _session_store = InMemorySessionStore()
        log.info("session_store_initialized", backend="memory")

    # LLM
    if settings.anthropic_api_key:
        _stream_source = AnthropicStreamSource(settings)
        log.info("llm_client_initialized", model=settings.llm_model)
    else:
        _stream_source = None
        log.warning("llm_client_disabled", reason="no anthropic_api_key")

    # LangGraph graph: import lazily to avoid circular imports
    from .orchestrator.workflow import build_workflow

    _graph_app = build_workflow()
    log.info("graph_app_initialized")


async def close_resources() -> None:
    """
    Clean up global resources gracefully at shutdown.
    """
    global _stream_source, _redis_client
    log = structlog.get_logger("shutdown")

    if _stream_source is not None:
        await _stream_source.close()
        _stream_source = None
        log.info("llm_client_closed")

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        log.info("redis_closed")

    # graph_app and the in-memory registry need no explicit cleanup.


def get_settings_dep() -> Settings:
    """
    FastAPI dependency wrapper for Settings.
    """
    return get_settings()


def get_registry() -> InMemoryTopologyRegistry:
    if _registry is None:
        raise RuntimeError("Topology registry not initialized. Did you call init_resources()?")
    return _registry


def get_session_store() -> SessionStore:
    if _session_store is None:
        raise RuntimeError("Session store not initialized. Did you call init_resources()?")
    return _session_store


def get_redis_client() -> redis.Redis | None:
    """
    FastAPI dependency for Redis client (can be None if disabled).
    """
    return _redis_client


def get_stream_source() -> Optional[StreamSource]:
    """
    The LLM stream source, or None if no API key is configured.
    """
    return _stream_source


def get_graph_app() -> Any:
    """
    FastAPI dependency that returns the compiled LangGraph graph.

    Raises RuntimeError if it was not initialized.
    """
    if _graph_app is None:
        raise RuntimeError("graph_app not initialized. Did you call init_resources()?")

    return _graph_app


def get_turn_service(
    settings: Settings = Depends(get_settings_dep),
    registry: InMemoryTopologyRegistry = Depends(get_registry),
    sessions: SessionStore = Depends(get_session_store),
    source: Optional[StreamSource] = Depends(get_stream_source),
    graph_app: Any = Depends(get_graph_app),
) -> ChatTurnService:
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=NOT_CONFIGURED_ERROR,
        )
    return ChatTurnService(
        settings=settings,
        registry=registry,
        sessions=sessions,
        source=source,
        workflow=graph_app,
    )


def get_approval_service(
    registry: InMemoryTopologyRegistry = Depends(get_registry),
    sessions: SessionStore = Depends(get_session_store),
) -> ApprovalService:
    return ApprovalService(registry, sessions)


def get_logger() -> structlog.BoundLogger:
    """
    FastAPI dependency returning a structlog logger.

    Request-specific context (like request_id) is bound by the middleware.
    """
    return structlog.get_logger("service")


def get_context_logger(settings: Settings = Depends(get_settings_dep)) -> structlog.BoundLogger:
    """
    Logger bound with basic contextual info (env, app_name).
    """
    logger = structlog.get_logger("service")
    return logger.bind(env=settings.env, app=settings.app_name)

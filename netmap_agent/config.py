from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    Prefix: NETMAP_AGENT_

    Examples:
      NETMAP_AGENT_ENV=dev
      NETMAP_AGENT_ANTHROPIC_API_KEY=sk-ant-...
      NETMAP_AGENT_SESSION_BACKEND=redis
    """

    model_config = SettingsConfigDict(
        env_prefix="NETMAP_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # General
    env: Literal["dev", "staging", "prod"] = Field(
        "dev",
        description="Deployment environment name.",
    )
    app_name: str = Field(
        "NetMap Assistant Service",
        description="Human-friendly app name.",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode for FastAPI & logging.",
    )
    log_level: str = Field(
        "INFO",
        description="Base log level (DEBUG, INFO, WARNING, ERROR).",
    )

    # HTTP
    host: str = Field(
        "0.0.0.0",
        description="Bind host.",
    )
    port: int = Field(
        8000,
        description="Bind port.",
    )
    api_prefix: str = Field(
        "/api",
        description="Base prefix for API routes.",
    )
    cors_allow_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware.",
    )

    # LLM (Anthropic Messages API)
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key. If not set, chat turns report the AI service as not configured.",
    )
    llm_model: str = Field(
        "claude-sonnet-4-5",
        description="Model used for chat turns.",
    )
    llm_max_tokens: int = Field(
        8192,
        description="Max output tokens per turn; large device batches need headroom.",
    )
    llm_temperature: float | None = Field(
        default=None,
        description="Sampling temperature; None uses the API default.",
    )
    enable_tools: bool = Field(
        True,
        description="Send suggestion tool schemas with each turn.",
    )

    # Chat
    max_message_length: int = Field(
        2000,
        description="Maximum characters accepted in a single user message.",
    )
    history_limit: int = Field(
        20,
        description="Number of prior user/assistant messages replayed to the LLM.",
    )
    context_detail_level: Literal["auto", "summary", "medium", "full"] = Field(
        "auto",
        description="Detail level of the network context sent with each turn.",
    )
    large_topology_threshold: int = Field(
        50,
        description="Device count above which 'auto' context detail becomes 'summary'.",
    )

    # Sessions (pending approvals + history)
    session_backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Where per-session pending state and history are kept.",
    )
    redis_url: str | None = Field(
        default=None,
        description="Redis URL; required when session_backend=redis.",
    )
    session_ttl_seconds: int = Field(
        86400,
        description="TTL for Redis-backed session state.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached singleton settings object.

    Usage:
        from netmap_agent.config import get_settings
        settings = get_settings()
    """
    return Settings()

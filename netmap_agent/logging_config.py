from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping

import structlog

from . import __version__
from .config import Settings, get_settings

# Longest string value written to a log line. Assistant text, tool JSON and
# network context can run to many kilobytes.
MAX_FIELD_LENGTH = 2000

Processor = Callable[[Any, str, MutableMapping[str, Any]], MutableMapping[str, Any]]


def _app_context(settings: Settings) -> Processor:
    context = {"app": settings.app_name, "env": settings.env, "version": __version__}

    def add_app_context(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]):
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_app_context


def _clip_long_values(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]):
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            event_dict[key] = f"{value[:MAX_FIELD_LENGTH]}...(+{len(value) - MAX_FIELD_LENGTH} chars)"
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog + stdlib logging.

    JSON lines by default; a human-readable console renderer when `debug`
    is on. Called once from init_resources().
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)
    # anthropic's HTTP client logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = (
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # request_id from the HTTP middleware
            _app_context(settings),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _clip_long_values,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

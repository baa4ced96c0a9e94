from __future__ import annotations

"""
Cache utilities for the netmap agent.

This package provides:
- A thin async Redis client factory
- A RedisCache helper with convenience methods for string/JSON caching

The global Redis client is managed in netmap_agent/dependencies.py and is
wrapped in a RedisCache by the Redis session store.
"""

from .redis_client import RedisCache, create_redis_client

__all__ = [
    "RedisCache",
    "create_redis_client",
]

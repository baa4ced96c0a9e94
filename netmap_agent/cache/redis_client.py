from __future__ import annotations

import json
from typing import Any, Callable, Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger("cache.redis")

DEFAULT_PREFIX = "netmap-agent:"


def create_redis_client(
    redis_url: str,
    *,
    decode_responses: bool = False,
) -> redis.Redis:
    """
    Async Redis client for `redis_url`.

    dependencies.init_resources() creates the process-wide one with
    decode_responses=True so stored session JSON comes back as str.
    """
    return redis.from_url(redis_url, decode_responses=decode_responses)


class RedisCache:
    """
    JSON values with optional TTL under namespaced keys.

    The client's lifecycle belongs to the caller (see
    dependencies.close_resources()); this wrapper never closes it.
    """

    def __init__(self, client: redis.Redis, *, prefix: str = DEFAULT_PREFIX):
        self._client = client
        self._prefix = prefix if prefix.endswith(":") else f"{prefix}:"

    def key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Decoded value stored at `key`, or None when absent or not valid JSON.
        """
        raw = await self._client.get(self.key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("cache_json_decode_failed", key=self.key(key), error=str(exc))
            return None

    async def set_json(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: Optional[int] = None,
        encoder: Callable[[Any], str] | None = None,
    ) -> None:
        """
        Store `value` at `key`. `encoder` turns non-JSON-native values
        (e.g. pydantic models) into a JSON string.
        """
        raw = encoder(value) if encoder is not None else json.dumps(value, separators=(",", ":"))
        if ttl_seconds:
            await self._client.set(self.key(key), raw, ex=ttl_seconds)
        else:
            await self._client.set(self.key(key), raw)

    async def delete(self, key: str) -> None:
        await self._client.delete(self.key(key))

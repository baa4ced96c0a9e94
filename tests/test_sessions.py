from __future__ import annotations

import json
from typing import Dict, Optional

from netmap_agent.cache.redis_client import RedisCache
from netmap_agent.orchestrator.sessions import InMemorySessionStore, RedisSessionStore, SessionState


class FakeRedis:
    """Just enough of redis.asyncio.Redis for RedisCache."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.ttls[key] = ex

    async def delete(self, key):
        self.values.pop(key, None)


def test_llm_history_filters_and_trims():
    state = SessionState(session_id="s1")
    state.add_message("assistant", "Welcome!")
    state.add_message("user", "one")
    state.add_message("system", "Added AP1 to your network")
    state.add_message("assistant", "two")
    state.add_message("user", "three")

    assert state.llm_history(limit=20) == [
        {"role": "user", "content": "one"},
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]
    # never starts with an assistant turn
    assert state.llm_history(limit=2) == [{"role": "user", "content": "three"}]


async def test_in_memory_store_round_trip():
    store = InMemorySessionStore()
    state = await store.load("s1")
    state.add_message("user", "hello")
    await store.save(state)

    loaded = await store.load("s1")

    assert loaded.messages[0].content == "hello"
    assert loaded is not state


async def test_redis_store_uses_namespaced_key_and_ttl():
    client = FakeRedis()
    store = RedisSessionStore(RedisCache(client), ttl_seconds=60)
    state = await store.load("s1")
    state.add_message("user", "hello")

    await store.save(state)

    assert list(client.values) == ["netmap-agent:session:s1"]
    assert client.ttls["netmap-agent:session:s1"] == 60
    assert (await store.load("s1")).messages[0].content == "hello"


async def test_redis_store_treats_unreadable_state_as_new():
    client = FakeRedis()
    client.values["netmap-agent:session:s1"] = json.dumps({"messages": "nope"})
    store = RedisSessionStore(RedisCache(client))

    state = await store.load("s1")

    assert state.session_id == "s1"
    assert state.messages == []


async def test_redis_store_handles_corrupt_json():
    client = FakeRedis()
    client.values["netmap-agent:session:s1"] = "{not json"
    store = RedisSessionStore(RedisCache(client))

    assert (await store.load("s1")).messages == []


async def test_delete_clears_history_and_pending():
    client = FakeRedis()
    store = RedisSessionStore(RedisCache(client))
    state = await store.load("s1")
    state.add_message("user", "hello")
    await store.save(state)

    await store.delete("s1")

    assert client.values == {}
    assert (await store.load("s1")).messages == []

    memory = InMemorySessionStore()
    await memory.save(state)
    await memory.delete("s1")
    await memory.delete("missing")
    assert (await memory.load("s1")).messages == []

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from netmap_agent.config import Settings
from netmap_agent.orchestrator.sessions import InMemorySessionStore
from netmap_agent.streaming.events import BlockStart, BlockStop, JsonDelta, TextDelta
from netmap_agent.suggestions.placement import PlacementEngine
from netmap_agent.topology.models import Building, Connection, Device, TopologySnapshot, Vlan
from netmap_agent.topology.registry import InMemoryTopologyRegistry


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class FakeStreamSource:
    """Replays canned protocol events; optionally fails after them."""

    def __init__(self, events: List[Any], error: Optional[Exception] = None):
        self.events = events
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def stream(self, messages, network_context=None):
        self.calls.append({"messages": list(messages), "network_context": network_context})
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


def tool_events(index: int, tool_id: str, name: str, payload: Dict[str, Any]) -> List[Any]:
    """start/delta/delta/stop for one tool block, JSON split mid-string."""
    raw = json.dumps(payload)
    cut = len(raw) // 2
    return [
        BlockStart(index=index, block_type="tool_use", block_id=tool_id, tool_name=name),
        JsonDelta(index=index, fragment=raw[:cut]),
        JsonDelta(index=index, fragment=raw[cut:]),
        BlockStop(index=index),
    ]


def text_events(index: int, *chunks: str) -> List[Any]:
    return [
        BlockStart(index=index, block_type="text"),
        *[TextDelta(index=index, text=chunk) for chunk in chunks],
        BlockStop(index=index),
    ]


@pytest.fixture
def make_tool_events() -> Callable[..., List[Any]]:
    return tool_events


@pytest.fixture
def make_text_events() -> Callable[..., List[Any]]:
    return text_events


@pytest.fixture
def fixed_random() -> FixedRandom:
    return FixedRandom()


@pytest.fixture
def placement() -> PlacementEngine:
    return PlacementEngine(FixedRandom())


@pytest.fixture
def settings() -> Settings:
    return Settings(env="dev", history_limit=20, max_message_length=2000)


@pytest.fixture
def snapshot() -> TopologySnapshot:
    devices = [
        Device(id="dev-fw", name="fw-1", type="firewall", ip="10.0.0.1", x=400, y=100),
        Device(id="dev-core", name="core-1", type="core", ip="10.0.0.2", x=400, y=200),
        Device(
            id="dev-sw1",
            name="SW-1",
            type="switch",
            ip="10.0.0.10",
            mac="AA:BB:CC:DD:EE:01",
            status="up",
            x=350,
            y=350,
            vlans=[1],
            hardware={"manufacturer": "Cisco", "firmware": {"version": "2.0"}},
        ),
        Device(id="dev-ap", name="ap-lobby", type="ap", x=300, y=500, vlans=[1]),
    ]
    connections = [
        Connection(id="conn-1", from_="dev-fw", to="dev-core"),
        Connection(id="conn-2", from_="dev-core", to="dev-sw1", speed="10G"),
    ]
    return TopologySnapshot(
        devices={d.id: d for d in devices},
        connections={c.id: c for c in connections},
        vlans={1: Vlan(id=1, name="Default"), 10: Vlan(id=10, name="Users")},
        buildings={"b-1": Building(id="b-1", name="HQ", x=0, y=0, width=400, height=300)},
    )


@pytest.fixture
def registry(snapshot: TopologySnapshot) -> InMemoryTopologyRegistry:
    return InMemoryTopologyRegistry(snapshot)


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()

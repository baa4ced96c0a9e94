from __future__ import annotations

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeStreamSource

from netmap_agent import dependencies
from netmap_agent.main import create_app
from netmap_agent.orchestrator.workflow import build_workflow
from netmap_agent.suggestions.models import PendingState
from netmap_agent.suggestions.proposals import ProposalRequest, build_change_proposal


@pytest.fixture
def source():
    return FakeStreamSource([])


@pytest.fixture
def app(settings, registry, sessions, source, placement):
    app = create_app()
    app.dependency_overrides[dependencies.get_settings_dep] = lambda: settings
    app.dependency_overrides[dependencies.get_registry] = lambda: registry
    app.dependency_overrides[dependencies.get_session_store] = lambda: sessions
    app.dependency_overrides[dependencies.get_stream_source] = lambda: source
    app.dependency_overrides[dependencies.get_graph_app] = lambda: build_workflow(placement)
    return app


@pytest.fixture
def client(app):
    # No context manager: the lifespan (real resources) is not started.
    return TestClient(app)


def _frames(body: str):
    frames = []
    for line in body.splitlines():
        if line.startswith("data: "):
            payload = line[len("data: "):]
            frames.append(payload if payload == "[DONE]" else json.loads(payload))
    return frames


def test_health_and_version(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/api/version").json()["version"] == "0.1.0"


def test_chat_turn_streams_sse_frames(client, source, sessions, make_text_events, make_tool_events):
    source.events = [
        *make_text_events(0, "Found ", "AP1."),
        *make_tool_events(1, "toolu_1", "suggest_device_addition", {"device": {"name": "AP1", "type": "ap"}}),
    ]

    response = client.post("/api/chat/turn", json={"session_id": "s1", "message": "add AP1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-session-id"] == "s1"
    frames = _frames(response.text)
    assert frames[0] == {"type": "text", "text": "Found "}
    assert frames[1] == {"type": "text", "text": "AP1."}
    assert frames[2]["type"] == "outcome"
    assert frames[2]["session_id"] == "s1"
    assert frames[2]["outcome"]["kind"] == "single_suggestion"
    assert frames[-1] == "[DONE]"


def test_chat_turn_without_session_id_creates_one(client, source, make_text_events):
    source.events = make_text_events(0, "Hello!")

    response = client.post("/api/chat/turn", json={"message": "hi"})

    session_id = response.headers["x-session-id"]
    assert session_id
    assert _frames(response.text)[-2]["session_id"] == session_id


def test_chat_turn_rejects_blank_and_long_messages(client, settings):
    assert client.post("/api/chat/turn", json={"message": "   "}).status_code == 400

    too_long = "x" * (settings.max_message_length + 1)
    response = client.post("/api/chat/turn", json={"message": too_long})
    assert response.status_code == 400
    assert "too long" in response.json()["detail"]


def test_chat_turn_without_llm_is_unavailable(app, client):
    app.dependency_overrides[dependencies.get_stream_source] = lambda: None

    response = client.post("/api/chat/turn", json={"message": "hi"})

    assert response.status_code == 503


def test_stream_failure_is_reported_in_band(client, source, make_text_events):
    source.events = make_text_events(0, "Working")
    source.error = ConnectionError("boom")

    response = client.post("/api/chat/turn", json={"session_id": "s1", "message": "add AP1"})

    assert response.status_code == 200
    outcome = _frames(response.text)[-2]["outcome"]
    assert outcome["failed"]
    assert outcome["restored_input"] == "add AP1"


def test_session_endpoint(client, source, make_text_events):
    source.events = make_text_events(0, "Hello!")
    client.post("/api/chat/turn", json={"session_id": "s1", "message": "hi"})

    body = client.get("/api/chat/sessions/s1").json()

    assert [m["role"] for m in body["messages"]] == ["user", "assistant"]
    assert body["pending"]["suggestion"] is None


def test_approve_flow(client, registry, source, make_tool_events):
    source.events = make_tool_events(
        0, "toolu_1", "suggest_device_addition", {"device": {"name": "AP1", "type": "ap"}}
    )
    client.post("/api/chat/turn", json={"session_id": "s1", "message": "add AP1"})

    response = client.post("/api/chat/sessions/s1/suggestion/approve")

    assert response.status_code == 200
    assert response.json() == {"session_id": "s1", "message": "Added AP1 to your network"}
    assert registry.snapshot().device_by_name("AP1") is not None

    assert client.post("/api/chat/sessions/s1/suggestion/approve").status_code == 404


def test_blocked_change_is_conflict(client, sessions, snapshot):
    change = build_change_proposal(
        ProposalRequest(device_ids=["dev-sw1"], updates={"status": "exploded"}, summary="x"),
        snapshot,
    )

    async def seed():
        session = await sessions.load("s1")
        session.pending = PendingState(change=change)
        await sessions.save(session)

    asyncio.run(seed())

    response = client.post("/api/chat/sessions/s1/change/approve")

    assert response.status_code == 409
    assert "status" in response.json()["detail"]["errors"]
    assert client.post("/api/chat/sessions/s1/change/decline").json()["message"] == (
        "Change cancelled - no modifications made"
    )


def test_decline_endpoints_without_pending_items(client):
    for kind in ("suggestion", "batch", "change", "connection", "vlan"):
        assert client.post(f"/api/chat/sessions/s1/{kind}/decline").status_code == 404


def test_topology_snapshot(client):
    body = client.get("/api/topology").json()

    assert {d["id"] for d in body["devices"]} == {"dev-fw", "dev-core", "dev-sw1", "dev-ap"}
    conn = next(c for c in body["connections"] if c["id"] == "conn-2")
    assert (conn["from"], conn["to"]) == ("dev-core", "dev-sw1")
    assert {v["id"] for v in body["vlans"]} == {1, 10}


def test_metrics_endpoint(client):
    response = client.get("/api/metrics")

    assert response.status_code == 200
    assert "netmap_api_requests_total" in response.text


def test_clear_session(client, source, make_tool_events):
    source.events = make_tool_events(
        0, "toolu_1", "suggest_device_addition", {"device": {"name": "AP1", "type": "ap"}}
    )
    client.post("/api/chat/turn", json={"session_id": "s1", "message": "add AP1"})

    assert client.delete("/api/chat/sessions/s1").status_code == 204

    body = client.get("/api/chat/sessions/s1").json()
    assert body["messages"] == []
    assert body["pending"]["suggestion"] is None

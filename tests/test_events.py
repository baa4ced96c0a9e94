from __future__ import annotations

from netmap_agent.streaming.events import BlockStart, JsonDelta, TextDelta, parse_event


def test_parse_event_dispatches_on_kind():
    event = parse_event({"kind": "json_delta", "index": 2, "fragment": '{"a":'})

    assert isinstance(event, JsonDelta)
    assert event.fragment == '{"a":'


def test_parse_block_start_with_tool_fields():
    event = parse_event(
        {
            "kind": "block_start",
            "index": 0,
            "block_type": "tool_use",
            "block_id": "toolu_1",
            "tool_name": "suggest_device_addition",
        }
    )

    assert isinstance(event, BlockStart)
    assert event.tool_name == "suggest_device_addition"


def test_parse_text_delta():
    assert isinstance(parse_event({"kind": "text_delta", "index": 0, "text": "hi"}), TextDelta)


def test_unknown_or_malformed_events_return_none():
    assert parse_event({"kind": "message_stop"}) is None
    assert parse_event({"kind": "text_delta", "index": "zero"}) is None

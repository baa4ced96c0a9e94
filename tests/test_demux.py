from __future__ import annotations

import pytest

from netmap_agent.streaming.demux import StreamDemultiplexer
from netmap_agent.streaming.events import BlockStart, BlockStop, JsonDelta, TextDelta


def _device_addition_events():
    return [
        BlockStart(index=0, block_type="tool_use", block_id="toolu_1", tool_name="suggest_device_addition"),
        JsonDelta(index=0, fragment='{"device":{"name":"AP1","type":"ap"}'),
        JsonDelta(index=0, fragment=',"reasoning":"seen in logs","confidence":"high"}'),
        BlockStop(index=0),
    ]


def test_fragments_concatenate_into_one_invocation():
    tools = []
    demux = StreamDemultiplexer(on_tool=tools.append)

    for event in _device_addition_events():
        demux.feed(event)

    assert len(tools) == 1
    assert tools[0].id == "toolu_1"
    assert tools[0].name == "suggest_device_addition"
    assert tools[0].input == {
        "device": {"name": "AP1", "type": "ap"},
        "reasoning": "seen in logs",
        "confidence": "high",
    }


def test_duplicate_block_stop_emits_once():
    tools = []
    demux = StreamDemultiplexer(on_tool=tools.append)

    for event in _device_addition_events():
        demux.feed(event)
    demux.feed(BlockStop(index=0))

    assert len(tools) == 1
    assert len(demux.invocations) == 1


def test_same_tool_id_restarted_at_other_index_is_not_reemitted():
    demux = StreamDemultiplexer()
    for event in _device_addition_events():
        demux.feed(event)

    demux.feed(BlockStart(index=3, block_type="tool_use", block_id="toolu_1", tool_name="suggest_device_addition"))
    demux.feed(JsonDelta(index=3, fragment="{}"))
    demux.feed(BlockStop(index=3))

    assert [inv.id for inv in demux.invocations] == ["toolu_1"]


def test_text_is_forwarded_in_order_while_tool_block_is_open():
    texts = []
    demux = StreamDemultiplexer(on_text=texts.append)

    demux.feed(BlockStart(index=0, block_type="text"))
    demux.feed(TextDelta(index=0, text="I found "))
    demux.feed(BlockStart(index=1, block_type="tool_use", block_id="toolu_2", tool_name="suggest_device_addition"))
    demux.feed(JsonDelta(index=1, fragment='{"device":'))
    demux.feed(TextDelta(index=0, text="a new "))
    demux.feed(JsonDelta(index=1, fragment='{"name":"sw-9","type":"switch"}}'))
    demux.feed(TextDelta(index=0, text="switch."))
    demux.feed(BlockStop(index=1))
    demux.feed(BlockStop(index=0))

    assert texts == ["I found ", "a new ", "switch."]
    assert demux.text == "I found a new switch."
    assert demux.invocations[0].input["device"]["name"] == "sw-9"


def test_text_is_delivered_before_stream_ends():
    texts = []
    demux = StreamDemultiplexer(on_text=texts.append)

    demux.feed(TextDelta(index=0, text="hello"))

    assert texts == ["hello"]


def test_malformed_json_yields_empty_input():
    tools = []
    demux = StreamDemultiplexer(on_tool=tools.append)

    demux.feed(BlockStart(index=0, block_type="tool_use", block_id="toolu_bad", tool_name="suggest_vlan_creation"))
    demux.feed(JsonDelta(index=0, fragment='{"vlanId": 20, "name": '))
    demux.feed(BlockStop(index=0))

    assert len(tools) == 1
    assert tools[0].input == {}


def test_non_object_json_yields_empty_input():
    demux = StreamDemultiplexer()

    demux.feed(BlockStart(index=0, block_type="tool_use", block_id="toolu_list", tool_name="suggest_vlan_creation"))
    demux.feed(JsonDelta(index=0, fragment="[1, 2]"))
    demux.feed(BlockStop(index=0))

    assert demux.invocations[0].input == {}


def test_block_without_deltas_has_empty_input():
    demux = StreamDemultiplexer()

    demux.feed(BlockStart(index=0, block_type="tool_use", block_id="toolu_e", tool_name="request_meraki_import"))
    demux.feed(BlockStop(index=0))

    assert demux.invocations[0].input == {}


def test_unknown_events_and_orphan_deltas_are_ignored():
    demux = StreamDemultiplexer()

    demux.feed(object())
    demux.feed(JsonDelta(index=7, fragment='{"x": 1}'))
    demux.feed(BlockStop(index=7))

    assert demux.invocations == []
    assert demux.text == ""


def test_tool_start_without_id_is_not_tracked():
    demux = StreamDemultiplexer()

    demux.feed(BlockStart(index=0, block_type="tool_use", tool_name="suggest_device_addition"))
    demux.feed(JsonDelta(index=0, fragment="{}"))
    demux.feed(BlockStop(index=0))

    assert demux.invocations == []


def test_close_drops_unfinished_blocks():
    demux = StreamDemultiplexer()

    demux.feed(BlockStart(index=0, block_type="tool_use", block_id="toolu_open", tool_name="suggest_device_addition"))
    demux.feed(JsonDelta(index=0, fragment='{"device":{"name":"x"'))

    assert demux.open_blocks == 1
    assert demux.close() == 1
    assert demux.open_blocks == 0
    assert demux.invocations == []


async def test_consume_keeps_completed_invocations_when_producer_fails():
    async def producer():
        for event in _device_addition_events():
            yield event
        yield BlockStart(index=1, block_type="tool_use", block_id="toolu_cut", tool_name="suggest_device_addition")
        yield JsonDelta(index=1, fragment='{"device":')
        raise ConnectionError("stream reset")

    demux = StreamDemultiplexer()

    with pytest.raises(ConnectionError):
        await demux.consume(producer())

    assert [inv.id for inv in demux.invocations] == ["toolu_1"]
    assert demux.open_blocks == 0


async def test_consume_returns_invocations():
    async def producer():
        for event in _device_addition_events():
            yield event

    invocations = await StreamDemultiplexer().consume(producer())

    assert len(invocations) == 1

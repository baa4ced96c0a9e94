from __future__ import annotations

from netmap_agent.llm.context import (
    FULL_NOTE,
    SUMMARY_NOTE,
    context_for_turn,
    focus_devices_in,
    format_network_context,
    omit_empty,
)
from netmap_agent.topology.models import Device, TopologySnapshot


def test_omit_empty_is_recursive():
    assert omit_empty({"a": None, "b": "", "c": [], "d": {}, "e": {"f": None}, "g": 0, "h": [{"i": ""}]}) == {
        "g": 0,
        "h": [{}],
    }


def test_medium_context_names_connection_endpoints(snapshot):
    context = format_network_context(snapshot, "medium")

    assert context["summary"]["totalDevices"] == 4
    assert context["summary"]["deviceTypes"]["switch"] == 1
    link = next(c for c in context["connections"] if c["id"] == "conn-2")
    assert (link["from"], link["to"], link["speed"]) == ("core-1", "SW-1", "10G")
    switch = next(d for d in context["devices"] if d["id"] == "dev-sw1")
    assert switch["hardware"] == {"manufacturer": "Cisco", "firmware": "2.0"}
    vlan = next(v for v in context["vlans"] if v["id"] == 1)
    assert vlan["devices"] == 2


def test_summary_context_lists_devices_only(snapshot):
    context = format_network_context(snapshot, "summary")

    assert context["note"] == SUMMARY_NOTE
    assert "connections" not in context
    assert {"id": "dev-fw", "type": "firewall", "name": "fw-1", "ip": "10.0.0.1", "status": "unknown"} in context[
        "deviceList"
    ]


def test_auto_switches_to_summary_for_large_topologies():
    snapshot = TopologySnapshot(
        devices={f"d{i}": Device(id=f"d{i}", name=f"ap-{i}", type="ap") for i in range(6)}
    )

    assert format_network_context(snapshot, "auto", large_topology_threshold=5)["note"] == SUMMARY_NOTE
    assert "devices" in format_network_context(snapshot, "auto", large_topology_threshold=10)


def test_focus_devices_upgrade_summary_with_location(snapshot):
    snap = snapshot.model_copy(deep=True)
    snap.devices["dev-sw1"] = snap.devices["dev-sw1"].model_copy(update={"floor": 2, "building_id": "b-1"})

    context = format_network_context(snap, "summary", ["dev-sw1"])

    switch = next(d for d in context["devices"] if d["id"] == "dev-sw1")
    assert (switch["floor"], switch["buildingId"]) == (2, "b-1")


def test_full_context_includes_stored_fields(snapshot):
    context = format_network_context(snapshot, "full")

    assert context["note"] == FULL_NOTE
    switch = next(d for d in context["devices"] if d["id"] == "dev-sw1")
    assert switch["mac"] == "AA:BB:CC:DD:EE:01"
    link = next(c for c in context["connections"] if c["id"] == "conn-1")
    assert (link["fromName"], link["toName"]) == ("fw-1", "core-1")


def test_focus_devices_in_message(snapshot):
    assert focus_devices_in("is sw-1 overloaded?", snapshot) == ["dev-sw1"]


def test_no_context_for_empty_topology():
    assert context_for_turn(TopologySnapshot(), "hello", "auto", 50) is None

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Literal, Optional

from ..topology.models import Device, TopologySnapshot

DetailLevel = Literal["auto", "summary", "medium", "full"]

SUMMARY_NOTE = (
    "Large topology - showing summary only. "
    "Ask about specific devices for detailed information."
)
FULL_NOTE = "Full network context with all troubleshooting data"


def omit_empty(value: Any) -> Any:
    """
    Recursively drop None, "", [] and {} values from mappings.

    Lists are kept as-is apart from cleaning any mappings they contain.
    """
    if isinstance(value, dict):
        cleaned: Dict[str, Any] = {}
        for key, item in value.items():
            item = omit_empty(item)
            if item is None or item == "" or item == [] or item == {}:
                continue
            cleaned[key] = item
        return cleaned
    if isinstance(value, list):
        return [omit_empty(item) for item in value]
    return value


def _get(document: Dict[str, Any], *path: str) -> Any:
    current: Any = document
    for part in path:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _summary(snapshot: TopologySnapshot) -> Dict[str, Any]:
    return {
        "totalDevices": len(snapshot.devices),
        "totalConnections": len(snapshot.connections),
        "totalVLANs": len(snapshot.vlans),
        "buildings": len(snapshot.buildings),
        "deviceTypes": dict(Counter(d.type for d in snapshot.devices.values())),
    }


def _medium_device(device: Device, focused: bool) -> Dict[str, Any]:
    doc = device.to_document()
    entry: Dict[str, Any] = {
        "id": device.id,
        "type": device.type,
        "name": device.name,
        "ip": device.ip,
        "status": device.status,
        "hardware": {
            "manufacturer": _get(doc, "hardware", "manufacturer"),
            "model": _get(doc, "hardware", "model"),
            "firmware": _get(doc, "hardware", "firmware", "version"),
            "uptime": _get(doc, "hardware", "uptime", "seconds"),
        },
    }
    if doc.get("metrics"):
        entry["metrics"] = {
            "cpu": _get(doc, "metrics", "cpu", "current"),
            "memory": _get(doc, "metrics", "memory", "usedPercent"),
            "temp": _get(doc, "metrics", "temperature", "current"),
        }
    if doc.get("monitoring"):
        alerts = _get(doc, "monitoring", "alerts") or {}
        entry["monitoring"] = {
            "status": _get(doc, "monitoring", "pingStatus"),
            "latency": _get(doc, "monitoring", "pingLatency"),
            "alerts": (
                {"critical": alerts.get("critical"), "warning": alerts.get("warning")}
                if isinstance(alerts, dict) and (alerts.get("critical") or alerts.get("warning"))
                else None
            ),
        }
    if focused:
        entry["location"] = doc.get("location")
        entry["floor"] = device.floor
        entry["buildingId"] = device.building_id
    return entry


def _vlan_members(snapshot: TopologySnapshot) -> Counter:
    members: Counter = Counter()
    for device in snapshot.devices.values():
        members.update(set(device.vlans))
    return members


def format_network_context(
    snapshot: TopologySnapshot,
    detail_level: DetailLevel = "auto",
    focus_device_ids: Iterable[str] = (),
    *,
    large_topology_threshold: int = 50,
) -> Dict[str, Any]:
    """
    Build the topology context sent to the model with each turn.

    Three tiers:
      - summary: counts plus id/type/name/ip/status per device
      - medium:  hardware, metrics and monitoring essentials, named
                 connections and VLANs with member counts
      - full:    every stored non-empty field

    "auto" picks summary above `large_topology_threshold` devices, medium
    otherwise. Focus devices upgrade a summary request to medium so the
    focused devices can carry their location details.
    """
    focus = set(focus_device_ids)
    devices: List[Device] = list(snapshot.devices.values())
    names = {d.id: d.name for d in devices}
    summary = _summary(snapshot)

    level = detail_level
    if level == "auto":
        level = "summary" if len(devices) > large_topology_threshold else "medium"

    if level == "summary" and not focus:
        return omit_empty(
            {
                "summary": summary,
                "note": SUMMARY_NOTE,
                "deviceList": [
                    {"id": d.id, "type": d.type, "name": d.name, "ip": d.ip, "status": d.status}
                    for d in devices
                ],
            }
        )

    if level in ("summary", "medium"):
        members = _vlan_members(snapshot)
        return omit_empty(
            {
                "summary": summary,
                "devices": [_medium_device(d, d.id in focus) for d in devices],
                "connections": [
                    {
                        "id": c.id,
                        "from": names.get(c.from_, c.from_),
                        "to": names.get(c.to, c.to),
                        "fromPort": c.from_port,
                        "toPort": c.to_port,
                        "speed": c.speed,
                        "type": c.type,
                        "status": c.status,
                    }
                    for c in snapshot.connections.values()
                ],
                "vlans": [
                    {
                        "id": v.id,
                        "name": v.name,
                        "subnet": v.subnet,
                        "gateway": v.gateway,
                        "devices": members.get(v.id) or None,
                    }
                    for v in snapshot.vlans.values()
                ],
            }
        )

    return omit_empty(
        {
            "summary": summary,
            "note": FULL_NOTE,
            "devices": [d.to_document() for d in devices],
            "connections": [
                {
                    **c.to_document(),
                    "fromName": names.get(c.from_, c.from_),
                    "toName": names.get(c.to, c.to),
                }
                for c in snapshot.connections.values()
            ],
            "vlans": [v.to_document() for v in snapshot.vlans.values()],
        }
    )


def focus_devices_in(message: str, snapshot: TopologySnapshot) -> List[str]:
    """Ids of devices whose name appears in the message (case-insensitive)."""
    lowered = message.lower()
    return [
        device.id
        for device in snapshot.devices.values()
        if device.name and device.name.lower() in lowered
    ]


def context_for_turn(
    snapshot: TopologySnapshot,
    message: str,
    detail_level: DetailLevel,
    large_topology_threshold: int,
) -> Optional[Dict[str, Any]]:
    if not snapshot.devices and not snapshot.connections:
        return None
    return format_network_context(
        snapshot,
        detail_level,
        focus_devices_in(message, snapshot),
        large_topology_threshold=large_topology_threshold,
    )

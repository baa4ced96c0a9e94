from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEVICE_TYPES = ("firewall", "core", "switch", "ap", "server", "router", "wan")
DEVICE_STATUSES = ("up", "down", "warning", "maintenance", "offline")
CONNECTION_TYPES = ("trunk", "access")


class CamelModel(BaseModel):
    """
    Base for topology entities.

    Entities are exchanged with the UI and the LLM in camelCase
    (`buildingId`, `hardware.firmware.version`), so fields alias to camelCase
    and unknown fields are kept: change proposals may target any stored key.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> Dict[str, Any]:
        """Plain camelCase dict, the shape dot-paths are resolved against."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Device(CamelModel):
    id: str
    name: str
    type: str
    ip: Optional[str] = ""
    mac: Optional[str] = ""
    status: Optional[str] = "unknown"
    x: Optional[float] = None
    y: Optional[float] = None
    physical_x: Optional[float] = None
    physical_y: Optional[float] = None
    vlans: List[int] = Field(default_factory=list)
    notes: Optional[str] = ""
    hardware: Optional[Dict[str, Any]] = None
    building_id: Optional[str] = None
    floor: Optional[int] = None
    is_root: bool = False

    @property
    def position(self) -> Tuple[float, float]:
        """Canvas position; falls back to the physical-view position, then origin."""
        x = self.x if self.x is not None else self.physical_x
        y = self.y if self.y is not None else self.physical_y
        return float(x or 0.0), float(y or 0.0)


class Connection(CamelModel):
    id: str
    from_: str = Field(alias="from")
    to: str
    from_port: str = ""
    to_port: str = ""
    type: str = "trunk"
    speed: str = "1G"
    vlans: List[int] = Field(default_factory=list)
    cable_type: str = "cat6"
    status: str = "up"

    def links(self, device_a: str, device_b: str) -> bool:
        """True if this connection joins the two device ids, in either direction."""
        return {self.from_, self.to} == {device_a, device_b}


class Vlan(CamelModel):
    id: int
    name: str
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class Building(CamelModel):
    id: str
    name: str = ""
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def has_bounds(self) -> bool:
        return (
            self.x is not None
            and self.y is not None
            and bool(self.width)
            and bool(self.height)
            and self.width > 0
            and self.height > 0
        )


class TopologySnapshot(BaseModel):
    """
    Point-in-time copy of the registry.

    Matching, placement and proposal diffing are pure functions of a snapshot.
    """

    devices: Dict[str, Device] = Field(default_factory=dict)
    connections: Dict[str, Connection] = Field(default_factory=dict)
    vlans: Dict[int, Vlan] = Field(default_factory=dict)
    buildings: Dict[str, Building] = Field(default_factory=dict)

    def device_by_name(self, name: str) -> Optional[Device]:
        """Exact name lookup, falling back to a case-insensitive trimmed match."""
        for device in self.devices.values():
            if device.name == name:
                return device
        wanted = name.strip().lower()
        for device in self.devices.values():
            if device.name.strip().lower() == wanted:
                return device
        return None

    def connection_between(self, device_a: str, device_b: str) -> Optional[Connection]:
        for connection in self.connections.values():
            if connection.links(device_a, device_b):
                return connection
        return None

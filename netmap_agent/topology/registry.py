from __future__ import annotations

import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from .models import Building, Connection, Device, TopologySnapshot, Vlan

logger = structlog.get_logger("topology.registry")


class RegistryWriteError(Exception):
    """The registry refused a write. No part of the write was applied."""


def gen_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class NewConnection(BaseModel):
    to_device_id: str
    from_port: str = ""
    to_port: str = ""
    type: str = "trunk"
    speed: str = "1G"
    vlans: List[int] = Field(default_factory=list)
    cable_type: str = "cat6"


class NewDevice(BaseModel):
    """A fully-formed device (position already decided) plus its connections."""

    device: Dict[str, Any]
    x: float
    y: float
    connections: List[NewConnection] = Field(default_factory=list)


class InMemoryTopologyRegistry:
    """
    Single-writer topology registry.

    Reads hand out deep-copied snapshots. Every write builds the complete new
    state first and swaps it in under the lock, so a failed write leaves the
    registry untouched.
    """

    def __init__(self, snapshot: Optional[TopologySnapshot] = None):
        self._state = snapshot.model_copy(deep=True) if snapshot else TopologySnapshot()
        self._lock = threading.Lock()

    def snapshot(self) -> TopologySnapshot:
        with self._lock:
            return self._state.model_copy(deep=True)

    def replace(self, snapshot: TopologySnapshot) -> None:
        with self._lock:
            self._state = snapshot.model_copy(deep=True)
        logger.info(
            "topology_replaced",
            devices=len(snapshot.devices),
            connections=len(snapshot.connections),
        )

    # ------------------------------------------------------------------ #
    # Devices
    # ------------------------------------------------------------------ #

    def add_devices(self, new_devices: Iterable[NewDevice]) -> List[Device]:
        """
        Add devices and their connections in one write.

        Raises RegistryWriteError if any connection targets a device that is
        neither present nor part of this write.
        """
        plans = list(new_devices)
        with self._lock:
            devices = dict(self._state.devices)
            connections = dict(self._state.connections)
            added: List[Device] = []

            for plan in plans:
                device_id = gen_id("dev")
                document = dict(plan.device)
                document.update(
                    id=device_id,
                    x=plan.x,
                    y=plan.y,
                    physicalX=plan.x,
                    physicalY=plan.y,
                )
                device = Device.model_validate(document)
                devices[device_id] = device
                added.append(device)

            for plan, device in zip(plans, added):
                for conn in plan.connections:
                    if conn.to_device_id not in devices:
                        raise RegistryWriteError(
                            f"Connection target {conn.to_device_id} does not exist"
                        )
                    conn_id = gen_id("conn")
                    connections[conn_id] = Connection(
                        id=conn_id,
                        **{"from": device.id},
                        to=conn.to_device_id,
                        from_port=conn.from_port,
                        to_port=conn.to_port,
                        type=conn.type,
                        speed=conn.speed,
                        vlans=list(conn.vlans),
                        cable_type=conn.cable_type,
                    )

            self._state = self._state.model_copy(
                update={"devices": devices, "connections": connections}
            )

        logger.info("devices_added", count=len(added), names=[d.name for d in added])
        return added

    def replace_devices(self, updated: Dict[str, Device]) -> List[str]:
        """
        Replace stored devices by id. Ids no longer present are skipped.

        Returns the ids actually written.
        """
        with self._lock:
            devices = dict(self._state.devices)
            written = [device_id for device_id in updated if device_id in devices]
            for device_id in written:
                devices[device_id] = updated[device_id]
            self._state = self._state.model_copy(update={"devices": devices})

        skipped = sorted(set(updated) - set(written))
        if skipped:
            logger.warning("device_update_skipped_missing", device_ids=skipped)
        logger.info("devices_updated", device_ids=written)
        return written

    # ------------------------------------------------------------------ #
    # Connections
    # ------------------------------------------------------------------ #

    def add_connection(self, connection: Dict[str, Any]) -> Connection:
        with self._lock:
            for endpoint in (connection.get("from"), connection.get("to")):
                if endpoint not in self._state.devices:
                    raise RegistryWriteError(f"Connection endpoint {endpoint} does not exist")
            conn = Connection.model_validate({**connection, "id": gen_id("conn")})
            connections = dict(self._state.connections)
            connections[conn.id] = conn
            self._state = self._state.model_copy(update={"connections": connections})

        logger.info("connection_added", connection_id=conn.id)
        return conn

    def update_connection(self, connection_id: str, updates: Dict[str, Any]) -> Connection:
        with self._lock:
            current = self._state.connections.get(connection_id)
            if current is None:
                raise RegistryWriteError(f"Connection {connection_id} does not exist")
            document = current.model_dump(by_alias=True)
            document.update(updates)
            try:
                conn = Connection.model_validate(document)
            except ValidationError as exc:
                fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
                raise RegistryWriteError(
                    f"Connection {connection_id} rejected invalid values for: {', '.join(fields)}"
                ) from exc
            connections = dict(self._state.connections)
            connections[connection_id] = conn
            self._state = self._state.model_copy(update={"connections": connections})

        logger.info("connection_updated", connection_id=connection_id, fields=sorted(updates))
        return conn

    def remove_connection(self, connection_id: str) -> None:
        with self._lock:
            if connection_id not in self._state.connections:
                raise RegistryWriteError(f"Connection {connection_id} does not exist")
            connections = dict(self._state.connections)
            del connections[connection_id]
            self._state = self._state.model_copy(update={"connections": connections})

        logger.info("connection_removed", connection_id=connection_id)

    # ------------------------------------------------------------------ #
    # VLANs
    # ------------------------------------------------------------------ #

    def add_vlan(self, vlan: Vlan, assign_device_ids: Iterable[str] = ()) -> Vlan:
        with self._lock:
            if vlan.id in self._state.vlans:
                raise RegistryWriteError(f"VLAN {vlan.id} already exists")
            vlans = dict(self._state.vlans)
            vlans[vlan.id] = vlan
            devices = _with_vlan(self._state.devices, vlan.id, assign_device_ids)
            self._state = self._state.model_copy(update={"vlans": vlans, "devices": devices})

        logger.info("vlan_added", vlan_id=vlan.id)
        return vlan

    def assign_vlan(self, vlan_id: int, device_ids: Iterable[str]) -> None:
        with self._lock:
            if vlan_id not in self._state.vlans:
                raise RegistryWriteError(f"VLAN {vlan_id} does not exist")
            devices = _with_vlan(self._state.devices, vlan_id, device_ids)
            self._state = self._state.model_copy(update={"devices": devices})

        logger.info("vlan_assigned", vlan_id=vlan_id)

    def add_building(self, building: Building) -> None:
        with self._lock:
            buildings = dict(self._state.buildings)
            buildings[building.id] = building
            self._state = self._state.model_copy(update={"buildings": buildings})


def _with_vlan(
    devices: Dict[str, Device],
    vlan_id: int,
    device_ids: Iterable[str],
) -> Dict[str, Device]:
    updated = dict(devices)
    for device_id in device_ids:
        device = updated.get(device_id)
        if device is None or vlan_id in device.vlans:
            continue
        updated[device_id] = device.model_copy(update={"vlans": [*device.vlans, vlan_id]})
    return updated

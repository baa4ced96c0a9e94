from __future__ import annotations

"""
Topology domain: devices, connections, VLANs and buildings.

The registry is the sole owner of committed topology state; the suggestion
pipeline only reads snapshots and writes through the registry's update API.
"""

from .models import Building, Connection, Device, TopologySnapshot, Vlan
from .registry import InMemoryTopologyRegistry, NewDevice, RegistryWriteError

__all__ = [
    "Building",
    "Connection",
    "Device",
    "InMemoryTopologyRegistry",
    "NewDevice",
    "RegistryWriteError",
    "TopologySnapshot",
    "Vlan",
]

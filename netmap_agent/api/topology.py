from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..dependencies import get_context_logger, get_registry
from ..topology.registry import InMemoryTopologyRegistry

router = APIRouter(tags=["topology"], prefix="/topology")


class TopologyResponse(BaseModel):
    """
    Current topology, as stored documents (camelCase keys, `from`/`to` on
    connections).
    """

    devices: List[Dict[str, Any]] = Field(default_factory=list)
    connections: List[Dict[str, Any]] = Field(default_factory=list)
    vlans: List[Dict[str, Any]] = Field(default_factory=list)
    buildings: List[Dict[str, Any]] = Field(default_factory=list)


@router.get("", response_model=TopologyResponse, status_code=status.HTTP_200_OK)
async def get_topology(
    registry: InMemoryTopologyRegistry = Depends(get_registry),
    logger=Depends(get_context_logger),
) -> TopologyResponse:
    snapshot = registry.snapshot()
    logger.info(
        "topology_snapshot_requested",
        devices=len(snapshot.devices),
        connections=len(snapshot.connections),
    )
    return TopologyResponse(
        devices=[d.to_document() for d in snapshot.devices.values()],
        connections=[c.to_document() for c in snapshot.connections.values()],
        vlans=[v.to_document() for v in snapshot.vlans.values()],
        buildings=[b.to_document() for b in snapshot.buildings.values()],
    )

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..topology.registry import NewConnection, NewDevice

Confidence = Literal["high", "medium", "low"]
PlacementStrategy = Literal[
    "near_connected",
    "near_similar_type",
    "building_location",
    "topology_tier",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlacementResult(BaseModel):
    x: float
    y: float
    strategy: PlacementStrategy


class DeviceRef(BaseModel):
    id: str
    name: str


class ResolvedConnection(BaseModel):
    """A proposed link from the new device to an existing one."""

    to_device_id: str
    to_device_name: str
    from_port: str = ""
    to_port: str = ""
    type: str = "trunk"
    speed: str = "1G"
    vlans: List[int] = Field(default_factory=list)
    cable_type: str = "cat6"


class DeviceSuggestion(BaseModel):
    """
    A new device awaiting approval.

    `device` is the camelCase document handed to the registry on approval;
    `position` is computed once and committed as-is.
    """

    id: str
    device: Dict[str, Any]
    connections: List[ResolvedConnection] = Field(default_factory=list)
    reasoning: str
    confidence: Confidence = "medium"
    position: PlacementResult

    @property
    def name(self) -> str:
        return str(self.device.get("name", ""))

    def to_new_device(self) -> NewDevice:
        return NewDevice(
            device=self.device,
            x=self.position.x,
            y=self.position.y,
            connections=[
                NewConnection(
                    to_device_id=conn.to_device_id,
                    from_port=conn.from_port,
                    to_port=conn.to_port,
                    type=conn.type,
                    speed=conn.speed,
                    vlans=list(conn.vlans),
                    cable_type=conn.cable_type,
                )
                for conn in self.connections
            ],
        )


class PendingBatch(BaseModel):
    id: str
    suggestions: List[DeviceSuggestion]
    message_text: str
    timestamp: datetime = Field(default_factory=_utcnow)


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None


class AffectedDevice(BaseModel):
    id: str
    name: str
    changes: Dict[str, FieldChange] = Field(default_factory=dict)


class ProposalValidation(BaseModel):
    valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)


class ChangeProposal(BaseModel):
    """
    Field-level updates to existing devices, with the diff and validation
    computed against the snapshot the proposal was built from.
    """

    id: str
    device_ids: List[str]
    updates: Dict[str, Any]
    summary: str
    reasoning: Optional[str] = None
    affected_devices: List[AffectedDevice] = Field(default_factory=list)
    validation: ProposalValidation
    missing_device_ids: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def approvable(self) -> bool:
        return self.validation.valid and not self.missing_device_ids


class ConnectionSuggestion(BaseModel):
    id: str
    kind: Literal["connection_addition", "connection_modification", "connection_removal"]
    from_device: DeviceRef
    to_device: DeviceRef
    connection_id: Optional[str] = None
    connection: Dict[str, Any] = Field(
        default_factory=dict,
        description="New connection fields (addition only).",
    )
    updates: Dict[str, Any] = Field(default_factory=dict)
    current_values: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""


class VlanSuggestion(BaseModel):
    id: str
    kind: Literal["vlan_creation", "vlan_assignment"]
    vlan_id: int
    name: Optional[str] = None
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    description: Optional[str] = None
    devices_to_assign: List[DeviceRef] = Field(default_factory=list)
    reasoning: str = ""


class SecurityFinding(BaseModel):
    severity: Literal["critical", "high", "medium", "low", "info"]
    title: str
    description: str = ""
    affected_devices: List[str] = Field(default_factory=list)
    recommendation: str = ""


class SecurityReport(BaseModel):
    summary: str = ""
    findings: List[SecurityFinding] = Field(default_factory=list)
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    info_count: int = 0


class Notice(BaseModel):
    """A system message for the chat transcript."""

    level: Literal["info", "error"] = "info"
    message: str


class PendingState(BaseModel):
    """Everything awaiting a user decision in one session."""

    suggestion: Optional[DeviceSuggestion] = None
    batch: Optional[PendingBatch] = None
    change: Optional[ChangeProposal] = None
    connection: Optional[ConnectionSuggestion] = None
    vlan: Optional[VlanSuggestion] = None

    @property
    def is_empty(self) -> bool:
        return not any((self.suggestion, self.batch, self.change, self.connection, self.vlan))


class TurnOutcome(BaseModel):
    """
    What a completed turn surfaces to the chat UI.

    `kind` names the approval surface: one device, a batch, a change
    proposal, a plain assistant message, or only system notices.
    """

    kind: Literal["single_suggestion", "batch", "change_proposal", "message", "notice"]
    text: str = ""
    suggestion: Optional[DeviceSuggestion] = None
    batch: Optional[PendingBatch] = None
    change: Optional[ChangeProposal] = None
    connection_suggestion: Optional[ConnectionSuggestion] = None
    vlan_suggestion: Optional[VlanSuggestion] = None
    security_report: Optional[SecurityReport] = None
    import_requested: bool = False
    notices: List[Notice] = Field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None
    restored_input: Optional[str] = None

    def pending_state(self) -> PendingState:
        return PendingState(
            suggestion=self.suggestion,
            batch=self.batch,
            change=self.change,
            connection=self.connection_suggestion,
            vlan=self.vlan_suggestion,
        )

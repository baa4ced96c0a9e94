from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..streaming.events import ToolInvocation
from ..topology.models import DEVICE_TYPES


class ToolName(str, Enum):
    DEVICE_ADDITION = "suggest_device_addition"
    CONNECTION_ADDITION = "suggest_connection_addition"
    CONNECTION_MODIFICATION = "suggest_connection_modification"
    CONNECTION_REMOVAL = "suggest_connection_removal"
    VLAN_CREATION = "suggest_vlan_creation"
    VLAN_ASSIGNMENT = "suggest_vlan_assignment"
    SECURITY_FINDINGS = "report_security_findings"
    MERAKI_IMPORT = "request_meraki_import"


CONNECTION_UPDATE_FIELDS = ("fromPort", "toPort", "type", "speed", "vlans", "cableType", "status")


class ToolPayload(BaseModel):
    """Base for tool inputs: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# ---------------------------------------------------------------------- #
# Device addition
# ---------------------------------------------------------------------- #


class FirmwareSpec(ToolPayload):
    version: Optional[str] = None
    last_updated: Optional[str] = None
    update_available: Optional[bool] = None
    update_version: Optional[str] = None


class HardwareSpec(ToolPayload):
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    firmware: Optional[FirmwareSpec] = None

    @field_validator("firmware", mode="before")
    @classmethod
    def _firmware_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"version": value}
        return value


class DeviceSpec(ToolPayload):
    name: str
    type: str
    ip: Optional[str] = None
    mac: Optional[str] = None
    status: Optional[str] = None
    hardware: Optional[HardwareSpec] = None
    vlans: Optional[List[int]] = None
    building_id: Optional[str] = None
    floor: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in DEVICE_TYPES:
                raise ValueError(f"must be one of: {', '.join(DEVICE_TYPES)}")
        return value

    def to_document(self) -> Dict[str, Any]:
        """Registry document with defaults for every omitted field."""
        document: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "ip": self.ip or "",
            "mac": self.mac or "",
            "status": self.status or "unknown",
            "vlans": list(self.vlans) if self.vlans else [1],
            "notes": self.notes or "",
            "isRoot": False,
        }
        if self.hardware is not None:
            document["hardware"] = self.hardware.model_dump(by_alias=True, exclude_none=True)
        if self.building_id:
            document["buildingId"] = self.building_id
        if self.floor is not None:
            document["floor"] = self.floor
        return document


class ConnectionSpec(ToolPayload):
    to_device_name: str
    from_port: Optional[str] = None
    to_port: Optional[str] = None
    type: Optional[Literal["trunk", "access"]] = None
    speed: Optional[str] = None
    vlans: Optional[List[int]] = None
    cable_type: Optional[str] = None

    @field_validator("to_device_name")
    @classmethod
    def _target_required(cls, value: str) -> str:
        return _strip_required(value)


class DeviceAdditionInput(ToolPayload):
    device: DeviceSpec
    connections: List[ConnectionSpec] = Field(default_factory=list)
    reasoning: str = "Device detected from provided information"
    confidence: Literal["high", "medium", "low"] = "medium"

    @field_validator("confidence", mode="before")
    @classmethod
    def _lower_confidence(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("connections", mode="before")
    @classmethod
    def _null_connections(cls, value: Any) -> Any:
        return [] if value is None else value


# ---------------------------------------------------------------------- #
# Connections
# ---------------------------------------------------------------------- #


class ConnectionEndpoints(ToolPayload):
    from_device_name: str
    to_device_name: str
    reasoning: str = ""

    @field_validator("from_device_name", "to_device_name")
    @classmethod
    def _names_required(cls, value: str) -> str:
        return _strip_required(value)


class ConnectionAdditionInput(ConnectionEndpoints):
    from_port: str = ""
    to_port: str = ""
    connection_type: Literal["trunk", "access"] = "trunk"
    speed: str = "1G"
    vlans: List[int] = Field(default_factory=list)
    cable_type: str = "cat6"


class ConnectionUpdates(ToolPayload):
    """Value types for the connection fields a modification may set."""

    from_port: StrictStr = ""
    to_port: StrictStr = ""
    type: Literal["trunk", "access"] = "trunk"
    speed: StrictStr = "1G"
    vlans: List[int] = Field(default_factory=list)
    cable_type: StrictStr = "cat6"
    status: StrictStr = "up"


class ConnectionModificationInput(ConnectionEndpoints):
    updates: Dict[str, Any]

    @field_validator("updates")
    @classmethod
    def _known_fields(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value:
            raise ValueError("must contain at least one field")
        unknown = sorted(set(value) - set(CONNECTION_UPDATE_FIELDS))
        if unknown:
            raise ValueError(f"unsupported connection fields: {', '.join(unknown)}")
        try:
            checked = ConnectionUpdates.model_validate(value)
        except ValidationError as exc:
            raise ValueError("; ".join(_format_errors(exc))) from exc
        return checked.model_dump(by_alias=True, exclude_unset=True)


class ConnectionRemovalInput(ConnectionEndpoints):
    pass


# ---------------------------------------------------------------------- #
# VLANs
# ---------------------------------------------------------------------- #


class VlanCreationInput(ToolPayload):
    vlan_id: int = Field(ge=1, le=4094)
    name: str
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    description: Optional[str] = None
    devices_to_assign: List[str] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return _strip_required(value)


class VlanAssignmentInput(ToolPayload):
    vlan_id: int = Field(ge=1, le=4094)
    device_names: List[str] = Field(min_length=1)
    reasoning: str = ""


# ---------------------------------------------------------------------- #
# Informational tools
# ---------------------------------------------------------------------- #


class SecurityFindingSpec(ToolPayload):
    severity: Literal["critical", "high", "medium", "low", "info"]
    title: str
    description: str = ""
    affected_devices: List[str] = Field(default_factory=list)
    recommendation: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def _lower_severity(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class SecurityFindingsInput(ToolPayload):
    findings: List[SecurityFindingSpec]
    summary: str = ""


class MerakiImportInput(ToolPayload):
    reason: str = ""


PAYLOAD_MODELS: Dict[ToolName, Type[ToolPayload]] = {
    ToolName.DEVICE_ADDITION: DeviceAdditionInput,
    ToolName.CONNECTION_ADDITION: ConnectionAdditionInput,
    ToolName.CONNECTION_MODIFICATION: ConnectionModificationInput,
    ToolName.CONNECTION_REMOVAL: ConnectionRemovalInput,
    ToolName.VLAN_CREATION: VlanCreationInput,
    ToolName.VLAN_ASSIGNMENT: VlanAssignmentInput,
    ToolName.SECURITY_FINDINGS: SecurityFindingsInput,
    ToolName.MERAKI_IMPORT: MerakiImportInput,
}


@dataclass(frozen=True)
class ParsedPayload:
    tool: ToolName
    invocation_id: str
    data: Any


@dataclass(frozen=True)
class InvalidPayload:
    tool_name: str
    invocation_id: str
    errors: List[str] = field(default_factory=list)
    known_tool: bool = True


def _format_errors(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "input"
        messages.append(f"{location}: {error.get('msg', 'invalid')}")
    return messages


def parse_tool_payload(invocation: ToolInvocation) -> Union[ParsedPayload, InvalidPayload]:
    """
    Validate a tool invocation's input against its tool schema.

    Unknown tool names come back as InvalidPayload with known_tool=False.
    """
    try:
        tool = ToolName(invocation.name)
    except ValueError:
        return InvalidPayload(
            tool_name=invocation.name,
            invocation_id=invocation.id,
            errors=[f"unknown tool {invocation.name!r}"],
            known_tool=False,
        )

    try:
        data = PAYLOAD_MODELS[tool].model_validate(invocation.input)
    except ValidationError as exc:
        return InvalidPayload(
            tool_name=tool.value,
            invocation_id=invocation.id,
            errors=_format_errors(exc),
        )
    return ParsedPayload(tool=tool, invocation_id=invocation.id, data=data)

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field

from ..orchestrator.domain_metrics import (
    DUPLICATES_SUPPRESSED,
    MALFORMED_TOOL_PAYLOADS,
    UNKNOWN_TOOLS,
)
from ..streaming.events import ToolInvocation
from ..topology.models import Device, TopologySnapshot
from .matcher import find_existing
from .models import (
    ConnectionSuggestion,
    DeviceRef,
    DeviceSuggestion,
    Notice,
    ResolvedConnection,
    SecurityFinding,
    SecurityReport,
    VlanSuggestion,
)
from .payloads import (
    ConnectionAdditionInput,
    ConnectionModificationInput,
    ConnectionRemovalInput,
    DeviceAdditionInput,
    InvalidPayload,
    MerakiImportInput,
    SecurityFindingsInput,
    ToolName,
    VlanAssignmentInput,
    VlanCreationInput,
    parse_tool_payload,
)
from .placement import PlacementEngine, Point

logger = structlog.get_logger("suggestions.resolution")


class TurnResolution(BaseModel):
    """Everything the tool invocations of one turn resolved to."""

    device_suggestions: List[DeviceSuggestion] = Field(default_factory=list)
    connection_suggestion: Optional[ConnectionSuggestion] = None
    vlan_suggestion: Optional[VlanSuggestion] = None
    security_report: Optional[SecurityReport] = None
    import_requested: bool = False
    notices: List[Notice] = Field(default_factory=list)


class ToolCallResolver:
    """
    Resolves the tool invocations of a single turn against one snapshot.

    Device suggestions accepted earlier in the turn take part in duplicate
    detection and count as occupied positions for later placements.
    Duplicates and malformed payloads never become suggestions; they are
    collected into one "Already exists" and one "Errors" notice.
    """

    def __init__(self, snapshot: TopologySnapshot, placement: PlacementEngine):
        self._snapshot = snapshot
        self._placement = placement
        self._accepted: List[Device] = []
        self._occupied: List[Point] = []
        self._duplicates: List[str] = []
        self._errors: List[str] = []
        self._result = TurnResolution()

    def resolve_all(self, invocations: Iterable[ToolInvocation]) -> TurnResolution:
        for invocation in invocations:
            self.resolve(invocation)
        return self.finish()

    def resolve(self, invocation: ToolInvocation) -> None:
        parsed = parse_tool_payload(invocation)
        if isinstance(parsed, InvalidPayload):
            self._reject(parsed)
            return

        data = parsed.data
        if parsed.tool is ToolName.DEVICE_ADDITION:
            self._device_addition(invocation.id, data)
        elif parsed.tool is ToolName.CONNECTION_ADDITION:
            self._connection_addition(invocation.id, data)
        elif parsed.tool is ToolName.CONNECTION_MODIFICATION:
            self._connection_modification(invocation.id, data)
        elif parsed.tool is ToolName.CONNECTION_REMOVAL:
            self._connection_removal(invocation.id, data)
        elif parsed.tool is ToolName.VLAN_CREATION:
            self._vlan_creation(invocation.id, data)
        elif parsed.tool is ToolName.VLAN_ASSIGNMENT:
            self._vlan_assignment(invocation.id, data)
        elif parsed.tool is ToolName.SECURITY_FINDINGS:
            self._security_findings(data)
        elif parsed.tool is ToolName.MERAKI_IMPORT:
            self._import_request(data)

    def finish(self) -> TurnResolution:
        notices = list(self._result.notices)
        if self._errors:
            notices.insert(0, Notice(level="error", message=f"Errors: {', '.join(self._errors)}"))
        if self._duplicates:
            notices.append(
                Notice(level="info", message=f"Already exists: {', '.join(self._duplicates)}")
            )
        return self._result.model_copy(update={"notices": notices})

    # ------------------------------------------------------------------ #
    # Rejections
    # ------------------------------------------------------------------ #

    def _reject(self, invalid: InvalidPayload) -> None:
        if not invalid.known_tool:
            UNKNOWN_TOOLS.inc()
            logger.warning(
                "tool_unknown_ignored",
                tool=invalid.tool_name,
                tool_id=invalid.invocation_id,
            )
            return

        MALFORMED_TOOL_PAYLOADS.labels(tool=invalid.tool_name).inc()
        logger.warning(
            "tool_payload_invalid",
            tool=invalid.tool_name,
            tool_id=invalid.invocation_id,
            errors=invalid.errors,
        )
        self._errors.append(f"{invalid.tool_name} ({'; '.join(invalid.errors)})")

    def _notice(self, message: str, level: str = "info") -> None:
        self._result.notices.append(Notice(level=level, message=message))

    def _resolve_pair(
        self, from_name: str, to_name: str
    ) -> Optional[Tuple[Device, Device]]:
        source = self._snapshot.device_by_name(from_name)
        target = self._snapshot.device_by_name(to_name)
        missing = [name for name, device in ((from_name, source), (to_name, target)) if device is None]
        if missing:
            self._errors.append(f"Devices not found: {', '.join(missing)}")
            return None
        return source, target

    # ------------------------------------------------------------------ #
    # Devices
    # ------------------------------------------------------------------ #

    def _device_addition(self, invocation_id: str, payload: DeviceAdditionInput) -> None:
        document = payload.device.to_document()

        existing = find_existing(document, [*self._snapshot.devices.values(), *self._accepted])
        if existing is not None:
            DUPLICATES_SUPPRESSED.inc()
            logger.info(
                "device_suggestion_duplicate",
                name=payload.device.name,
                existing_id=existing.id,
            )
            self._duplicates.append(existing.name)
            return

        connections: List[ResolvedConnection] = []
        unresolved: List[str] = []
        for conn in payload.connections:
            target = self._snapshot.device_by_name(conn.to_device_name)
            if target is None:
                unresolved.append(conn.to_device_name)
                continue
            connections.append(
                ResolvedConnection(
                    to_device_id=target.id,
                    to_device_name=target.name,
                    from_port=conn.from_port or "",
                    to_port=conn.to_port or "",
                    type=conn.type or "trunk",
                    speed=conn.speed or "1G",
                    vlans=list(conn.vlans or []),
                    cable_type=conn.cable_type or "cat6",
                )
            )
        if unresolved:
            self._notice(
                f"Skipped connections for {payload.device.name}: "
                f"unknown devices {', '.join(unresolved)}"
            )

        position = self._placement.place(
            document,
            [conn.to_device_name for conn in payload.connections],
            self._snapshot,
            occupied=self._occupied,
        )
        self._occupied.append((position.x, position.y))
        self._accepted.append(Device.model_validate({**document, "id": invocation_id}))

        self._result.device_suggestions.append(
            DeviceSuggestion(
                id=invocation_id,
                device=document,
                connections=connections,
                reasoning=payload.reasoning,
                confidence=payload.confidence,
                position=position,
            )
        )

    # ------------------------------------------------------------------ #
    # Connections
    # ------------------------------------------------------------------ #

    def _connection_addition(self, invocation_id: str, payload: ConnectionAdditionInput) -> None:
        pair = self._resolve_pair(payload.from_device_name, payload.to_device_name)
        if pair is None:
            return
        source, target = pair
        if self._snapshot.connection_between(source.id, target.id) is not None:
            self._notice(f"Connection {source.name} ↔ {target.name} already exists")
            return

        self._result.connection_suggestion = ConnectionSuggestion(
            id=invocation_id,
            kind="connection_addition",
            from_device=DeviceRef(id=source.id, name=source.name),
            to_device=DeviceRef(id=target.id, name=target.name),
            connection={
                "fromPort": payload.from_port,
                "toPort": payload.to_port,
                "type": payload.connection_type,
                "speed": payload.speed,
                "vlans": list(payload.vlans),
                "cableType": payload.cable_type,
            },
            reasoning=payload.reasoning,
        )

    def _connection_modification(
        self, invocation_id: str, payload: ConnectionModificationInput
    ) -> None:
        pair = self._resolve_pair(payload.from_device_name, payload.to_device_name)
        if pair is None:
            return
        source, target = pair
        connection = self._snapshot.connection_between(source.id, target.id)
        if connection is None:
            self._errors.append(f"No connection between {source.name} and {target.name}")
            return

        current = connection.to_document()
        self._result.connection_suggestion = ConnectionSuggestion(
            id=invocation_id,
            kind="connection_modification",
            from_device=DeviceRef(id=source.id, name=source.name),
            to_device=DeviceRef(id=target.id, name=target.name),
            connection_id=connection.id,
            updates=dict(payload.updates),
            current_values={key: current.get(key) for key in payload.updates},
            reasoning=payload.reasoning,
        )

    def _connection_removal(self, invocation_id: str, payload: ConnectionRemovalInput) -> None:
        pair = self._resolve_pair(payload.from_device_name, payload.to_device_name)
        if pair is None:
            return
        source, target = pair
        connection = self._snapshot.connection_between(source.id, target.id)
        if connection is None:
            self._errors.append(f"No connection between {source.name} and {target.name}")
            return

        self._result.connection_suggestion = ConnectionSuggestion(
            id=invocation_id,
            kind="connection_removal",
            from_device=DeviceRef(id=source.id, name=source.name),
            to_device=DeviceRef(id=target.id, name=target.name),
            connection_id=connection.id,
            reasoning=payload.reasoning,
        )

    # ------------------------------------------------------------------ #
    # VLANs
    # ------------------------------------------------------------------ #

    def _resolve_names(self, names: Iterable[str], vlan_id: int) -> List[DeviceRef]:
        refs: List[DeviceRef] = []
        unresolved: List[str] = []
        for name in names:
            device = self._snapshot.device_by_name(name)
            if device is None:
                unresolved.append(name)
            elif all(ref.id != device.id for ref in refs):
                refs.append(DeviceRef(id=device.id, name=device.name))
        if unresolved:
            self._notice(f"Devices not found for VLAN {vlan_id}: {', '.join(unresolved)}")
        return refs

    def _vlan_creation(self, invocation_id: str, payload: VlanCreationInput) -> None:
        if payload.vlan_id in self._snapshot.vlans:
            self._notice(f"VLAN {payload.vlan_id} already exists")
            return

        self._result.vlan_suggestion = VlanSuggestion(
            id=invocation_id,
            kind="vlan_creation",
            vlan_id=payload.vlan_id,
            name=payload.name,
            subnet=payload.subnet,
            gateway=payload.gateway,
            description=payload.description,
            devices_to_assign=self._resolve_names(payload.devices_to_assign, payload.vlan_id),
            reasoning=payload.reasoning,
        )

    def _vlan_assignment(self, invocation_id: str, payload: VlanAssignmentInput) -> None:
        vlan = self._snapshot.vlans.get(payload.vlan_id)
        if vlan is None:
            self._errors.append(f"VLAN {payload.vlan_id} does not exist")
            return

        refs = self._resolve_names(payload.device_names, payload.vlan_id)
        if not refs:
            self._errors.append(f"No devices to assign to VLAN {payload.vlan_id}")
            return

        self._result.vlan_suggestion = VlanSuggestion(
            id=invocation_id,
            kind="vlan_assignment",
            vlan_id=vlan.id,
            name=vlan.name,
            devices_to_assign=refs,
            reasoning=payload.reasoning,
        )

    # ------------------------------------------------------------------ #
    # Informational
    # ------------------------------------------------------------------ #

    def _security_findings(self, payload: SecurityFindingsInput) -> None:
        findings = [SecurityFinding(**finding.model_dump()) for finding in payload.findings]
        counts = {severity: 0 for severity in ("critical", "high", "medium", "low", "info")}
        for finding in findings:
            counts[finding.severity] += 1

        self._result.security_report = SecurityReport(
            summary=payload.summary,
            findings=findings,
            critical_count=counts["critical"],
            high_count=counts["high"],
            medium_count=counts["medium"],
            low_count=counts["low"],
            info_count=counts["info"],
        )

    def _import_request(self, payload: MerakiImportInput) -> None:
        self._result.import_requested = True
        logger.info("meraki_import_requested", reason=payload.reason)
        self._notice("Opening Meraki import wizard...")

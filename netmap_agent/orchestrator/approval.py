from __future__ import annotations

import random
from typing import Dict, Optional

import structlog
from pydantic import ValidationError

from ..suggestions.proposals import apply_nested_updates
from ..topology.models import Device, Vlan
from ..topology.registry import InMemoryTopologyRegistry
from .domain_metrics import APPROVALS
from .sessions import SessionState, SessionStore

logger = structlog.get_logger("orchestrator.approval")


class ApprovalError(Exception):
    """Base class for approval failures. Pending state is left unchanged."""


class NothingPendingError(ApprovalError):
    """There is no pending item of the requested kind."""


class ApprovalBlockedError(ApprovalError):
    """The pending item cannot be approved (e.g. it failed validation)."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


def _random_color(rng: random.Random) -> str:
    return f"#{rng.randrange(0x1000000):06x}"


class ApprovalService:
    """
    Applies or discards the pending items of a session.

    Approval commits exactly what was reviewed: stored positions for new
    devices, stored updates for change proposals. Registry failures
    (RegistryWriteError) propagate with the pending item left in place so
    the user can retry or decline.
    """

    def __init__(
        self,
        registry: InMemoryTopologyRegistry,
        sessions: SessionStore,
        *,
        rng: Optional[random.Random] = None,
    ):
        self._registry = registry
        self._sessions = sessions
        self._rng = rng or random.Random()

    async def _finish(
        self,
        session: SessionState,
        kind: str,
        decision: str,
        message: str,
        level: str = "info",
    ) -> str:
        session.add_message("system", message, level=level)
        await self._sessions.save(session)
        APPROVALS.labels(kind=kind, decision=decision).inc()
        logger.info(
            "pending_item_resolved",
            session_id=session.session_id,
            kind=kind,
            decision=decision,
        )
        return message

    # ------------------------------------------------------------------ #
    # Single device
    # ------------------------------------------------------------------ #

    async def approve_suggestion(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        suggestion = session.pending.suggestion
        if suggestion is None:
            raise NothingPendingError("No device suggestion is pending")

        self._registry.add_devices([suggestion.to_new_device()])
        session.pending.suggestion = None
        return await self._finish(
            session, "device", "approved", f"Added {suggestion.name} to your network"
        )

    async def decline_suggestion(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        if session.pending.suggestion is None:
            raise NothingPendingError("No device suggestion is pending")

        session.pending.suggestion = None
        return await self._finish(
            session,
            "device",
            "declined",
            "Okay, I won't add that device. Let me know if you change your mind!",
        )

    # ------------------------------------------------------------------ #
    # Batch
    # ------------------------------------------------------------------ #

    async def approve_batch(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        batch = session.pending.batch
        if batch is None:
            raise NothingPendingError("No device batch is pending")

        added = self._registry.add_devices([s.to_new_device() for s in batch.suggestions])
        session.pending.batch = None
        names = ", ".join(device.name for device in added)
        return await self._finish(
            session, "batch", "approved", f"Added {len(added)} devices: {names}"
        )

    async def decline_batch(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        batch = session.pending.batch
        if batch is None:
            raise NothingPendingError("No device batch is pending")

        session.pending.batch = None
        return await self._finish(
            session,
            "batch",
            "declined",
            f"Declined {len(batch.suggestions)} device suggestions",
        )

    # ------------------------------------------------------------------ #
    # Change proposal
    # ------------------------------------------------------------------ #

    async def approve_change(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        change = session.pending.change
        if change is None:
            raise NothingPendingError("No change proposal is pending")
        if not change.approvable:
            errors = dict(change.validation.errors)
            if change.missing_device_ids:
                errors["deviceIds"] = f"Devices not found: {', '.join(change.missing_device_ids)}"
            raise ApprovalBlockedError("Change proposal has validation errors", errors=errors)

        snapshot = self._registry.snapshot()
        updated: Dict[str, Device] = {}
        for device_id in change.device_ids:
            device = snapshot.devices.get(device_id)
            if device is None:
                continue
            document = apply_nested_updates(device.to_document(), change.updates)
            try:
                updated[device_id] = Device.model_validate(document)
            except ValidationError as exc:
                errors = {
                    ".".join(str(part) for part in error["loc"]): error["msg"] for error in exc.errors()
                }
                logger.warning("change_rejected_by_model", device_id=device_id, errors=errors)
                raise ApprovalBlockedError(f"Change cannot be applied to {device.name}", errors=errors)

        written = self._registry.replace_devices(updated)
        session.pending.change = None

        if not written:
            logger.warning("change_targets_vanished", device_ids=change.device_ids)
            message = "No changes applied - none of the proposed devices exist any more"
            return await self._finish(session, "change", "approved", message, level="error")
        if len(written) == 1:
            message = f"Applied changes to {updated[written[0]].name}"
        else:
            message = f"Applied changes to {len(written)} devices"
        return await self._finish(session, "change", "approved", message)

    async def decline_change(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        if session.pending.change is None:
            raise NothingPendingError("No change proposal is pending")

        session.pending.change = None
        return await self._finish(
            session, "change", "declined", "Change cancelled - no modifications made"
        )

    # ------------------------------------------------------------------ #
    # Connections
    # ------------------------------------------------------------------ #

    async def approve_connection(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        suggestion = session.pending.connection
        if suggestion is None:
            raise NothingPendingError("No connection suggestion is pending")

        source, target = suggestion.from_device, suggestion.to_device
        if suggestion.kind == "connection_addition":
            self._registry.add_connection(
                {**suggestion.connection, "from": source.id, "to": target.id, "status": "up"}
            )
            message = f"Added connection: {source.name} → {target.name}"
        elif suggestion.kind == "connection_modification":
            self._registry.update_connection(suggestion.connection_id, suggestion.updates)
            message = f"Modified connection: {source.name} ↔ {target.name}"
        else:
            self._registry.remove_connection(suggestion.connection_id)
            message = f"Removed connection: {source.name} ✕ {target.name}"

        session.pending.connection = None
        return await self._finish(session, "connection", "approved", message)

    async def decline_connection(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        if session.pending.connection is None:
            raise NothingPendingError("No connection suggestion is pending")

        session.pending.connection = None
        return await self._finish(
            session, "connection", "declined", "Connection suggestion declined"
        )

    # ------------------------------------------------------------------ #
    # VLANs
    # ------------------------------------------------------------------ #

    async def approve_vlan(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        suggestion = session.pending.vlan
        if suggestion is None:
            raise NothingPendingError("No VLAN suggestion is pending")

        device_ids = [ref.id for ref in suggestion.devices_to_assign]
        if suggestion.kind == "vlan_creation":
            self._registry.add_vlan(
                Vlan(
                    id=suggestion.vlan_id,
                    name=suggestion.name or f"VLAN {suggestion.vlan_id}",
                    subnet=suggestion.subnet,
                    gateway=suggestion.gateway,
                    description=suggestion.description,
                    color=_random_color(self._rng),
                ),
                device_ids,
            )
            message = f"Created VLAN {suggestion.vlan_id}: {suggestion.name}"
        else:
            self._registry.assign_vlan(suggestion.vlan_id, device_ids)
            message = f"Assigned {len(device_ids)} device(s) to VLAN {suggestion.vlan_id}"

        session.pending.vlan = None
        return await self._finish(session, "vlan", "approved", message)

    async def decline_vlan(self, session_id: str) -> str:
        session = await self._sessions.load(session_id)
        if session.pending.vlan is None:
            raise NothingPendingError("No VLAN suggestion is pending")

        session.pending.vlan = None
        return await self._finish(session, "vlan", "declined", "VLAN suggestion declined")

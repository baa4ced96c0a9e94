from __future__ import annotations

import copy
import json
import re
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog
from pydantic import BaseModel

from ..topology.models import DEVICE_STATUSES, DEVICE_TYPES, TopologySnapshot
from .models import AffectedDevice, ChangeProposal, FieldChange, ProposalValidation

logger = structlog.get_logger("suggestions.proposals")

PROPOSAL_ACTION = "propose_network_change"

_FENCE_RE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)
_IP_RE = re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}", re.ASCII)
_MAC_RE = re.compile(r"([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}", re.ASCII)
_LEADING_INT_RE = re.compile(r"\s*([+-]?[0-9]+)", re.ASCII)

FIELD_LABELS = {
    "name": "Name",
    "ip": "IP Address",
    "mac": "MAC Address",
    "status": "Status",
    "type": "Device Type",
    "floor": "Floor",
    "buildingId": "Building",
    "notes": "Notes",
    "hardware.manufacturer": "Manufacturer",
    "hardware.model": "Model",
    "hardware.serialNumber": "Serial Number",
    "hardware.firmware.version": "Firmware Version",
    "hardware.firmware.lastUpdated": "Firmware Last Updated",
    "hardware.firmware.updateAvailable": "Update Available",
    "hardware.firmware.updateVersion": "Available Update Version",
    "location.building": "Building Name",
    "location.floor": "Floor Description",
    "location.room": "Room",
}

# Hardware leaves are free text except for these.
_BOOLEAN_FIELDS = {"hardware.firmware.updateAvailable"}
_STRING_FIELD_MESSAGES = {
    "hardware.manufacturer": "Manufacturer must be a string",
    "hardware.model": "Model must be a string",
    "hardware.firmware.version": "Firmware version must be a string",
    "hardware.firmware.lastUpdated": "Firmware last updated must be a date string",
}


class ProposalRequest(BaseModel):
    """A change proposal as written by the assistant, before any checks."""

    device_ids: List[str]
    updates: Dict[str, Any]
    summary: str
    reasoning: Optional[str] = None


def get_field_label(path: str) -> str:
    return FIELD_LABELS.get(path, path)


# ---------------------------------------------------------------------- #
# Extraction
# ---------------------------------------------------------------------- #


def extract_proposal(text: Optional[str]) -> Optional[ProposalRequest]:
    """
    Find the first ```json fenced block in assistant text and read it as a
    change proposal.

    Returns None when there is no block, the JSON does not parse, the action
    is not a change proposal, or a required field is missing. Never raises.
    """
    match = _FENCE_RE.search(text or "")
    if not match:
        return None

    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        logger.warning("proposal_json_invalid", error=str(exc))
        return None

    if not isinstance(data, dict) or data.get("action") != PROPOSAL_ACTION:
        return None

    device_ids = data.get("deviceIds")
    updates = data.get("updates")
    summary = data.get("summary")

    if not isinstance(device_ids, list) or not device_ids:
        return None
    if not all(isinstance(device_id, str) and device_id for device_id in device_ids):
        return None
    if not isinstance(updates, dict) or not updates:
        return None
    if not isinstance(summary, str) or not summary.strip():
        return None

    reasoning = data.get("reasoning")
    return ProposalRequest(
        device_ids=device_ids,
        updates=updates,
        summary=summary.strip(),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


# ---------------------------------------------------------------------- #
# Validation
# ---------------------------------------------------------------------- #


def flatten_updates(updates: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten nested update objects to dot paths.

    {"hardware": {"firmware": {"version": "2.1"}}}
      -> {"hardware.firmware.version": "2.1"}

    Empty objects are kept as values.
    """
    flat: Dict[str, Any] = {}
    for key, value in updates.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping) and value:
            flat.update(flatten_updates(value, prefix=f"{path}."))
        else:
            flat[path] = value
    return flat


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _parse_floor(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def _ip_error(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not _IP_RE.fullmatch(value):
        return "Invalid IP address format"
    if any(int(octet) > 255 for octet in value.split(".")):
        return "IP octets must be between 0 and 255"
    return None


def validate_updates(updates: Mapping[str, Any]) -> ProposalValidation:
    """
    Check proposed field values. Errors are keyed by dot path.

    Blank ip/mac/status/type values clear the field and are accepted.
    """
    errors: Dict[str, str] = {}

    for path, value in flatten_updates(updates).items():
        if path == "ip":
            if not _is_blank(value):
                message = _ip_error(value)
                if message:
                    errors[path] = message
        elif path == "mac":
            if _is_blank(value):
                continue
            if not isinstance(value, str) or not _MAC_RE.fullmatch(value):
                errors[path] = (
                    "Invalid MAC address format (use XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX)"
                )
        elif path == "status":
            if not _is_blank(value) and value not in DEVICE_STATUSES:
                errors[path] = f"Status must be one of: {', '.join(DEVICE_STATUSES)}"
        elif path == "type":
            if not _is_blank(value) and value not in DEVICE_TYPES:
                errors[path] = f"Type must be one of: {', '.join(DEVICE_TYPES)}"
        elif path == "floor":
            if value is not None:
                floor = _parse_floor(value)
                if floor is None or floor < 1:
                    errors[path] = "Floor must be a positive number"
        elif path == "name":
            if not isinstance(value, str) or not value.strip():
                errors[path] = "Name cannot be empty"
        elif path in _BOOLEAN_FIELDS:
            if not isinstance(value, bool):
                errors[path] = f"{get_field_label(path)} must be true or false"
        elif path.startswith("hardware."):
            if not isinstance(value, str):
                errors[path] = _STRING_FIELD_MESSAGES.get(
                    path, f"{get_field_label(path)} must be a string"
                )

    return ProposalValidation(valid=not errors, errors=errors)


# ---------------------------------------------------------------------- #
# Diff & apply
# ---------------------------------------------------------------------- #


def resolve_path(document: Any, path: str) -> Any:
    """Read a dot path; any missing or non-object step yields None."""
    current = document
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def build_diff(
    device_ids: Iterable[str],
    updates: Mapping[str, Any],
    snapshot: TopologySnapshot,
) -> Tuple[List[AffectedDevice], List[str]]:
    """
    Compute old/new values per field for each target device.

    Returns (affected devices, ids missing from the snapshot).
    """
    flat = flatten_updates(updates)
    affected: List[AffectedDevice] = []
    missing: List[str] = []

    for device_id in device_ids:
        device = snapshot.devices.get(device_id)
        if device is None:
            missing.append(device_id)
            continue
        document = device.to_document()
        affected.append(
            AffectedDevice(
                id=device.id,
                name=device.name,
                changes={
                    path: FieldChange(old=resolve_path(document, path), new=value)
                    for path, value in flat.items()
                },
            )
        )

    return affected, missing


def apply_nested_updates(entity: Mapping[str, Any], updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of `entity` with dot-path updates applied.

    Intermediate objects are created when absent and copied before being
    written, so `entity` is never modified. Sibling fields are preserved.
    """
    result = dict(entity)
    for path, value in flatten_updates(updates).items():
        parts = path.split(".")
        current = result
        for part in parts[:-1]:
            child = current.get(part)
            child = dict(child) if isinstance(child, Mapping) else {}
            current[part] = child
            current = child
        current[parts[-1]] = copy.deepcopy(value)
    return result


def build_change_proposal(request: ProposalRequest, snapshot: TopologySnapshot) -> ChangeProposal:
    """Validate and diff a proposal against the current topology."""
    updates = flatten_updates(request.updates)
    validation = validate_updates(updates)
    if validation.valid and updates.get("floor") is not None:
        # "2nd" is accepted as floor 2; store the number
        updates["floor"] = _parse_floor(updates["floor"])
    affected, missing = build_diff(request.device_ids, updates, snapshot)

    proposal = ChangeProposal(
        id=f"change-{uuid.uuid4().hex[:12]}",
        device_ids=list(request.device_ids),
        updates=updates,
        summary=request.summary,
        reasoning=request.reasoning,
        affected_devices=affected,
        validation=validation,
        missing_device_ids=missing,
    )

    logger.info(
        "change_proposal_built",
        proposal_id=proposal.id,
        devices=len(request.device_ids),
        fields=sorted(updates),
        valid=validation.valid,
        missing=missing,
    )
    return proposal

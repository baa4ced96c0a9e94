from __future__ import annotations

"""
Tool schemas offered to the model on every turn.

Names must match suggestions.payloads.ToolName; the payload models there are
the authoritative validators, these schemas only guide the model.
"""

from typing import Any, Dict, List

from ..suggestions.payloads import ToolName
from ..topology.models import DEVICE_TYPES

_DEVICE_NAME = {"type": "string", "description": "Exact name of an existing device"}
_REASONING = {"type": "string", "description": "Why this change is suggested"}
_VLAN_ID = {"type": "integer", "minimum": 1, "maximum": 4094, "description": "VLAN ID"}
_VLAN_LIST = {"type": "array", "items": {"type": "integer"}}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": ToolName.DEVICE_ADDITION.value,
        "description": (
            "Suggest adding a detected network device to the topology. Use this when you "
            "identify devices from logs, configurations, or descriptions that are not yet "
            "in the network. Call it once per device, all in the same response."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "device": {
                    "type": "object",
                    "description": "Device properties",
                    "properties": {
                        "name": {"type": "string", "description": "Device hostname or name"},
                        "type": {"type": "string", "enum": list(DEVICE_TYPES)},
                        "ip": {"type": "string", "description": "IP address"},
                        "mac": {"type": "string", "description": "MAC address"},
                        "hardware": {
                            "type": "object",
                            "properties": {
                                "manufacturer": {"type": "string"},
                                "model": {"type": "string"},
                                "serialNumber": {"type": "string"},
                                "firmware": {
                                    "type": "object",
                                    "properties": {
                                        "version": {"type": "string"},
                                        "lastUpdated": {"type": "string"},
                                        "updateAvailable": {"type": "boolean"},
                                        "updateVersion": {"type": "string"},
                                    },
                                },
                            },
                        },
                        "vlans": {**_VLAN_LIST, "description": "VLAN IDs"},
                        "buildingId": {"type": "string", "description": "Building ID if known"},
                        "floor": {"type": "integer", "description": "Floor number if known"},
                        "notes": {"type": "string"},
                    },
                    "required": ["name", "type"],
                },
                "connections": {
                    "type": "array",
                    "description": "Suggested connections to existing devices",
                    "items": {
                        "type": "object",
                        "properties": {
                            "toDeviceName": _DEVICE_NAME,
                            "fromPort": {"type": "string", "description": "Port on new device"},
                            "toPort": {"type": "string", "description": "Port on existing device"},
                            "type": {"type": "string", "enum": ["trunk", "access"]},
                            "speed": {"type": "string", "description": 'Link speed, e.g. "1G"'},
                            "vlans": _VLAN_LIST,
                            "cableType": {"type": "string", "description": 'e.g. "cat6", "fiber"'},
                        },
                        "required": ["toDeviceName"],
                    },
                },
                "reasoning": {
                    "type": "string",
                    "description": "How the device was detected and its properties determined",
                },
                "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
            },
            "required": ["device", "reasoning", "confidence"],
        },
    },
    {
        "name": ToolName.CONNECTION_ADDITION.value,
        "description": "Suggest a new link between two existing devices.",
        "input_schema": {
            "type": "object",
            "properties": {
                "fromDeviceName": _DEVICE_NAME,
                "toDeviceName": _DEVICE_NAME,
                "fromPort": {"type": "string"},
                "toPort": {"type": "string"},
                "connectionType": {"type": "string", "enum": ["trunk", "access"]},
                "speed": {"type": "string"},
                "vlans": _VLAN_LIST,
                "cableType": {"type": "string"},
                "reasoning": _REASONING,
            },
            "required": ["fromDeviceName", "toDeviceName", "reasoning"],
        },
    },
    {
        "name": ToolName.CONNECTION_MODIFICATION.value,
        "description": "Suggest changing fields of the existing link between two devices.",
        "input_schema": {
            "type": "object",
            "properties": {
                "fromDeviceName": _DEVICE_NAME,
                "toDeviceName": _DEVICE_NAME,
                "updates": {
                    "type": "object",
                    "description": "Connection fields to change",
                    "properties": {
                        "fromPort": {"type": "string"},
                        "toPort": {"type": "string"},
                        "type": {"type": "string", "enum": ["trunk", "access"]},
                        "speed": {"type": "string"},
                        "vlans": _VLAN_LIST,
                        "cableType": {"type": "string"},
                        "status": {"type": "string"},
                    },
                },
                "reasoning": _REASONING,
            },
            "required": ["fromDeviceName", "toDeviceName", "updates", "reasoning"],
        },
    },
    {
        "name": ToolName.CONNECTION_REMOVAL.value,
        "description": "Suggest removing the existing link between two devices.",
        "input_schema": {
            "type": "object",
            "properties": {
                "fromDeviceName": _DEVICE_NAME,
                "toDeviceName": _DEVICE_NAME,
                "reasoning": _REASONING,
            },
            "required": ["fromDeviceName", "toDeviceName", "reasoning"],
        },
    },
    {
        "name": ToolName.VLAN_CREATION.value,
        "description": "Suggest creating a VLAN, optionally assigning existing devices to it.",
        "input_schema": {
            "type": "object",
            "properties": {
                "vlanId": _VLAN_ID,
                "name": {"type": "string"},
                "subnet": {"type": "string", "description": "CIDR, e.g. 10.0.20.0/24"},
                "gateway": {"type": "string"},
                "description": {"type": "string"},
                "devicesToAssign": {"type": "array", "items": _DEVICE_NAME},
                "reasoning": _REASONING,
            },
            "required": ["vlanId", "name", "reasoning"],
        },
    },
    {
        "name": ToolName.VLAN_ASSIGNMENT.value,
        "description": "Suggest adding existing devices to an existing VLAN.",
        "input_schema": {
            "type": "object",
            "properties": {
                "vlanId": _VLAN_ID,
                "deviceNames": {"type": "array", "items": _DEVICE_NAME, "minItems": 1},
                "reasoning": _REASONING,
            },
            "required": ["vlanId", "deviceNames", "reasoning"],
        },
    },
    {
        "name": ToolName.SECURITY_FINDINGS.value,
        "description": "Report security findings about the current topology.",
        "input_schema": {
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "findings": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "severity": {
                                "type": "string",
                                "enum": ["critical", "high", "medium", "low", "info"],
                            },
                            "title": {"type": "string"},
                            "description": {"type": "string"},
                            "affectedDevices": {"type": "array", "items": {"type": "string"}},
                            "recommendation": {"type": "string"},
                        },
                        "required": ["severity", "title"],
                    },
                },
            },
            "required": ["findings"],
        },
    },
    {
        "name": ToolName.MERAKI_IMPORT.value,
        "description": "Ask the user to import their network from the Meraki dashboard.",
        "input_schema": {
            "type": "object",
            "properties": {"reason": {"type": "string"}},
        },
    },
]

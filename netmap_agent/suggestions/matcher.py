from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ..topology.models import Device


def normalize_mac(mac: str) -> str:
    return mac.replace(":", "").replace("-", "").strip().lower()


def find_existing(
    proposed: Mapping[str, Any],
    devices: Iterable[Device],
) -> Optional[Device]:
    """
    Return the existing device equivalent to `proposed`, if any.

    Precedence (first match wins):
      1. name, case-insensitive and whitespace-trimmed
      2. IP, exact, when the proposed IP is non-empty
      3. MAC, ignoring ':'/'-' separators and case, when non-empty
    """
    candidates = list(devices)

    name = str(proposed.get("name") or "").strip().lower()
    if name:
        for device in candidates:
            if device.name.strip().lower() == name:
                return device

    ip = str(proposed.get("ip") or "").strip()
    if ip:
        for device in candidates:
            if (device.ip or "").strip() == ip:
                return device

    mac = normalize_mac(str(proposed.get("mac") or ""))
    if mac:
        for device in candidates:
            if device.mac and normalize_mac(device.mac) == mac:
                return device

    return None

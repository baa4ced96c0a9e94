from __future__ import annotations

import json

import pytest

from netmap_agent.suggestions.proposals import (
    ProposalRequest,
    apply_nested_updates,
    build_change_proposal,
    build_diff,
    extract_proposal,
    flatten_updates,
    get_field_label,
    resolve_path,
    validate_updates,
)


def _fenced(payload) -> str:
    return f"Here is the plan.\n\n```json\n{json.dumps(payload, indent=2)}\n```\n\nApprove?"


PROPOSAL = {
    "action": "propose_network_change",
    "deviceIds": ["dev-sw1"],
    "updates": {"hardware.firmware.version": "2.1"},
    "summary": "Upgrade SW-1 firmware",
    "reasoning": "2.0 has a known bug",
}


# ---------- extraction ----------


def test_extract_proposal_from_fenced_block():
    request = extract_proposal(_fenced(PROPOSAL))

    assert request is not None
    assert request.device_ids == ["dev-sw1"]
    assert request.updates == {"hardware.firmware.version": "2.1"}
    assert request.summary == "Upgrade SW-1 firmware"
    assert request.reasoning == "2.0 has a known bug"


def test_extract_proposal_ignores_plain_text():
    assert extract_proposal("Your network looks healthy.") is None
    assert extract_proposal("") is None
    assert extract_proposal(None) is None


def test_extract_proposal_ignores_invalid_json():
    assert extract_proposal("```json\n{\"action\": \n```") is None


def test_extract_proposal_requires_action_and_fields():
    assert extract_proposal(_fenced({**PROPOSAL, "action": "something_else"})) is None
    assert extract_proposal(_fenced({**PROPOSAL, "deviceIds": []})) is None
    assert extract_proposal(_fenced({**PROPOSAL, "updates": {}})) is None
    assert extract_proposal(_fenced({k: v for k, v in PROPOSAL.items() if k != "summary"})) is None


def test_first_fenced_block_wins():
    second = {**PROPOSAL, "summary": "second"}
    text = _fenced(PROPOSAL) + "\n" + _fenced(second)

    assert extract_proposal(text).summary == "Upgrade SW-1 firmware"


# ---------- validation ----------


def test_valid_updates():
    result = validate_updates(
        {
            "ip": "192.168.1.20",
            "mac": "aa:bb:cc:dd:ee:ff",
            "status": "maintenance",
            "type": "switch",
            "floor": 3,
            "name": "SW-1A",
            "hardware.firmware.version": "2.1",
            "hardware.firmware.updateAvailable": False,
        }
    )

    assert result.valid
    assert result.errors == {}


def test_ip_errors():
    assert validate_updates({"ip": "10.0.0"}).errors == {"ip": "Invalid IP address format"}
    assert validate_updates({"ip": "10.0.0.256"}).errors == {
        "ip": "IP octets must be between 0 and 255"
    }


@pytest.mark.parametrize("ip", ["10.0.0.1\n", "\u0661\u0669\u0662.168.1.1", " 10.0.0.1"])
def test_ip_must_be_plain_ascii_dotted_quad(ip):
    assert validate_updates({"ip": ip}).errors == {"ip": "Invalid IP address format"}


@pytest.mark.parametrize(
    "mac", ["AA:BB:CC:DD:EE:FF\n", "AA:BB:CC:DD:EE:FF:00", "\uff21A:BB:CC:DD:EE:FF"]
)
def test_mac_must_match_exactly(mac):
    errors = validate_updates({"mac": mac}).errors

    assert errors["mac"].startswith("Invalid MAC address format")


def test_mac_accepts_colon_or_dash_separators():
    assert validate_updates({"mac": "aa:bb:cc:dd:ee:ff"}).valid
    assert validate_updates({"mac": "AA-BB-CC-DD-EE-FF"}).valid


def test_blank_values_clear_fields():
    assert validate_updates({"ip": "", "mac": "", "status": "", "type": ""}).valid


def test_enum_and_floor_and_name_errors():
    errors = validate_updates(
        {"status": "broken", "type": "toaster", "floor": 0, "name": "  ", "mac": "aabbcc"}
    ).errors

    assert errors["status"].startswith("Status must be one of:")
    assert errors["type"].startswith("Type must be one of:")
    assert errors["floor"] == "Floor must be a positive number"
    assert errors["name"] == "Name cannot be empty"
    assert errors["mac"].startswith("Invalid MAC address format")


def test_floor_accepts_leading_integer_strings():
    assert validate_updates({"floor": "2nd"}).valid
    assert not validate_updates({"floor": "ground"}).valid


def test_hardware_leaves_must_be_strings_nested_or_dotted():
    nested = validate_updates({"hardware": {"model": 9300, "firmware": {"version": 2.1}}})
    dotted = validate_updates({"hardware.model": 9300})

    assert nested.errors == {
        "hardware.model": "Model must be a string",
        "hardware.firmware.version": "Firmware version must be a string",
    }
    assert dotted.errors == {"hardware.model": "Model must be a string"}


def test_update_available_must_be_boolean():
    result = validate_updates({"hardware.firmware.updateAvailable": "yes"})

    assert result.errors == {"hardware.firmware.updateAvailable": "Update Available must be true or false"}


# ---------- diff & apply ----------


def test_firmware_upgrade_diff(snapshot):
    proposal = build_change_proposal(extract_proposal(_fenced(PROPOSAL)), snapshot)

    assert proposal.validation.valid
    assert proposal.missing_device_ids == []
    change = proposal.affected_devices[0].changes["hardware.firmware.version"]
    assert (change.old, change.new) == ("2.0", "2.1")
    assert proposal.id.startswith("change-")
    assert proposal.approvable


def test_missing_devices_reported_separately(snapshot):
    affected, missing = build_diff(["dev-sw1", "dev-gone"], {"status": "down"}, snapshot)

    assert [d.id for d in affected] == ["dev-sw1"]
    assert missing == ["dev-gone"]


def test_proposal_with_missing_devices_is_not_approvable(snapshot):
    request = ProposalRequest(device_ids=["dev-gone"], updates={"status": "down"}, summary="x")

    proposal = build_change_proposal(request, snapshot)

    assert proposal.validation.valid
    assert not proposal.approvable


def test_proposal_with_newline_terminated_ip_is_not_approvable(snapshot):
    request = ProposalRequest(device_ids=["dev-sw1"], updates={"ip": "10.0.0.99\n"}, summary="x")

    proposal = build_change_proposal(request, snapshot)

    assert proposal.validation.errors == {"ip": "Invalid IP address format"}
    assert not proposal.approvable


def test_diff_of_absent_path_has_none_old_value(snapshot):
    affected, _ = build_diff(["dev-ap"], {"location.room": "101"}, snapshot)

    assert affected[0].changes["location.room"].old is None


def test_apply_does_not_mutate_input():
    entity = {"name": "SW-1", "hardware": {"manufacturer": "Cisco", "firmware": {"version": "2.0"}}}

    updated = apply_nested_updates(entity, {"hardware.firmware.version": "2.1"})

    assert entity["hardware"]["firmware"]["version"] == "2.0"
    assert updated["hardware"]["firmware"]["version"] == "2.1"
    assert updated["hardware"]["manufacturer"] == "Cisco"


def test_apply_creates_intermediate_objects():
    updated = apply_nested_updates({"name": "ap"}, {"location.room": "101"})

    assert updated == {"name": "ap", "location": {"room": "101"}}


def test_nested_update_keeps_siblings():
    entity = {"hardware": {"manufacturer": "Cisco", "model": "old"}}

    updated = apply_nested_updates(entity, {"hardware": {"model": "C9300"}})

    assert updated["hardware"] == {"manufacturer": "Cisco", "model": "C9300"}


def test_apply_then_rediff_reproduces_recorded_changes(snapshot):
    updates = {"status": "maintenance", "hardware": {"firmware": {"version": "2.1"}}, "floor": 2}
    assert validate_updates(updates).valid
    affected, _ = build_diff(["dev-sw1"], updates, snapshot)

    pre = snapshot.devices["dev-sw1"].to_document()
    post = apply_nested_updates(pre, updates)
    rederived = {
        path: (resolve_path(pre, path), resolve_path(post, path))
        for path in flatten_updates(updates)
    }

    assert rederived == {
        path: (change.old, change.new) for path, change in affected[0].changes.items()
    }


def test_flatten_updates():
    assert flatten_updates({"a": {"b": {"c": 1}}, "d": 2, "e": {}}) == {"a.b.c": 1, "d": 2, "e": {}}


def test_field_labels():
    assert get_field_label("hardware.firmware.version") == "Firmware Version"
    assert get_field_label("custom.path") == "custom.path"

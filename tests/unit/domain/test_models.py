"""
contract-governance — unit tests for descriptor models

File: tests/unit/domain/test_models.py

Purpose
- Validate strict parsing of plain-data descriptors into typed specs.

What this test file should cover
- Dispatch on ``specType`` and ``to_dict`` round trips.
- Field-map parsing rules (name/map-key agreement, unique enum values).
- Emission declarations: inline payloads, refs, unresolved entries.
"""

from __future__ import annotations

import pytest

from contract_governance.domain.models import (
    AuthLevel,
    CapabilitySpec,
    CapabilitySurface,
    FieldType,
    GenericSpec,
    OperationSpec,
    ResourceRef,
    SpecType,
    composite_key,
    descriptor_from_dict,
    descriptors_from_json,
    iter_resolved_emits,
)


def _operation_payload() -> dict[str, object]:
    return {
        "specType": "operation",
        "key": "payments.charge",
        "version": "1.0.0",
        "owners": ["team-payments"],
        "tags": ["billing"],
        "authLevel": "user",
        "http": {"method": "post", "path": "/charges"},
        "io": {
            "input": {
                "amount": {"type": "number"},
                "currency": {"type": "enum", "enumValues": ["EUR", "USD"]},
                "note": {"type": "string", "required": False, "nullable": True},
            },
            "output": {"chargeId": {"type": "string"}},
        },
        "sideEffects": {
            "emits": [
                {"key": "payments.charged", "version": "1.0.0"},
                {"unresolved": "eventFor(kind)"},
            ]
        },
        "capability": {"key": "payments", "version": "1.0.0"},
    }


def test_operation_descriptor_parses_and_round_trips() -> None:
    spec = descriptor_from_dict(_operation_payload())

    assert isinstance(spec, OperationSpec)
    assert spec.composite_key == "payments.charge.v1.0.0"
    assert spec.auth_level is AuthLevel.USER
    assert spec.http is not None and spec.http.method == "POST"
    assert spec.input["currency"].type is FieldType.ENUM
    assert spec.input["note"].required is False
    assert spec.capability is not None and spec.capability.composite_key == "payments.v1.0.0"

    dumped = spec.to_dict()
    assert dumped["specType"] == "operation"
    assert descriptor_from_dict(dumped) == spec


def test_iter_resolved_emits_skips_unresolved_entries() -> None:
    spec = descriptor_from_dict(_operation_payload())
    assert isinstance(spec, OperationSpec)

    resolved = list(iter_resolved_emits(spec))
    assert [item.composite_key for item in resolved] == ["payments.charged.v1.0.0"]
    assert spec.emits[1].composite_key is None


def test_emit_ref_form_points_at_registered_event() -> None:
    payload = _operation_payload()
    payload["sideEffects"] = {"emits": [{"ref": {"key": "payments.charged", "version": "2.0.0"}}]}

    spec = descriptor_from_dict(payload)
    assert isinstance(spec, OperationSpec)
    assert spec.emits[0].key == "payments.charged"
    assert spec.emits[0].payload is None


def test_side_effects_and_emitted_events_are_mutually_exclusive() -> None:
    payload = _operation_payload()
    payload["emittedEvents"] = []

    with pytest.raises(ValueError, match="set only one of"):
        descriptor_from_dict(payload)


def test_field_name_must_match_map_key() -> None:
    payload = _operation_payload()
    payload["io"] = {"input": {"amount": {"name": "total", "type": "number"}}}

    with pytest.raises(ValueError, match="does not match map key"):
        descriptor_from_dict(payload)


def test_duplicate_enum_values_are_rejected() -> None:
    payload = _operation_payload()
    payload["io"] = {"input": {"currency": {"type": "enum", "enumValues": ["EUR", "EUR"]}}}

    with pytest.raises(ValueError, match="duplicate"):
        descriptor_from_dict(payload)


@pytest.mark.parametrize("version", ["", "one", "1.0.0-", "1.0.0.0"])
def test_invalid_versions_are_rejected(version: str) -> None:
    payload = _operation_payload()
    payload["version"] = version

    with pytest.raises(ValueError):
        descriptor_from_dict(payload)


def test_unknown_top_level_fields_are_rejected() -> None:
    payload = _operation_payload()
    payload["handler"] = "charge.py"

    with pytest.raises(ValueError, match="unexpected fields"):
        descriptor_from_dict(payload)


def test_resource_ref_output() -> None:
    payload = _operation_payload()
    payload["io"] = {"input": {}, "output": {"resourceRef": {"entity": "Charge", "many": True}}}

    spec = descriptor_from_dict(payload)
    assert isinstance(spec, OperationSpec)
    assert spec.output == ResourceRef(entity="Charge", many=True)


def test_nested_field_shapes_parse() -> None:
    payload = _operation_payload()
    payload["io"] = {
        "input": {
            "lines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"sku": {"type": "string"}, "qty": {"type": "number"}},
                },
            },
            "ref": {"type": "union", "unionTypes": [{"type": "string"}, {"type": "number"}]},
        }
    }

    spec = descriptor_from_dict(payload)
    assert isinstance(spec, OperationSpec)
    lines = spec.input["lines"]
    assert lines.items is not None and lines.items.properties is not None
    assert set(lines.items.properties) == {"qty", "sku"}
    union = spec.input["ref"].union_types
    assert union is not None
    assert [member.type for member in union] == [FieldType.STRING, FieldType.NUMBER]


def test_capability_descriptor_parses_surfaces_and_requirements() -> None:
    spec = descriptor_from_dict(
        {
            "specType": "capability",
            "key": "payments",
            "version": "1.0.0",
            "provides": [{"surface": "operation", "key": "payments.charge"}],
            "requires": [{"key": "auth", "optional": True}],
            "extends": {"key": "billing", "version": "1.0.0"},
        }
    )

    assert isinstance(spec, CapabilitySpec)
    assert spec.provides[0].surface is CapabilitySurface.OPERATION
    assert spec.provides[0].version is None
    assert spec.requires[0].optional is True
    assert spec.extends is not None and spec.extends.key == "billing"


def test_unmodelled_spec_types_become_generic_specs() -> None:
    spec = descriptor_from_dict({"specType": "workflow", "key": "onboarding", "version": "1.0.0"})

    assert isinstance(spec, GenericSpec)
    assert spec.spec_type is SpecType.WORKFLOW
    assert spec.to_dict() == {
        "specType": "workflow",
        "key": "onboarding",
        "version": "1.0.0",
        "stability": "stable",
        "owners": [],
        "tags": [],
    }


def test_descriptors_from_json_rejects_non_objects() -> None:
    with pytest.raises(ValueError, match=r"descriptors\[0\]"):
        descriptors_from_json("[1]")


def test_composite_key_format() -> None:
    assert composite_key("users.create", "2.1.0") == "users.create.v2.1.0"

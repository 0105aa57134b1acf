"""
contract-governance — unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate structured config issues, profile overlays, and the CI gate.
"""

from __future__ import annotations

import pytest

from contract_governance.analysis.impact import classify_impact
from contract_governance.config.schema import (
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    gate_exit_code,
    merge_config,
    validate_config,
)
from contract_governance.domain.models import SpecDescriptor, descriptor_from_dict


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["impact"]["fail_on"] == "breaking"


def test_issues_have_deterministic_paths() -> None:
    config = merge_config(
        default_config(),
        {
            "impact": {"fail_on": "sometimes", "verbose": True},
            "observability": {"redact_secrets": "yes"},
        },
    )

    result = validate_config(config)

    assert not result.is_valid
    assert [issue.path for issue in result.issues] == [
        "impact.verbose",
        "impact.fail_on",
        "observability.redact_secrets",
    ]


def test_unsupported_schema_version_gets_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 99}})

    with pytest.raises(ConfigValidationError, match="upgrade contract-governance"):
        assert_valid_config(config)


def test_unknown_section_and_missing_section_are_reported() -> None:
    config = default_config()
    del config["capabilities"]  # type: ignore[misc]
    payload = {**config, "plugins": {}}

    paths = {issue.path for issue in validate_config(payload).issues}

    assert paths == {"capabilities", "plugins"}


def test_profile_overlay_applies_partial_sections() -> None:
    strict = apply_profile_overlay(default_config(), "strict")
    lenient = apply_profile_overlay(default_config(), "lenient")

    assert strict["impact"]["fail_on"] == "non-breaking"
    assert strict["capabilities"]["strict_ancestry"] is True
    assert strict["impact"]["informational_rules"] is True
    assert lenient["impact"] == {"fail_on": "never", "informational_rules": False}


def test_unknown_profile_is_rejected() -> None:
    with pytest.raises(ConfigValidationError, match="profile 'nightly' is not defined"):
        apply_profile_overlay(default_config(), "nightly")


def test_profile_overlays_cannot_touch_meta() -> None:
    config = merge_config(default_config(), {"profiles": {"ci": {"meta": {"schema_version": 2}}}})

    paths = [issue.path for issue in validate_config(config).issues]

    assert paths == ["profiles.ci.meta"]


def _op(version: str, output: dict[str, object]) -> SpecDescriptor:
    return descriptor_from_dict(
        {
            "specType": "operation",
            "key": "users.get",
            "version": version,
            "io": {"input": {}, "output": output},
        }
    )


@pytest.mark.parametrize(
    ("fail_on", "head_output", "expected"),
    [
        ("breaking", {}, 1),
        ("breaking", {"id": {"type": "string"}, "nick": {"type": "string", "required": False}}, 0),
        ("non-breaking", {"id": {"type": "string"}, "nick": {"type": "string", "required": False}}, 1),
        ("non-breaking", {"id": {"type": "string"}}, 0),
        ("never", {}, 0),
    ],
)
def test_gate_exit_code(fail_on: str, head_output: dict[str, object], expected: int) -> None:
    base = [_op("1.0.0", {"id": {"type": "string"}})]
    head = [_op("1.0.0", head_output)]
    result = classify_impact(base, head, timestamp="2026-01-01T00:00:00Z")
    config = merge_config(default_config(), {"impact": {"fail_on": fail_on}})

    assert gate_exit_code(result, config) == expected

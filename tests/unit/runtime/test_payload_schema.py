"""Unit tests for runtime.schema payload validation."""

from __future__ import annotations

from datetime import date

import pytest

from contract_governance.domain.errors import ValidationFailedError
from contract_governance.domain.models import FieldMap, parse_field_map
from contract_governance.runtime.schema import check_field_map, parse_payload


def _fields(raw: dict[str, object]) -> FieldMap:
    return parse_field_map(raw, "fields")


def test_unknown_keys_are_dropped_and_optional_fields_omitted() -> None:
    fields = _fields({"name": {"type": "string"}, "bio": {"type": "string", "required": False}})

    parsed = parse_payload(fields, {"name": "Ada", "extra": 1}, subject="users.create input")

    assert parsed == {"name": "Ada"}


def test_issues_are_collected_with_dotted_paths() -> None:
    fields = _fields(
        {
            "user": {
                "type": "object",
                "properties": {
                    "address": {"type": "object", "properties": {"zip": {"type": "string"}}}
                },
            },
            "tags": {"type": "array", "items": {"type": "string"}},
            "count": {"type": "number"},
        }
    )

    _, issues = check_field_map(
        fields, {"user": {"address": {"zip": 12345}}, "tags": ["a", "b", 3], "count": True}
    )

    assert [issue.path for issue in issues] == ["count", "tags[2]", "user.address.zip"]


def test_missing_required_field_raises_validation_failed() -> None:
    fields = _fields({"email": {"type": "string"}})

    with pytest.raises(ValidationFailedError) as error:
        parse_payload(fields, {}, subject="users.create.v1.0.0 input")

    assert error.value.subject == "users.create.v1.0.0 input"
    assert [(issue.path, issue.message) for issue in error.value.issues] == [
        ("email", "required field missing")
    ]
    assert str(error.value).startswith("ValidationFailed: users.create.v1.0.0 input: ")


def test_null_is_only_accepted_for_nullable_fields() -> None:
    fields = _fields(
        {"note": {"type": "string", "nullable": True}, "title": {"type": "string"}}
    )

    _, issues = check_field_map(fields, {"note": None, "title": None})

    assert [issue.path for issue in issues] == ["title"]


@pytest.mark.parametrize(
    ("field", "value", "ok"),
    [
        ({"type": "number"}, 3.5, True),
        ({"type": "number"}, False, False),
        ({"type": "boolean"}, 1, False),
        ({"type": "date"}, "2026-03-01T10:00:00Z", True),
        ({"type": "date"}, date(2026, 3, 1), True),
        ({"type": "date"}, "yesterday", False),
        ({"type": "enum", "enumValues": ["a", "b"]}, "c", False),
        ({"type": "literal", "enumValues": ["fixed"]}, "fixed", True),
        ({"type": "unknown"}, {"any": ["thing"]}, True),
        ({"type": "union", "unionTypes": [{"type": "string"}, {"type": "number"}]}, 4, True),
        ({"type": "union", "unionTypes": [{"type": "string"}, {"type": "number"}]}, [], False),
    ],
)
def test_scalar_type_checks(field: dict[str, object], value: object, ok: bool) -> None:
    _, issues = check_field_map(_fields({"x": field}), {"x": value})

    assert (not issues) is ok


def test_non_object_root_is_reported_at_dollar() -> None:
    _, issues = check_field_map(_fields({"x": {"type": "string"}}), ["not", "an", "object"])

    assert [issue.path for issue in issues] == ["$"]


def test_empty_field_map_accepts_missing_body() -> None:
    assert parse_payload({}, None, subject="health.ping input") == {}

"""
contract-governance — field-map payload validation

File: src/contract_governance/runtime/schema.py

Purpose
- Parse untrusted payloads (operation input/output, event payloads) against a
  declared field map before they cross a guard in the execution pipeline.

Functional requirements
- Issues carry dotted paths (``user.address.zip``, ``tags[2]``).
- Unknown keys are dropped from the parsed result; missing optional fields
  are omitted; ``None`` is accepted only for nullable fields.
- ``bool`` is never accepted as a number.

Non-functional requirements
- Pure functions; all issues are collected before raising.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from contract_governance.domain.errors import SchemaIssue, ValidationFailedError
from contract_governance.domain.models import FieldMap, FieldSnapshot, FieldType

__all__ = [
    "check_field_map",
    "check_value",
    "parse_payload",
]


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_date(value: object) -> bool:
    if isinstance(value, datetime | date):
        return True
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def check_value(
    spec: FieldSnapshot, value: object, path: str
) -> tuple[object, list[SchemaIssue]]:
    """Check one value against one field; return the parsed value and any issues."""

    if value is None:
        if spec.nullable:
            return None, []
        return None, [SchemaIssue(path, "expected non-null value")]

    field_type = spec.type
    if field_type is FieldType.UNKNOWN:
        return value, []
    if field_type is FieldType.STRING:
        if isinstance(value, str):
            return value, []
        return value, [SchemaIssue(path, f"expected string, got {_type_name(value)}")]
    if field_type is FieldType.NUMBER:
        if _is_number(value):
            return value, []
        return value, [SchemaIssue(path, f"expected number, got {_type_name(value)}")]
    if field_type is FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value, []
        return value, [SchemaIssue(path, f"expected boolean, got {_type_name(value)}")]
    if field_type is FieldType.DATE:
        if _is_date(value):
            return value, []
        return value, [SchemaIssue(path, "expected ISO-8601 date")]
    if field_type in (FieldType.ENUM, FieldType.LITERAL):
        allowed = spec.enum_values
        if allowed is None or value in allowed:
            return value, []
        return value, [SchemaIssue(path, f"expected one of {list(allowed)}, got {value!r}")]
    if field_type is FieldType.ARRAY:
        if not isinstance(value, list | tuple):
            return value, [SchemaIssue(path, f"expected array, got {_type_name(value)}")]
        if spec.items is None:
            return list(value), []
        parsed_items: list[object] = []
        issues: list[SchemaIssue] = []
        for index, item in enumerate(value):
            parsed_item, item_issues = check_value(spec.items, item, f"{path}[{index}]")
            parsed_items.append(parsed_item)
            issues.extend(item_issues)
        return parsed_items, issues
    if field_type is FieldType.OBJECT:
        if not isinstance(value, Mapping):
            return value, [SchemaIssue(path, f"expected object, got {_type_name(value)}")]
        if spec.properties is None:
            return dict(value), []
        return check_field_map(spec.properties, value, path)
    if field_type is FieldType.UNION:
        members = spec.union_types or ()
        if not members:
            return value, []
        for member in members:
            parsed_member, member_issues = check_value(member, value, path)
            if not member_issues:
                return parsed_member, []
        expected = " | ".join(member.type.value for member in members)
        return value, [SchemaIssue(path, f"expected {expected}, got {_type_name(value)}")]
    return value, [SchemaIssue(path, f"unsupported field type {field_type}")]


def check_field_map(
    fields: FieldMap, payload: object, path: str = ""
) -> tuple[dict[str, object], list[SchemaIssue]]:
    if not isinstance(payload, Mapping):
        return {}, [SchemaIssue(path or "$", f"expected object, got {_type_name(payload)}")]

    parsed: dict[str, object] = {}
    issues: list[SchemaIssue] = []
    for name in sorted(fields):
        spec = fields[name]
        field_path = _join(path, name)
        if name not in payload:
            if spec.required:
                issues.append(SchemaIssue(field_path, "required field missing"))
            continue
        value, field_issues = check_value(spec, payload[name], field_path)
        issues.extend(field_issues)
        parsed[name] = value
    return parsed, issues


def parse_payload(fields: FieldMap, payload: Any, *, subject: str) -> dict[str, object]:
    """
    Parse ``payload`` against ``fields``; raise ``ValidationFailedError`` on
    any issue.

    An empty field map accepts ``None`` as an empty object, since operations
    with no declared input are commonly invoked without a body.
    """

    if not fields and payload is None:
        return {}
    parsed, issues = check_field_map(fields, payload)
    if issues:
        raise ValidationFailedError(subject, issues)
    return parsed

"""
contract-governance — semantic diff engine

File: src/contract_governance/analysis/diff.py

Purpose
- Compare two field maps (or two specs) and emit typed deltas that the
  impact classifier turns into a governance verdict.

Functional requirements
- Field rules:
  present -> absent is breaking; new required field is breaking; new
  optional field is ``added``; type change is breaking; required
  true -> false is ``changed`` and false -> true is breaking; nullable
  false -> true is ``changed`` and true -> false is breaking; a removed
  enum value is breaking and an added one is ``added``.
- Recursion follows ``items`` (``<path>.items``), ``properties``
  (``<path>.<name>``) and ``unionTypes`` (``<path>.unionTypes[<type>]``)
  with a dotted path accumulator such as ``io.output.user.email``.
- Every delta carries its full path, old/new value, and a description
  whose wording the classifier's rule table matches on.

Non-functional requirements
- Pure and deterministic: output ordering depends only on the inputs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from contract_governance.domain.models import (
    AuthLevel,
    CapabilitySpec,
    EventSpec,
    FieldSnapshot,
    JSONValue,
    OperationSpec,
    ResourceRef,
    SpecDescriptor,
    SpecType,
)

__all__ = [
    "DiffItem",
    "DiffType",
    "SpecDiff",
    "compute_field_diff",
    "compute_fields_diff",
    "compute_io_diff",
    "compute_spec_diff",
    "diff_specs",
    "match_specs",
]

_AUTH_RANK: dict[AuthLevel, int] = {
    AuthLevel.ANONYMOUS: 0,
    AuthLevel.USER: 1,
    AuthLevel.ADMIN: 2,
}


class DiffType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    BREAKING = "breaking"


@dataclass(frozen=True, slots=True)
class DiffItem:
    """One typed difference at a dotted path."""

    path: str
    type: DiffType
    description: str
    old_value: JSONValue = None
    new_value: JSONValue = None

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "path": self.path,
            "type": self.type.value,
            "description": self.description,
        }
        if self.old_value is not None:
            out["oldValue"] = self.old_value
        if self.new_value is not None:
            out["newValue"] = self.new_value
        return out


@dataclass(frozen=True, slots=True)
class SpecDiff:
    """Diff items computed between a matched base/head spec pair."""

    spec_key: str
    spec_type: SpecType
    base_version: str
    head_version: str
    diffs: tuple[DiffItem, ...] = field(default_factory=tuple)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def compute_field_diff(base: FieldSnapshot, head: FieldSnapshot, path: str) -> list[DiffItem]:
    """Diff two versions of the same field located at ``path``."""

    name = head.name
    diffs: list[DiffItem] = []

    if base.type != head.type:
        diffs.append(
            DiffItem(
                path=f"{path}.type",
                type=DiffType.BREAKING,
                description=f"Field '{name}' type changed from {base.type} to {head.type}",
                old_value=base.type.value,
                new_value=head.type.value,
            )
        )

    if base.required != head.required:
        if head.required:
            diffs.append(
                DiffItem(
                    path=f"{path}.required",
                    type=DiffType.BREAKING,
                    description=f"Field '{name}' made required",
                    old_value=False,
                    new_value=True,
                )
            )
        else:
            diffs.append(
                DiffItem(
                    path=f"{path}.required",
                    type=DiffType.CHANGED,
                    description=f"Field '{name}' made optional",
                    old_value=True,
                    new_value=False,
                )
            )

    if base.nullable != head.nullable:
        if head.nullable:
            diffs.append(
                DiffItem(
                    path=f"{path}.nullable",
                    type=DiffType.CHANGED,
                    description=f"Field '{name}' made nullable",
                    old_value=False,
                    new_value=True,
                )
            )
        else:
            diffs.append(
                DiffItem(
                    path=f"{path}.nullable",
                    type=DiffType.BREAKING,
                    description=f"Field '{name}' no longer nullable",
                    old_value=True,
                    new_value=False,
                )
            )

    base_enum = set(base.enum_values or ())
    head_enum = set(head.enum_values or ())
    for value in sorted(base_enum - head_enum):
        diffs.append(
            DiffItem(
                path=f"{path}.enumValues",
                type=DiffType.BREAKING,
                description=f"Enum value '{value}' removed from '{name}'",
                old_value=value,
            )
        )
    for value in sorted(head_enum - base_enum):
        diffs.append(
            DiffItem(
                path=f"{path}.enumValues",
                type=DiffType.ADDED,
                description=f"Enum value '{value}' added to '{name}'",
                new_value=value,
            )
        )

    if base.type != head.type:
        # Nested structure of a retyped field is not comparable.
        return diffs

    if base.items is not None and head.items is not None:
        diffs.extend(compute_field_diff(base.items, head.items, f"{path}.items"))
    elif base.items is not None:
        diffs.append(
            DiffItem(
                path=f"{path}.items",
                type=DiffType.BREAKING,
                description=f"Field '{name}' items schema removed",
                old_value=base.items.to_dict(),
            )
        )
    elif head.items is not None:
        diffs.append(
            DiffItem(
                path=f"{path}.items",
                type=DiffType.CHANGED,
                description=f"Field '{name}' items schema declared",
                new_value=head.items.to_dict(),
            )
        )

    if base.properties is not None or head.properties is not None:
        diffs.extend(compute_fields_diff(base.properties or {}, head.properties or {}, path))

    if base.union_types is not None or head.union_types is not None:
        diffs.extend(_union_diff(base.union_types or (), head.union_types or (), path, name))

    return diffs


def _union_members(members: Sequence[FieldSnapshot]) -> dict[str, FieldSnapshot]:
    keyed: dict[str, FieldSnapshot] = {}
    seen: dict[str, int] = {}
    for member in members:
        base_key = member.type.value
        count = seen.get(base_key, 0)
        seen[base_key] = count + 1
        keyed[base_key if count == 0 else f"{base_key}#{count}"] = member
    return keyed


def _union_diff(
    base: Sequence[FieldSnapshot],
    head: Sequence[FieldSnapshot],
    path: str,
    name: str,
) -> list[DiffItem]:
    base_members = _union_members(base)
    head_members = _union_members(head)
    diffs: list[DiffItem] = []
    for member_key in sorted(base_members.keys() | head_members.keys()):
        member_path = f"{path}.unionTypes[{member_key}]"
        old = base_members.get(member_key)
        new = head_members.get(member_key)
        if old is not None and new is None:
            diffs.append(
                DiffItem(
                    path=member_path,
                    type=DiffType.BREAKING,
                    description=f"Union member '{member_key}' removed from '{name}'",
                    old_value=old.to_dict(),
                )
            )
        elif old is None and new is not None:
            diffs.append(
                DiffItem(
                    path=member_path,
                    type=DiffType.ADDED,
                    description=f"Union member '{member_key}' added to '{name}'",
                    new_value=new.to_dict(),
                )
            )
        elif old is not None and new is not None:
            diffs.extend(compute_field_diff(old, new, member_path))
    return diffs


def compute_fields_diff(
    base: Mapping[str, FieldSnapshot],
    head: Mapping[str, FieldSnapshot],
    prefix: str,
) -> list[DiffItem]:
    """Diff two field maps; field paths are ``<prefix>.<name>``."""

    diffs: list[DiffItem] = []
    for name in sorted(base.keys() | head.keys()):
        path = _join(prefix, name)
        old = base.get(name)
        new = head.get(name)
        if old is not None and new is None:
            diffs.append(
                DiffItem(
                    path=path,
                    type=DiffType.BREAKING,
                    description=f"Field '{name}' removed",
                    old_value=old.to_dict(),
                )
            )
        elif old is None and new is not None:
            if new.required:
                diffs.append(
                    DiffItem(
                        path=path,
                        type=DiffType.BREAKING,
                        description=f"Required field '{name}' added",
                        new_value=new.to_dict(),
                    )
                )
            else:
                diffs.append(
                    DiffItem(
                        path=path,
                        type=DiffType.ADDED,
                        description=f"Optional field '{name}' added",
                        new_value=new.to_dict(),
                    )
                )
        elif old is not None and new is not None:
            diffs.extend(compute_field_diff(old, new, path))
    return diffs


def compute_io_diff(base: OperationSpec, head: OperationSpec) -> list[DiffItem]:
    """Diff ``io.input`` and ``io.output`` of two operation versions."""

    diffs = compute_fields_diff(base.input, head.input, "io.input")

    if isinstance(base.output, ResourceRef) or isinstance(head.output, ResourceRef):
        if base.output != head.output:
            diffs.append(
                DiffItem(
                    path="io.output",
                    type=DiffType.BREAKING,
                    description="Output shape changed",
                    old_value=_output_value(base.output),
                    new_value=_output_value(head.output),
                )
            )
        return diffs

    diffs.extend(compute_fields_diff(base.output, head.output, "io.output"))
    return diffs


def _output_value(output: Mapping[str, FieldSnapshot] | ResourceRef) -> JSONValue:
    if isinstance(output, ResourceRef):
        return output.to_dict()
    return {name: output[name].to_dict() for name in sorted(output)}


def _changed(path: str, label: str, old: JSONValue, new: JSONValue) -> DiffItem:
    return DiffItem(
        path=path,
        type=DiffType.CHANGED,
        description=f"{label} changed",
        old_value=old,
        new_value=new,
    )


def _meta_diff(base: SpecDescriptor, head: SpecDescriptor) -> list[DiffItem]:
    diffs: list[DiffItem] = []
    if base.meta.stability != head.meta.stability:
        diffs.append(
            DiffItem(
                path="meta.stability",
                type=DiffType.CHANGED,
                description=(
                    f"Stability changed from {base.meta.stability} to {head.meta.stability}"
                ),
                old_value=base.meta.stability.value,
                new_value=head.meta.stability.value,
            )
        )
    if base.meta.description != head.meta.description:
        diffs.append(
            _changed("meta.description", "Description", base.meta.description, head.meta.description)
        )
    if sorted(base.meta.owners) != sorted(head.meta.owners):
        diffs.append(
            _changed(
                "meta.owners", "Owners", sorted(base.meta.owners), sorted(head.meta.owners)
            )
        )
    if sorted(base.meta.tags) != sorted(head.meta.tags):
        diffs.append(_changed("meta.tags", "Tags", sorted(base.meta.tags), sorted(head.meta.tags)))
    return diffs


def _auth_diff(base: AuthLevel | None, head: AuthLevel | None) -> list[DiffItem]:
    if base == head:
        return []
    old = base.value if base is not None else None
    new = head.value if head is not None else None
    raised = (
        base is not None and head is not None and _AUTH_RANK[head] > _AUTH_RANK[base]
    ) or (base is None and head is not None and head is not AuthLevel.ANONYMOUS)
    if raised:
        return [
            DiffItem(
                path="authLevel",
                type=DiffType.BREAKING,
                description=f"Auth level raised from {old or 'unset'} to {new}",
                old_value=old,
                new_value=new,
            )
        ]
    return [
        DiffItem(
            path="authLevel",
            type=DiffType.CHANGED,
            description=f"Auth level changed from {old or 'unset'} to {new or 'unset'}",
            old_value=old,
            new_value=new,
        )
    ]


def _operation_diff(base: OperationSpec, head: OperationSpec) -> list[DiffItem]:
    diffs = compute_io_diff(base, head)

    base_http = base.http.to_dict() if base.http is not None else {}
    head_http = head.http.to_dict() if head.http is not None else {}
    for attribute, label in (("method", "HTTP method"), ("path", "HTTP path")):
        old = base_http.get(attribute)
        new = head_http.get(attribute)
        if old != new:
            diffs.append(
                DiffItem(
                    path=f"http.{attribute}",
                    type=DiffType.BREAKING,
                    description=f"{label} changed from {old or 'unset'} to {new or 'unset'}",
                    old_value=old,
                    new_value=new,
                )
            )

    diffs.extend(_auth_diff(base.auth_level, head.auth_level))

    def emit_keys(spec: OperationSpec) -> set[str]:
        return {item.composite_key or f"?{item.unresolved}" for item in spec.emits}

    base_emits = emit_keys(base)
    head_emits = emit_keys(head)
    for emitted in sorted(base_emits - head_emits):
        diffs.append(
            DiffItem(
                path=f"emits.{emitted}",
                type=DiffType.REMOVED,
                description=f"Emitted event '{emitted}' no longer declared",
                old_value=emitted,
            )
        )
    for emitted in sorted(head_emits - base_emits):
        diffs.append(
            DiffItem(
                path=f"emits.{emitted}",
                type=DiffType.ADDED,
                description=f"Emitted event '{emitted}' declared",
                new_value=emitted,
            )
        )
    return diffs


def _capability_diff(base: CapabilitySpec, head: CapabilitySpec) -> list[DiffItem]:
    diffs: list[DiffItem] = []
    base_provides = {ref.index_key: ref for ref in base.provides}
    head_provides = {ref.index_key: ref for ref in head.provides}
    for surface_key in sorted(base_provides.keys() - head_provides.keys()):
        diffs.append(
            DiffItem(
                path=f"provides.{surface_key}",
                type=DiffType.REMOVED,
                description=f"Provided surface '{surface_key}' removed",
                old_value=base_provides[surface_key].to_dict(),
            )
        )
    for surface_key in sorted(head_provides.keys() - base_provides.keys()):
        diffs.append(
            DiffItem(
                path=f"provides.{surface_key}",
                type=DiffType.ADDED,
                description=f"Provided surface '{surface_key}' added",
                new_value=head_provides[surface_key].to_dict(),
            )
        )

    base_requires = {req.key: req for req in base.requires}
    head_requires = {req.key: req for req in head.requires}
    for requirement_key in sorted(base_requires.keys() | head_requires.keys()):
        old = base_requires.get(requirement_key)
        new = head_requires.get(requirement_key)
        if old == new:
            continue
        diffs.append(
            _changed(
                f"requires.{requirement_key}",
                f"Requirement '{requirement_key}'",
                old.to_dict() if old is not None else None,
                new.to_dict() if new is not None else None,
            )
        )
    return diffs


def compute_spec_diff(base: SpecDescriptor, head: SpecDescriptor) -> list[DiffItem]:
    """Diff two versions of one spec: IO or payload schemas plus metadata."""

    if base.spec_type != head.spec_type:
        raise ValueError(
            f"cannot diff {base.spec_type} {base.meta.key!r} against {head.spec_type}"
        )

    diffs: list[DiffItem] = []
    if isinstance(base, OperationSpec) and isinstance(head, OperationSpec):
        diffs.extend(_operation_diff(base, head))
    elif isinstance(base, EventSpec) and isinstance(head, EventSpec):
        diffs.extend(compute_fields_diff(base.payload, head.payload, "payload"))
    elif isinstance(base, CapabilitySpec) and isinstance(head, CapabilitySpec):
        diffs.extend(_capability_diff(base, head))
    diffs.extend(_meta_diff(base, head))
    return diffs


def _identity(spec: SpecDescriptor) -> tuple[str, str]:
    return (spec.spec_type.value, spec.meta.key)


def match_specs(
    base_specs: Sequence[SpecDescriptor],
    head_specs: Sequence[SpecDescriptor],
) -> tuple[
    list[tuple[SpecDescriptor, SpecDescriptor]],
    list[SpecDescriptor],
    list[SpecDescriptor],
]:
    """
    Pair base/head specs; return ``(pairs, removed, added)``.

    Specs match on ``(specType, key, version)`` first. When no version of a
    ``(specType, key)`` matched exactly, a single remaining base/head pair is
    matched as a version bump. Everything else is removed (base only) or added
    (head only).
    """

    base_exact = {(*_identity(spec), spec.meta.version): spec for spec in base_specs}
    head_exact = {(*_identity(spec), spec.meta.version): spec for spec in head_specs}

    pairs: list[tuple[SpecDescriptor, SpecDescriptor]] = [
        (base_exact[ident], head_exact[ident])
        for ident in sorted(base_exact.keys() & head_exact.keys())
    ]
    exact_identities = {ident[:2] for ident in base_exact.keys() & head_exact.keys()}

    leftover_base: dict[tuple[str, str], list[SpecDescriptor]] = {}
    for ident in sorted(base_exact.keys() - head_exact.keys()):
        leftover_base.setdefault(ident[:2], []).append(base_exact[ident])
    leftover_head: dict[tuple[str, str], list[SpecDescriptor]] = {}
    for ident in sorted(head_exact.keys() - base_exact.keys()):
        leftover_head.setdefault(ident[:2], []).append(head_exact[ident])

    removed: list[SpecDescriptor] = []
    added: list[SpecDescriptor] = []
    for ident in sorted(leftover_base.keys() | leftover_head.keys()):
        olds = leftover_base.get(ident, [])
        news = leftover_head.get(ident, [])
        if ident not in exact_identities and len(olds) == 1 and len(news) == 1:
            pairs.append((olds[0], news[0]))
            continue
        removed.extend(olds)
        added.extend(news)
    return pairs, removed, added


def diff_specs(
    base_specs: Sequence[SpecDescriptor],
    head_specs: Sequence[SpecDescriptor],
) -> list[SpecDiff]:
    """Diff every matched base/head pair (see :func:`match_specs`)."""

    pairs, _, _ = match_specs(base_specs, head_specs)
    results = [
        SpecDiff(
            spec_key=head.meta.key,
            spec_type=head.spec_type,
            base_version=base.meta.version,
            head_version=head.meta.version,
            diffs=tuple(compute_spec_diff(base, head)),
        )
        for base, head in pairs
    ]
    return sorted(results, key=lambda item: (item.spec_key, item.spec_type.value, item.head_version))

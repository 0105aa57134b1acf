"""
contract-governance — snapshot normalizer

File: src/contract_governance/snapshot/normalizer.py

Purpose
- Turn a corpus of spec descriptors into a deterministic, hashed Contract
  Snapshot and persist it as a JSON artifact.

Functional requirements
- Specs are ordered by ``(key, specType, version)``; ties are broken by the
  canonical JSON of the spec so ordering is total.
- Field maps are sorted by field name recursively through ``items``,
  ``properties`` and ``unionTypes``; enum values, owners and tags are sorted.
- The digest is SHA-256 over the canonical JSON of the ordered specs only,
  so ``generatedAt``/``commitSha`` never change the hash.

Non-functional requirements
- Pure function of its inputs; safe to run concurrently.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path

from contract_governance.constants import SNAPSHOT_FORMAT_VERSION
from contract_governance.domain.models import (
    CapabilitySpec,
    EmitDeclaration,
    EventSpec,
    FieldMap,
    FieldSnapshot,
    JSONValue,
    OperationSpec,
    SpecDescriptor,
    descriptor_from_dict,
)
from contract_governance.utils.fs import atomic_write
from contract_governance.utils.hashing import canonical_json, is_sha256_hex, sha256_canonical_json

logger = logging.getLogger(__name__)

__all__ = [
    "ContractSnapshot",
    "SnapshotIntegrityError",
    "generate_snapshot",
    "hash_specs",
    "normalize_descriptor",
    "normalize_field",
    "normalize_field_map",
    "read_snapshot",
    "sort_descriptors",
    "write_snapshot",
]


class SnapshotIntegrityError(ValueError):
    """Raised when a persisted snapshot's hash does not match its content."""


@dataclass(frozen=True, slots=True)
class ContractSnapshot:
    version: str
    generated_at: str
    specs: tuple[SpecDescriptor, ...]
    hash: str
    commit_sha: str | None = None

    def __post_init__(self) -> None:
        if not is_sha256_hex(self.hash):
            raise ValueError(f"ContractSnapshot.hash: expected sha256 hex digest, got {self.hash!r}")

    def spec_dicts(self) -> list[dict[str, JSONValue]]:
        return [spec.to_dict() for spec in self.specs]

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "version": self.version,
            "generatedAt": self.generated_at,
            "specs": self.spec_dicts(),
            "hash": self.hash,
        }
        if self.commit_sha is not None:
            out["commitSha"] = self.commit_sha
        return out

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, verify: bool = True) -> ContractSnapshot:
        if not isinstance(data, Mapping):
            raise ValueError(f"ContractSnapshot: expected object, got {type(data).__name__}")
        unknown = sorted(set(data) - {"version", "generatedAt", "commitSha", "specs", "hash"})
        if unknown:
            raise ValueError(f"ContractSnapshot: unexpected fields: {unknown}")
        missing = sorted({"version", "generatedAt", "specs", "hash"} - set(data))
        if missing:
            raise ValueError(f"ContractSnapshot: missing required fields: {missing}")

        raw_specs = data["specs"]
        if not isinstance(raw_specs, list):
            raise ValueError("ContractSnapshot.specs: expected array")
        specs: list[SpecDescriptor] = []
        for index, raw in enumerate(raw_specs):
            if not isinstance(raw, Mapping):
                raise ValueError(f"ContractSnapshot.specs[{index}]: expected object")
            try:
                specs.append(descriptor_from_dict(raw))
            except ValueError as exc:
                raise ValueError(f"ContractSnapshot.specs[{index}]: {exc}") from exc

        commit_sha = data.get("commitSha")
        snapshot = cls(
            version=str(data["version"]),
            generated_at=str(data["generatedAt"]),
            specs=tuple(specs),
            hash=str(data["hash"]),
            commit_sha=str(commit_sha) if commit_sha is not None else None,
        )
        if verify:
            expected = hash_specs(snapshot.specs)
            if expected != snapshot.hash:
                raise SnapshotIntegrityError(
                    f"ContractSnapshot.hash: stored {snapshot.hash} does not match content {expected}"
                )
        return snapshot

    @classmethod
    def from_json(cls, raw: str, *, verify: bool = True) -> ContractSnapshot:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"ContractSnapshot: invalid JSON: {exc}") from exc
        return cls.from_dict(parsed, verify=verify)


def normalize_field(field_snapshot: FieldSnapshot) -> FieldSnapshot:
    """Return ``field_snapshot`` with every nested collection in canonical order."""

    union_types = None
    if field_snapshot.union_types is not None:
        members = [normalize_field(member) for member in field_snapshot.union_types]
        union_types = tuple(sorted(members, key=lambda item: canonical_json(item.to_dict())))
    return replace(
        field_snapshot,
        enum_values=(
            tuple(sorted(field_snapshot.enum_values))
            if field_snapshot.enum_values is not None
            else None
        ),
        items=normalize_field(field_snapshot.items) if field_snapshot.items is not None else None,
        properties=(
            normalize_field_map(field_snapshot.properties)
            if field_snapshot.properties is not None
            else None
        ),
        union_types=union_types,
    )


def normalize_field_map(fields: Mapping[str, FieldSnapshot]) -> FieldMap:
    return {name: normalize_field(fields[name]) for name in sorted(fields)}


def _emit_sort_key(item: EmitDeclaration) -> tuple[int, str, str]:
    if item.unresolved is not None:
        return (1, item.unresolved, "")
    return (0, item.key or "", item.version or "")


def normalize_descriptor(descriptor: SpecDescriptor) -> SpecDescriptor:
    """Return an equivalent descriptor whose collections are in canonical order."""

    meta = replace(
        descriptor.meta,
        owners=tuple(sorted(descriptor.meta.owners)),
        tags=tuple(sorted(descriptor.meta.tags)),
    )
    if isinstance(descriptor, OperationSpec):
        return replace(
            descriptor,
            meta=meta,
            input=normalize_field_map(descriptor.input),
            output=(
                normalize_field_map(descriptor.output)
                if isinstance(descriptor.output, dict)
                else descriptor.output
            ),
            emits=tuple(
                sorted(
                    (
                        replace(item, payload=normalize_field_map(item.payload))
                        if item.payload is not None
                        else item
                        for item in descriptor.emits
                    ),
                    key=_emit_sort_key,
                )
            ),
        )
    if isinstance(descriptor, EventSpec):
        return replace(descriptor, meta=meta, payload=normalize_field_map(descriptor.payload))
    if isinstance(descriptor, CapabilitySpec):
        return replace(
            descriptor,
            meta=meta,
            provides=tuple(
                sorted(
                    descriptor.provides,
                    key=lambda ref: (ref.surface.value, ref.key, ref.version or ""),
                )
            ),
            requires=tuple(
                sorted(descriptor.requires, key=lambda req: (req.key, req.version or ""))
            ),
        )
    return replace(descriptor, meta=meta)


def _descriptor_sort_key(descriptor: SpecDescriptor) -> tuple[str, str, str, str]:
    return (
        descriptor.meta.key,
        descriptor.spec_type.value,
        descriptor.meta.version,
        canonical_json(descriptor.to_dict()),
    )


def sort_descriptors(descriptors: Iterable[SpecDescriptor]) -> tuple[SpecDescriptor, ...]:
    """Normalize each descriptor and order the corpus canonically."""

    normalized = (normalize_descriptor(item) for item in descriptors)
    return tuple(sorted(normalized, key=_descriptor_sort_key))


def hash_specs(specs: Iterable[SpecDescriptor]) -> str:
    """Return the SHA-256 content hash of already-ordered specs."""

    return sha256_canonical_json([spec.to_dict() for spec in specs])


def _utc_timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def generate_snapshot(
    descriptors: Iterable[SpecDescriptor],
    *,
    commit_sha: str | None = None,
    generated_at: str | None = None,
) -> ContractSnapshot:
    """Build a Contract Snapshot; identical corpora in any order hash identically."""

    specs = sort_descriptors(descriptors)
    digest = hash_specs(specs)
    logger.debug("snapshot generated", extra={"spec_count": len(specs), "hash": digest})
    return ContractSnapshot(
        version=SNAPSHOT_FORMAT_VERSION,
        generated_at=generated_at if generated_at is not None else _utc_timestamp(),
        specs=specs,
        hash=digest,
        commit_sha=commit_sha,
    )


def write_snapshot(path: str | Path, snapshot: ContractSnapshot) -> Path:
    """Atomically persist ``snapshot`` as pretty-printed JSON."""

    target = atomic_write(path, snapshot.to_json(), create_parents=True)
    logger.info("snapshot written", extra={"path": str(target), "hash": snapshot.hash})
    return target


def read_snapshot(path: str | Path, *, verify: bool = True) -> ContractSnapshot:
    """Load a snapshot artifact; ``verify`` recomputes and checks the stored hash."""

    return ContractSnapshot.from_json(Path(path).read_text(encoding="utf-8"), verify=verify)

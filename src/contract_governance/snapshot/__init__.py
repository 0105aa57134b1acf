"""Canonical contract snapshots: normalization, hashing, and persistence."""

from contract_governance.snapshot.normalizer import (
    ContractSnapshot,
    SnapshotIntegrityError,
    generate_snapshot,
    hash_specs,
    normalize_descriptor,
    normalize_field,
    normalize_field_map,
    read_snapshot,
    sort_descriptors,
    write_snapshot,
)

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

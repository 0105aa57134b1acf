"""Utility exports for filesystem, hashing, and semantic-version helpers."""

from contract_governance.utils.fs import atomic_write
from contract_governance.utils.hashing import canonical_json, is_sha256_hex, sha256_canonical_json
from contract_governance.utils.semver import (
    BumpType,
    SemVer,
    bump_version,
    compare_versions,
    is_valid_version,
    parse_version,
)

__all__ = [
    "BumpType",
    "SemVer",
    "atomic_write",
    "bump_version",
    "canonical_json",
    "compare_versions",
    "is_sha256_hex",
    "is_valid_version",
    "parse_version",
    "sha256_canonical_json",
]

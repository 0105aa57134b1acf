"""Canonical JSON and SHA-256 digests for content-addressed snapshots."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Final

_SHA256_HEX: Final[re.Pattern[str]] = re.compile(r"[0-9a-f]{64}")

__all__ = ["canonical_json", "is_sha256_hex", "sha256_canonical_json"]


def canonical_json(value: object) -> str:
    """Sorted keys, compact separators, raw UTF-8; NaN and infinity are rejected."""

    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    )


def sha256_canonical_json(value: object) -> str:
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def is_sha256_hex(value: object) -> bool:
    return isinstance(value, str) and _SHA256_HEX.fullmatch(value) is not None

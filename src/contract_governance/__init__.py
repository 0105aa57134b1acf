"""
contract-governance — package root

File: src/contract_governance/__init__.py

Purpose
- Contract-governance engine over already-extracted spec descriptors:
  canonical snapshots, semantic diffs, impact verdicts, capability
  consistency, and guarded operation execution.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Heavy submodules are imported by callers, not re-exported here.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]

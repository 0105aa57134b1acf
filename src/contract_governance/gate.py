"""
contract-governance — CI governance gate

File: src/contract_governance/gate.py

Purpose
- Snapshot the head descriptor corpus, compare it with the committed baseline
  snapshot, validate capability consistency, and turn both verdicts into one
  exit code according to the effective config.

Functional requirements
- No baseline file means a first run: impact is reported against an empty
  corpus but never fails the gate.
- Consistency errors always fail the gate. With
  ``capabilities.strict_ancestry`` an ancestry cycle is reported as an error
  instead of a warning.
- ``update_snapshot`` rewrites the baseline only when the gate passes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from contract_governance.analysis.impact import ImpactResult, classify_impact
from contract_governance.config.schema import assert_valid_config, default_config, gate_exit_code
from contract_governance.domain.models import JSONValue, SpecDescriptor
from contract_governance.registry.consistency import (
    ConsistencyResult,
    validate_capability_consistency,
)
from contract_governance.registry.context import ContractRegistries
from contract_governance.snapshot.normalizer import (
    ContractSnapshot,
    generate_snapshot,
    read_snapshot,
    write_snapshot,
)

logger = logging.getLogger(__name__)

__all__ = ["GateReport", "run_gate"]


@dataclass(frozen=True, slots=True)
class GateReport:
    snapshot: ContractSnapshot
    baseline: ContractSnapshot | None
    impact: ImpactResult
    consistency: ConsistencyResult
    exit_code: int
    snapshot_written: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "hash": self.snapshot.hash,
            "baselineHash": self.baseline.hash if self.baseline is not None else None,
            "impact": self.impact.to_dict(),
            "consistency": self.consistency.to_dict(),
            "exitCode": self.exit_code,
            "snapshotWritten": self.snapshot_written,
        }


def run_gate(
    descriptors: Iterable[SpecDescriptor],
    config: Mapping[str, Any] | None = None,
    *,
    commit_sha: str | None = None,
    generated_at: str | None = None,
    update_snapshot: bool = False,
) -> GateReport:
    """Evaluate the head corpus against the baseline at ``snapshot.path``."""

    effective = assert_valid_config(config) if config is not None else dict(default_config())
    snapshot_cfg = effective["snapshot"]
    strict_ancestry = bool(effective["capabilities"]["strict_ancestry"])

    head = generate_snapshot(
        descriptors,
        commit_sha=commit_sha if snapshot_cfg["include_commit_sha"] else None,
        generated_at=generated_at,
    )
    snapshot_path = Path(snapshot_cfg["path"])
    baseline = read_snapshot(snapshot_path) if snapshot_path.is_file() else None

    impact = classify_impact(
        baseline.specs if baseline is not None else (),
        head.specs,
        include_info=bool(effective["impact"]["informational_rules"]),
        base_ref=baseline.commit_sha if baseline is not None else None,
        head_ref=head.commit_sha,
        timestamp=head.generated_at,
    )
    consistency = validate_capability_consistency(
        ContractRegistries.from_descriptors(head.specs, strict_ancestry=strict_ancestry)
    )

    exit_code = gate_exit_code(impact, effective) if baseline is not None else 0
    if not consistency.valid:
        exit_code = 1

    written = False
    if update_snapshot and exit_code == 0:
        write_snapshot(snapshot_path, head)
        written = True

    logger.info(
        "governance gate evaluated",
        extra={
            "hash": head.hash,
            "breaking": impact.summary.breaking,
            "consistency_errors": len(consistency.errors),
            "exit_code": exit_code,
        },
    )
    return GateReport(
        snapshot=head,
        baseline=baseline,
        impact=impact,
        consistency=consistency,
        exit_code=exit_code,
        snapshot_written=written,
    )

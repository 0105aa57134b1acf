"""
contract-governance — analysis layer

File: src/contract_governance/analysis/__init__.py

Purpose
- Snapshot comparison (semantic diff), impact classification, and the
  contract dependency graph.

Non-functional requirements
- Everything here is a pure function over immutable inputs; results are
  sorted so aggregate ordering never depends on completion order.
"""

from contract_governance.analysis.contract_graph import (
    ContractGraphNode,
    build_reverse_edges,
    detect_cycles,
    find_missing_dependencies,
    graph_from_descriptors,
    to_dot,
)
from contract_governance.analysis.diff import (
    DiffItem,
    DiffType,
    SpecDiff,
    compute_field_diff,
    compute_fields_diff,
    compute_io_diff,
    compute_spec_diff,
    diff_specs,
    match_specs,
)
from contract_governance.analysis.impact import (
    DEFAULT_RULES,
    ImpactDelta,
    ImpactResult,
    ImpactRule,
    ImpactSeverity,
    ImpactStatus,
    ImpactSummary,
    SpecIdentity,
    classify_impact,
    default_rules,
    detect_impact,
    determine_bump_type,
    suggest_bump,
    suggest_next_version,
)

__all__ = [
    "DEFAULT_RULES",
    "ContractGraphNode",
    "DiffItem",
    "DiffType",
    "ImpactDelta",
    "ImpactResult",
    "ImpactRule",
    "ImpactSeverity",
    "ImpactStatus",
    "ImpactSummary",
    "SpecDiff",
    "SpecIdentity",
    "build_reverse_edges",
    "classify_impact",
    "compute_field_diff",
    "compute_fields_diff",
    "compute_io_diff",
    "compute_spec_diff",
    "default_rules",
    "detect_cycles",
    "detect_impact",
    "determine_bump_type",
    "diff_specs",
    "find_missing_dependencies",
    "graph_from_descriptors",
    "match_specs",
    "suggest_bump",
    "suggest_next_version",
    "to_dot",
]

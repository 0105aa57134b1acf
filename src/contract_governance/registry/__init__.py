"""Spec and capability registries, capability contexts, and the consistency validator."""

from contract_governance.registry.capabilities import CapabilityRegistry, requirement_matches_ref
from contract_governance.registry.consistency import (
    ConsistencyIssue,
    ConsistencyIssueType,
    ConsistencyResult,
    OrphanReport,
    find_orphan_specs,
    validate_capability_consistency,
)
from contract_governance.registry.context import (
    CapabilityCheck,
    CapabilityContext,
    CapabilityMissingError,
    ContractRegistries,
    assert_capability_for_operation,
    check_capability_for_operation,
    filter_operations_by_capability,
)
from contract_governance.registry.specs import (
    BoundOperation,
    EventRegistry,
    Handler,
    OperationRegistry,
    PresentationRegistry,
    SpecRegistry,
)

__all__ = [
    "BoundOperation",
    "CapabilityCheck",
    "CapabilityContext",
    "CapabilityMissingError",
    "CapabilityRegistry",
    "ConsistencyIssue",
    "ConsistencyIssueType",
    "ConsistencyResult",
    "ContractRegistries",
    "EventRegistry",
    "Handler",
    "OperationRegistry",
    "OrphanReport",
    "PresentationRegistry",
    "SpecRegistry",
    "assert_capability_for_operation",
    "check_capability_for_operation",
    "filter_operations_by_capability",
    "find_orphan_specs",
    "requirement_matches_ref",
    "validate_capability_consistency",
]

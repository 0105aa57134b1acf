"""
contract-governance — domain layer

File: src/contract_governance/domain/__init__.py

Purpose
- Spec descriptor types shared by the snapshot, analysis, registry, and
  runtime layers, plus the engine's error taxonomy.

Functional requirements
- Domain objects are immutable, validated on construction, and round-trip
  through plain JSON-compatible dicts.

Non-functional requirements
- No IO side effects; standard library only.
"""

from contract_governance.domain.errors import (
    CapabilityNotFoundError,
    ContractGovernanceError,
    CycleDetectedError,
    DuplicateRegistrationError,
    HandlerNotBoundError,
    MissingSurfaceSpecError,
    PolicyDeniedError,
    SchemaIssue,
    SpecNotFoundError,
    SurfaceNotInProvidesError,
    UndeclaredEventError,
    ValidationFailedError,
)
from contract_governance.domain.models import (
    AuthLevel,
    CapabilityKind,
    CapabilityRequirement,
    CapabilitySpec,
    CapabilitySurface,
    CapabilitySurfaceRef,
    EmitDeclaration,
    EventSpec,
    FieldMap,
    FieldSnapshot,
    FieldType,
    GenericSpec,
    HttpBinding,
    JSONValue,
    OperationKind,
    OperationSpec,
    PresentationSpec,
    ResourceRef,
    SpecDescriptor,
    SpecMeta,
    SpecRef,
    SpecType,
    Stability,
    TelemetryTrigger,
    composite_key,
    descriptor_from_dict,
    descriptors_from_json,
)

__all__ = [
    "AuthLevel",
    "CapabilityKind",
    "CapabilityNotFoundError",
    "CapabilityRequirement",
    "CapabilitySpec",
    "CapabilitySurface",
    "CapabilitySurfaceRef",
    "ContractGovernanceError",
    "CycleDetectedError",
    "DuplicateRegistrationError",
    "EmitDeclaration",
    "EventSpec",
    "FieldMap",
    "FieldSnapshot",
    "FieldType",
    "GenericSpec",
    "HandlerNotBoundError",
    "HttpBinding",
    "JSONValue",
    "MissingSurfaceSpecError",
    "OperationKind",
    "OperationSpec",
    "PolicyDeniedError",
    "PresentationSpec",
    "ResourceRef",
    "SchemaIssue",
    "SpecDescriptor",
    "SpecMeta",
    "SpecNotFoundError",
    "SpecRef",
    "SpecType",
    "Stability",
    "SurfaceNotInProvidesError",
    "TelemetryTrigger",
    "UndeclaredEventError",
    "ValidationFailedError",
    "composite_key",
    "descriptor_from_dict",
    "descriptors_from_json",
]

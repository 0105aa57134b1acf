"""
contract-governance — capability consistency validator

File: src/contract_governance/registry/consistency.py

Purpose
- Cross-check capability ``provides`` against the surface registries in both
  directions and report findings as data.

Functional requirements
- Forward: each ``provides`` entry must name a registered spec of that
  surface. A surface whose registry was not supplied passes; workflow and
  resource surfaces always pass.
- Reverse: each operation/event/presentation with a capability
  back-reference needs that capability to exist (``capability_not_found``)
  and to list the spec under the matching surface
  (``surface_not_in_provides``). The match is on surface and key; a
  version-pinned entry that names a different version is a
  ``provided_version_mismatch`` warning.
- Ancestry cycles are warnings, or errors when the capability registry was
  built with ``strict_ancestry``.
- ``valid`` is true iff there are no errors. Warnings never affect it.

Non-functional requirements
- Findings are returned, never raised; ``raise_for_errors`` lets callers opt
  in to exceptions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from contract_governance.domain.errors import (
    CapabilityNotFoundError,
    ContractGovernanceError,
    CycleDetectedError,
    MissingSurfaceSpecError,
    SurfaceNotInProvidesError,
)
from contract_governance.domain.models import (
    CapabilitySurface,
    EventSpec,
    JSONValue,
    OperationSpec,
    PresentationSpec,
)
from contract_governance.registry.context import ContractRegistries
from contract_governance.registry.specs import SpecRegistry
from contract_governance.utils.semver import SemVer

__all__ = [
    "ConsistencyIssue",
    "ConsistencyIssueType",
    "ConsistencyResult",
    "OrphanReport",
    "find_orphan_specs",
    "validate_capability_consistency",
]


class ConsistencyIssueType(StrEnum):
    MISSING_SURFACE_SPEC = "missing_surface_spec"
    ORPHAN_SPEC = "orphan_spec"
    CAPABILITY_NOT_FOUND = "capability_not_found"
    SURFACE_NOT_IN_PROVIDES = "surface_not_in_provides"
    UNSATISFIED_REQUIREMENT = "unsatisfied_requirement"
    ANCESTRY_CYCLE = "ancestry_cycle"
    PROVIDED_VERSION_MISMATCH = "provided_version_mismatch"


@dataclass(frozen=True, slots=True)
class ConsistencyIssue:
    type: ConsistencyIssueType
    message: str
    capability_key: str | None = None
    surface: CapabilitySurface | None = None
    spec_key: str | None = None
    cycle: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"type": self.type.value, "message": self.message}
        if self.capability_key is not None:
            out["capabilityKey"] = self.capability_key
        if self.surface is not None:
            out["surface"] = self.surface.value
        if self.spec_key is not None:
            out["specKey"] = self.spec_key
        if self.cycle:
            out["cycle"] = list(self.cycle)
        return out

    def to_exception(self) -> ContractGovernanceError:
        surface = self.surface.value if self.surface is not None else "surface"
        if self.type is ConsistencyIssueType.CAPABILITY_NOT_FOUND:
            return CapabilityNotFoundError(self.capability_key or "")
        if self.type is ConsistencyIssueType.SURFACE_NOT_IN_PROVIDES:
            return SurfaceNotInProvidesError(surface, self.spec_key or "", self.capability_key or "")
        if self.type is ConsistencyIssueType.MISSING_SURFACE_SPEC:
            return MissingSurfaceSpecError(self.capability_key or "", surface, self.spec_key or "")
        if self.type is ConsistencyIssueType.ANCESTRY_CYCLE:
            return CycleDetectedError([self.cycle], subject="capability ancestry")
        return ContractGovernanceError(self.message)


@dataclass(frozen=True, slots=True)
class ConsistencyResult:
    errors: tuple[ConsistencyIssue, ...] = ()
    warnings: tuple[ConsistencyIssue, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise the typed exception for the first error, if any."""

        if self.errors:
            raise self.errors[0].to_exception()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass(frozen=True, slots=True)
class OrphanReport:
    operations: tuple[str, ...] = field(default_factory=tuple)
    events: tuple[str, ...] = field(default_factory=tuple)
    presentations: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "operations": list(self.operations),
            "events": list(self.events),
            "presentations": list(self.presentations),
        }


_LABELS: dict[CapabilitySurface, str] = {
    CapabilitySurface.OPERATION: "Operation",
    CapabilitySurface.EVENT: "Event",
    CapabilitySurface.PRESENTATION: "Presentation",
}


def _surface_registry(
    registries: ContractRegistries, surface: CapabilitySurface
) -> SpecRegistry | None:
    if surface is CapabilitySurface.OPERATION:
        return registries.operations
    if surface is CapabilitySurface.EVENT:
        return registries.events
    if surface is CapabilitySurface.PRESENTATION:
        return registries.presentations
    return None


def _surface_exists(
    registries: ContractRegistries,
    surface: CapabilitySurface,
    key: str,
    version: str | None,
) -> bool:
    registry = _surface_registry(registries, surface)
    if registry is None:
        # Registry not supplied, or workflow/resource surface: nothing to check against.
        return True
    return registry.has(key, version)


def _reverse_check(
    registries: ContractRegistries,
    surface: CapabilitySurface,
    specs: Iterable[OperationSpec | EventSpec | PresentationSpec],
    warnings: list[ConsistencyIssue],
) -> list[ConsistencyIssue]:
    issues: list[ConsistencyIssue] = []
    label = _LABELS[surface]
    for spec in specs:
        ref = spec.capability
        if ref is None:
            continue
        capability = registries.capabilities.get(ref.key, ref.version)
        if capability is None:
            issues.append(
                ConsistencyIssue(
                    type=ConsistencyIssueType.CAPABILITY_NOT_FOUND,
                    message=(
                        f'{label} "{spec.meta.key}" references capability '
                        f'"{ref.composite_key}" but capability not found'
                    ),
                    capability_key=ref.composite_key,
                    surface=surface,
                    spec_key=spec.meta.key,
                )
            )
            continue
        listed = [
            provided
            for provided in capability.provides
            if provided.surface is surface and provided.key == spec.meta.key
        ]
        if not listed:
            issues.append(
                ConsistencyIssue(
                    type=ConsistencyIssueType.SURFACE_NOT_IN_PROVIDES,
                    message=(
                        f'{label} "{spec.meta.key}" claims capability '
                        f'"{ref.composite_key}" but not in capability\'s provides'
                    ),
                    capability_key=ref.composite_key,
                    surface=surface,
                    spec_key=spec.meta.key,
                )
            )
            continue
        if all(
            provided.version is not None
            and SemVer.parse(provided.version) != SemVer.parse(spec.meta.version)
            for provided in listed
        ):
            pinned = ", ".join(sorted(str(provided.version) for provided in listed))
            warnings.append(
                ConsistencyIssue(
                    type=ConsistencyIssueType.PROVIDED_VERSION_MISMATCH,
                    message=(
                        f'{label} "{spec.meta.key}" v{spec.meta.version} claims capability '
                        f'"{ref.composite_key}" which provides version(s) {pinned}'
                    ),
                    capability_key=ref.composite_key,
                    surface=surface,
                    spec_key=spec.meta.key,
                )
            )
    return issues


def validate_capability_consistency(registries: ContractRegistries) -> ConsistencyResult:
    """Validate capability <-> surface consistency in both directions."""

    errors: list[ConsistencyIssue] = []
    warnings: list[ConsistencyIssue] = []

    for capability in registries.capabilities.list():
        for provided in capability.provides:
            if _surface_exists(registries, provided.surface, provided.key, provided.version):
                continue
            errors.append(
                ConsistencyIssue(
                    type=ConsistencyIssueType.MISSING_SURFACE_SPEC,
                    message=(
                        f'Capability "{capability.composite_key}" provides '
                        f'{provided.surface} "{provided.key}" but spec not found'
                    ),
                    capability_key=capability.composite_key,
                    surface=provided.surface,
                    spec_key=provided.key,
                )
            )

    surfaces = (
        (CapabilitySurface.OPERATION, registries.operations),
        (CapabilitySurface.EVENT, registries.events),
        (CapabilitySurface.PRESENTATION, registries.presentations),
    )
    for surface, registry in surfaces:
        if registry is not None:
            errors.extend(_reverse_check(registries, surface, registry.list(), warnings))

    cycle_bucket = errors if registries.capabilities.strict_ancestry else warnings
    for cycle in registries.capabilities.find_ancestry_cycles():
        cycle_bucket.append(
            ConsistencyIssue(
                type=ConsistencyIssueType.ANCESTRY_CYCLE,
                message=f"Capability ancestry cycle: {' -> '.join(cycle)}",
                capability_key=cycle[0],
                cycle=cycle,
            )
        )

    for capability in registries.capabilities.list():
        for requirement in registries.capabilities.unsatisfied_requirements(
            capability.meta.key, capability.meta.version, strict=False
        ):
            warnings.append(
                ConsistencyIssue(
                    type=ConsistencyIssueType.UNSATISFIED_REQUIREMENT,
                    message=(
                        f'Capability "{capability.composite_key}" requires '
                        f'"{requirement.key}" which is not registered'
                    ),
                    capability_key=capability.composite_key,
                    spec_key=requirement.key,
                )
            )

    return ConsistencyResult(errors=tuple(errors), warnings=tuple(warnings))


def _orphans(registry: SpecRegistry | None) -> tuple[str, ...]:
    if registry is None:
        return ()
    return tuple(sorted({spec.meta.key for spec in registry.list() if spec.capability is None}))


def find_orphan_specs(registries: ContractRegistries) -> OrphanReport:
    """List spec keys without a capability back-reference, per surface registry."""

    return OrphanReport(
        operations=_orphans(registries.operations),
        events=_orphans(registries.events),
        presentations=_orphans(registries.presentations),
    )

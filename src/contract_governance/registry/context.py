"""
contract-governance — registry and capability contexts

File: src/contract_governance/registry/context.py

Purpose
- ``ContractRegistries``: the constructed-once bundle of registries passed
  explicitly to the validator and executor (no process-wide singletons).
- ``CapabilityContext``: the set of capabilities enabled for a caller, with
  guards that gate operations on their capability back-reference.

Functional requirements
- Key patterns use shell-style wildcards (``payments.*``).
- Operations without a capability back-reference are always allowed.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from contract_governance.domain.errors import ContractGovernanceError
from contract_governance.domain.models import (
    CapabilitySpec,
    EventSpec,
    GenericSpec,
    OperationSpec,
    PresentationSpec,
    SpecDescriptor,
    SpecRef,
)
from contract_governance.registry.capabilities import CapabilityRegistry
from contract_governance.registry.specs import (
    EventRegistry,
    OperationRegistry,
    PresentationRegistry,
)

__all__ = [
    "CapabilityCheck",
    "CapabilityContext",
    "CapabilityMissingError",
    "ContractRegistries",
    "assert_capability_for_operation",
    "check_capability_for_operation",
    "filter_operations_by_capability",
]


@dataclass(slots=True)
class ContractRegistries:
    """
    Registries built during initialization and shared read-mostly afterwards.

    Only ``capabilities`` is mandatory; a missing surface registry makes the
    consistency validator skip that surface instead of failing closed.
    """

    capabilities: CapabilityRegistry = field(default_factory=CapabilityRegistry)
    operations: OperationRegistry | None = None
    events: EventRegistry | None = None
    presentations: PresentationRegistry | None = None

    @classmethod
    def from_descriptors(
        cls,
        descriptors: Iterable[SpecDescriptor],
        *,
        strict_ancestry: bool = False,
    ) -> ContractRegistries:
        """Register every descriptor that has a registry; generic specs are skipped."""

        registries = cls(
            capabilities=CapabilityRegistry(strict_ancestry=strict_ancestry),
            operations=OperationRegistry(),
            events=EventRegistry(),
            presentations=PresentationRegistry(),
        )
        for descriptor in descriptors:
            if not isinstance(descriptor, GenericSpec):
                registries.register(descriptor)
        return registries

    def register(self, descriptor: SpecDescriptor) -> None:
        if isinstance(descriptor, CapabilitySpec):
            self.capabilities.register(descriptor)
        elif isinstance(descriptor, OperationSpec):
            if self.operations is None:
                self.operations = OperationRegistry()
            self.operations.register(descriptor)
        elif isinstance(descriptor, EventSpec):
            if self.events is None:
                self.events = EventRegistry()
            self.events.register(descriptor)
        elif isinstance(descriptor, PresentationSpec):
            if self.presentations is None:
                self.presentations = PresentationRegistry()
            self.presentations.register(descriptor)
        else:
            raise TypeError(f"no registry holds {descriptor.spec_type} specs")


class CapabilityMissingError(ContractGovernanceError):
    """Raised when a caller lacks a capability an operation requires."""

    def __init__(self, capability_key: str, required_version: str | None = None) -> None:
        self.capability_key = capability_key
        self.required_version = required_version
        suffix = f" (version {required_version})" if required_version else ""
        super().__init__(f"capability not enabled: {capability_key}{suffix}")


@dataclass(frozen=True, slots=True)
class CapabilityContext:
    """Capabilities enabled for the current caller, keyed by capability key."""

    capability_versions: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_refs(cls, refs: Iterable[SpecRef]) -> CapabilityContext:
        return cls(capability_versions={ref.key: ref.version for ref in refs})

    @classmethod
    def empty(cls) -> CapabilityContext:
        return cls()

    @property
    def capabilities(self) -> frozenset[str]:
        return frozenset(self.capability_versions)

    def has_capability(self, key: str, version: str | None = None) -> bool:
        enabled = self.capability_versions.get(key)
        if enabled is None:
            return False
        return version is None or enabled == version

    def require_capability(self, key: str, version: str | None = None) -> None:
        if not self.has_capability(key, version):
            raise CapabilityMissingError(key, version)

    def has_all_capabilities(self, keys: Sequence[str]) -> bool:
        return all(self.has_capability(key) for key in keys)

    def has_any_capability(self, keys: Sequence[str]) -> bool:
        return any(self.has_capability(key) for key in keys)

    def matching_capabilities(self, pattern: str) -> tuple[str, ...]:
        return tuple(
            key for key in sorted(self.capability_versions) if fnmatch.fnmatchcase(key, pattern)
        )


@dataclass(frozen=True, slots=True)
class CapabilityCheck:
    allowed: bool
    missing_capability: SpecRef | None = None
    reason: str | None = None


def check_capability_for_operation(
    context: CapabilityContext, operation: OperationSpec
) -> CapabilityCheck:
    required = operation.capability
    if required is None:
        return CapabilityCheck(allowed=True)
    if context.has_capability(required.key):
        return CapabilityCheck(allowed=True)
    return CapabilityCheck(
        allowed=False,
        missing_capability=required,
        reason=f"operation {operation.meta.key!r} requires capability {required.key!r}",
    )


def assert_capability_for_operation(context: CapabilityContext, operation: OperationSpec) -> None:
    check = check_capability_for_operation(context, operation)
    if not check.allowed and check.missing_capability is not None:
        raise CapabilityMissingError(
            check.missing_capability.key, check.missing_capability.version
        )


def filter_operations_by_capability(
    context: CapabilityContext, operations: Iterable[OperationSpec]
) -> tuple[OperationSpec, ...]:
    return tuple(
        operation
        for operation in operations
        if check_capability_for_operation(context, operation).allowed
    )

"""
contract-governance — capability registry

File: src/contract_governance/registry/capabilities.py

Purpose
- Store versioned capability specs, resolve the latest version by semantic
  version, walk ``extends`` chains, and answer surface <-> capability queries.

Functional requirements
- ``register`` rejects duplicate ``(key, version)`` pairs and invalidates the
  surface reverse index.
- The reverse index (``"surface:key" -> {capability composite keys}``) is a
  cached derived view: dropped on every write, rebuilt in full on the next
  query, never patched incrementally.
- Effective requirements/surfaces merge the chain root-first into a map keyed
  by requirement key / ``surface:key``, then overlay the capability's own
  entries, so a child declaration always wins.
- Ancestor walks stop at a missing parent. A revisited ancestor ends the walk
  silently by default; ``strict=True`` raises ``CycleDetectedError`` instead.

Non-functional requirements
- No internal locking; concurrent register + query needs external
  synchronization.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from contract_governance.domain.errors import CycleDetectedError
from contract_governance.domain.models import (
    CapabilityRequirement,
    CapabilitySpec,
    CapabilitySurface,
    CapabilitySurfaceRef,
    SpecRef,
)
from contract_governance.registry.specs import SpecRegistry

logger = logging.getLogger(__name__)

__all__ = ["CapabilityRegistry", "requirement_matches_ref"]


def requirement_matches_ref(ref: SpecRef, requirement: CapabilityRequirement) -> bool:
    """Return whether an externally supplied capability ref satisfies ``requirement``."""

    if ref.key != requirement.key:
        return False
    return requirement.version is None or ref.version == requirement.version


class CapabilityRegistry(SpecRegistry[CapabilitySpec]):
    """Versioned capability specs with inheritance and a lazy surface index."""

    kind = "capability"

    def __init__(self, *, strict_ancestry: bool = False) -> None:
        super().__init__()
        self._strict_ancestry = strict_ancestry
        self._surface_index: dict[str, set[str]] | None = None

    @property
    def strict_ancestry(self) -> bool:
        return self._strict_ancestry

    def _on_register(self) -> None:
        self._surface_index = None

    # ------------------------------------------------------------------
    # Requirement satisfaction
    # ------------------------------------------------------------------

    def satisfies(
        self,
        requirement: CapabilityRequirement,
        additional: Iterable[SpecRef] | None = None,
    ) -> bool:
        """
        Return whether ``requirement`` is met.

        Optional requirements always pass. Otherwise a matching ``additional``
        ref, or a registered capability matching key, version and kind.
        """

        if requirement.optional:
            return True
        if additional is not None and any(
            requirement_matches_ref(ref, requirement) for ref in additional
        ):
            return True
        spec = self.get(requirement.key, requirement.version)
        if spec is None:
            return False
        if requirement.kind is not None and spec.kind is not requirement.kind:
            return False
        return True

    def unsatisfied_requirements(
        self,
        key: str,
        version: str | None = None,
        additional: Iterable[SpecRef] | None = None,
        *,
        strict: bool | None = None,
    ) -> tuple[CapabilityRequirement, ...]:
        refs = tuple(additional) if additional is not None else ()
        return tuple(
            requirement
            for requirement in self.get_effective_requirements(key, version, strict=strict)
            if not self.satisfies(requirement, refs)
        )

    # ------------------------------------------------------------------
    # Forward queries: capability -> surface keys
    # ------------------------------------------------------------------

    def surfaces_for(
        self,
        surface: CapabilitySurface | str,
        capability_key: str,
        version: str | None = None,
    ) -> tuple[str, ...]:
        spec = self.get(capability_key, version)
        if spec is None:
            return ()
        wanted = CapabilitySurface(surface)
        return tuple(ref.key for ref in spec.provides if ref.surface is wanted)

    def operations_for(self, capability_key: str, version: str | None = None) -> tuple[str, ...]:
        return self.surfaces_for(CapabilitySurface.OPERATION, capability_key, version)

    def events_for(self, capability_key: str, version: str | None = None) -> tuple[str, ...]:
        return self.surfaces_for(CapabilitySurface.EVENT, capability_key, version)

    def presentations_for(
        self, capability_key: str, version: str | None = None
    ) -> tuple[str, ...]:
        return self.surfaces_for(CapabilitySurface.PRESENTATION, capability_key, version)

    def workflows_for(self, capability_key: str, version: str | None = None) -> tuple[str, ...]:
        return self.surfaces_for(CapabilitySurface.WORKFLOW, capability_key, version)

    def resources_for(self, capability_key: str, version: str | None = None) -> tuple[str, ...]:
        return self.surfaces_for(CapabilitySurface.RESOURCE, capability_key, version)

    # ------------------------------------------------------------------
    # Reverse queries: surface -> capabilities
    # ------------------------------------------------------------------

    def _build_surface_index(self) -> dict[str, set[str]]:
        if self._surface_index is not None:
            return self._surface_index
        index: dict[str, set[str]] = {}
        for capability_key, spec in self._specs.items():
            for ref in spec.provides:
                index.setdefault(ref.index_key, set()).add(capability_key)
        logger.debug("capability surface index rebuilt", extra={"entries": len(index)})
        self._surface_index = index
        return index

    def capabilities_for(self, surface: CapabilitySurface | str, key: str) -> tuple[SpecRef, ...]:
        index = self._build_surface_index()
        capability_keys = index.get(f"{CapabilitySurface(surface).value}:{key}", set())
        refs = [
            SpecRef(key=self._specs[item].meta.key, version=self._specs[item].meta.version)
            for item in capability_keys
        ]
        return tuple(sorted(refs, key=lambda ref: (ref.key, ref.version)))

    def capabilities_for_operation(self, operation_key: str) -> tuple[SpecRef, ...]:
        return self.capabilities_for(CapabilitySurface.OPERATION, operation_key)

    def capabilities_for_event(self, event_key: str) -> tuple[SpecRef, ...]:
        return self.capabilities_for(CapabilitySurface.EVENT, event_key)

    def capabilities_for_presentation(self, presentation_key: str) -> tuple[SpecRef, ...]:
        return self.capabilities_for(CapabilitySurface.PRESENTATION, presentation_key)

    # ------------------------------------------------------------------
    # Inheritance
    # ------------------------------------------------------------------

    def get_ancestors(
        self,
        key: str,
        version: str | None = None,
        *,
        strict: bool | None = None,
    ) -> tuple[CapabilitySpec, ...]:
        """Return the ancestor chain from immediate parent to root."""

        strict_mode = self._strict_ancestry if strict is None else strict
        current = self.get(key, version)
        if current is None:
            return ()

        visited: list[str] = [current.composite_key]
        ancestors: list[CapabilitySpec] = []
        while current.extends is not None:
            parent_key = current.extends.composite_key
            if parent_key in visited:
                cycle = tuple(visited[visited.index(parent_key) :]) + (parent_key,)
                if strict_mode:
                    raise CycleDetectedError([cycle], subject="capability ancestry")
                logger.warning(
                    "capability ancestry cycle truncated",
                    extra={"spec_key": visited[0], "cycle": list(cycle)},
                )
                break
            parent = self.get(current.extends.key, current.extends.version)
            if parent is None:
                break
            visited.append(parent_key)
            ancestors.append(parent)
            current = parent
        return tuple(ancestors)

    def find_ancestry_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Report every ``extends`` cycle as a closed path of composite keys."""

        cycles: set[tuple[str, ...]] = set()
        for spec in self._specs.values():
            chain: list[str] = [spec.composite_key]
            current = spec
            while current.extends is not None:
                parent_key = current.extends.composite_key
                if parent_key in chain:
                    core = chain[chain.index(parent_key) :]
                    smallest = core.index(min(core))
                    rotated = core[smallest:] + core[:smallest]
                    cycles.add((*rotated, rotated[0]))
                    break
                parent = self._specs.get(parent_key)
                if parent is None:
                    break
                chain.append(parent_key)
                current = parent
        return tuple(sorted(cycles))

    def _lineage_root_first(
        self, key: str, version: str | None, strict: bool | None
    ) -> Sequence[CapabilitySpec] | None:
        spec = self.get(key, version)
        if spec is None:
            return None
        ancestors = self.get_ancestors(key, version, strict=strict)
        return (*reversed(ancestors), spec)

    def get_effective_requirements(
        self,
        key: str,
        version: str | None = None,
        *,
        strict: bool | None = None,
    ) -> tuple[CapabilityRequirement, ...]:
        lineage = self._lineage_root_first(key, version, strict)
        if lineage is None:
            return ()
        merged: dict[str, CapabilityRequirement] = {}
        for spec in lineage:
            for requirement in spec.requires:
                merged[requirement.key] = requirement
        return tuple(merged.values())

    def get_effective_surfaces(
        self,
        key: str,
        version: str | None = None,
        *,
        strict: bool | None = None,
    ) -> tuple[CapabilitySurfaceRef, ...]:
        lineage = self._lineage_root_first(key, version, strict)
        if lineage is None:
            return ()
        merged: dict[str, CapabilitySurfaceRef] = {}
        for spec in lineage:
            for ref in spec.provides:
                merged[ref.index_key] = ref
        return tuple(merged.values())

"""
contract-governance — unit tests for the capability registry

File: tests/unit/registry/test_capabilities.py

Purpose
- Validate requirement satisfaction, surface queries, and inheritance.

What this test file should cover
- Optional requirements, kind matching, external refs.
- Forward/reverse surface lookups and index invalidation.
- Ancestor chains, cycle truncation vs strict mode, effective merges.
"""

from __future__ import annotations

import pytest

from contract_governance.domain.errors import CycleDetectedError
from contract_governance.domain.models import (
    CapabilityKind,
    CapabilityRequirement,
    CapabilitySpec,
    SpecRef,
    descriptor_from_dict,
)
from contract_governance.registry.capabilities import CapabilityRegistry


def _capability(key: str, version: str = "1.0.0", **extra: object) -> CapabilitySpec:
    spec = descriptor_from_dict({"specType": "capability", "key": key, "version": version, **extra})
    assert isinstance(spec, CapabilitySpec)
    return spec


def test_optional_requirement_is_always_satisfied() -> None:
    registry = CapabilityRegistry()

    assert registry.satisfies(CapabilityRequirement(key="audit", optional=True))
    assert not registry.satisfies(CapabilityRequirement(key="audit"))


def test_requirement_kind_and_version_must_match() -> None:
    registry = CapabilityRegistry().register(_capability("audit", kind="data"))

    assert registry.satisfies(CapabilityRequirement(key="audit", kind=CapabilityKind.DATA))
    assert not registry.satisfies(CapabilityRequirement(key="audit", kind=CapabilityKind.UI))
    assert not registry.satisfies(CapabilityRequirement(key="audit", version="2.0.0"))


def test_external_refs_satisfy_requirements() -> None:
    registry = CapabilityRegistry()
    requirement = CapabilityRequirement(key="billing", version="1.0.0")

    assert registry.satisfies(requirement, [SpecRef(key="billing", version="1.0.0")])
    assert not registry.satisfies(requirement, [SpecRef(key="billing", version="2.0.0")])


def test_latest_capability_uses_semver_not_string_order() -> None:
    registry = CapabilityRegistry()
    registry.register(_capability("payments", "2.0.0"))
    registry.register(_capability("payments", "10.0.0"))

    latest = registry.get("payments")
    assert latest is not None
    assert latest.meta.version == "10.0.0"


def test_forward_and_reverse_surface_queries() -> None:
    registry = CapabilityRegistry().register(
        _capability(
            "payments",
            provides=[
                {"surface": "operation", "key": "payments.charge"},
                {"surface": "operation", "key": "payments.refund"},
                {"surface": "event", "key": "payments.charged"},
                {"surface": "presentation", "key": "payments.receipt"},
            ],
        )
    )

    assert registry.operations_for("payments") == ("payments.charge", "payments.refund")
    assert registry.events_for("payments") == ("payments.charged",)
    assert registry.presentations_for("payments") == ("payments.receipt",)
    assert registry.workflows_for("payments") == ()
    assert registry.capabilities_for_operation("payments.charge") == (
        SpecRef(key="payments", version="1.0.0"),
    )
    assert registry.capabilities_for_event("payments.unknown") == ()


def test_surface_index_is_invalidated_on_register() -> None:
    registry = CapabilityRegistry()
    assert registry.capabilities_for_operation("orders.place") == ()

    registry.register(
        _capability("orders", provides=[{"surface": "operation", "key": "orders.place"}])
    )

    assert registry.capabilities_for_operation("orders.place") == (
        SpecRef(key="orders", version="1.0.0"),
    )


def test_ancestors_are_ordered_parent_to_root() -> None:
    registry = CapabilityRegistry()
    registry.register(_capability("base"))
    registry.register(_capability("mid", extends={"key": "base", "version": "1.0.0"}))
    registry.register(_capability("leaf", extends={"key": "mid", "version": "1.0.0"}))

    assert [spec.meta.key for spec in registry.get_ancestors("leaf")] == ["mid", "base"]
    assert registry.get_ancestors("missing") == ()


def test_child_requirement_overrides_parent_by_key() -> None:
    registry = CapabilityRegistry()
    registry.register(
        _capability("base", requires=[{"key": "auth"}, {"key": "audit"}])
    )
    registry.register(
        _capability(
            "child",
            extends={"key": "base", "version": "1.0.0"},
            requires=[{"key": "auth", "optional": True}],
        )
    )

    effective = {item.key: item for item in registry.get_effective_requirements("child")}

    assert set(effective) == {"auth", "audit"}
    assert effective["auth"].optional is True
    assert [item.key for item in registry.unsatisfied_requirements("child")] == ["audit"]


def test_effective_surfaces_merge_lineage() -> None:
    registry = CapabilityRegistry()
    registry.register(
        _capability("base", provides=[{"surface": "operation", "key": "shared.ping"}])
    )
    registry.register(
        _capability(
            "child",
            extends={"key": "base", "version": "1.0.0"},
            provides=[
                {"surface": "operation", "key": "shared.ping", "version": "2.0.0"},
                {"surface": "event", "key": "child.pinged"},
            ],
        )
    )

    surfaces = {ref.index_key: ref for ref in registry.get_effective_surfaces("child")}

    assert set(surfaces) == {"operation:shared.ping", "event:child.pinged"}
    assert surfaces["operation:shared.ping"].version == "2.0.0"


def _cyclic_registry(*, strict: bool = False) -> CapabilityRegistry:
    registry = CapabilityRegistry(strict_ancestry=strict)
    registry.register(_capability("a", extends={"key": "b", "version": "1.0.0"}))
    registry.register(_capability("b", extends={"key": "a", "version": "1.0.0"}))
    return registry


def test_ancestry_cycle_is_truncated_in_lenient_mode() -> None:
    registry = _cyclic_registry()

    assert [spec.meta.key for spec in registry.get_ancestors("a")] == ["b"]
    assert registry.find_ancestry_cycles() == (("a.v1.0.0", "b.v1.0.0", "a.v1.0.0"),)


def test_ancestry_cycle_raises_in_strict_mode() -> None:
    registry = _cyclic_registry(strict=True)

    with pytest.raises(CycleDetectedError) as error:
        registry.get_ancestors("a")
    assert error.value.cycles == (("a.v1.0.0", "b.v1.0.0", "a.v1.0.0"),)

    lenient = registry.get_ancestors("a", strict=False)
    assert [spec.meta.key for spec in lenient] == ["b"]

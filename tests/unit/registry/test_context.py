"""Unit tests for registry.context."""

from __future__ import annotations

import pytest

from contract_governance.domain.models import (
    OperationSpec,
    SpecRef,
    descriptor_from_dict,
)
from contract_governance.registry.context import (
    CapabilityContext,
    CapabilityMissingError,
    ContractRegistries,
    assert_capability_for_operation,
    check_capability_for_operation,
    filter_operations_by_capability,
)


def _operation(key: str, capability: str | None = None) -> OperationSpec:
    payload: dict[str, object] = {"specType": "operation", "key": key, "version": "1.0.0"}
    if capability is not None:
        payload["capability"] = {"key": capability, "version": "1.0.0"}
    spec = descriptor_from_dict(payload)
    assert isinstance(spec, OperationSpec)
    return spec


def test_from_descriptors_routes_each_spec_type() -> None:
    registries = ContractRegistries.from_descriptors(
        [
            descriptor_from_dict({"specType": "capability", "key": "users", "version": "1.0.0"}),
            descriptor_from_dict({"specType": "operation", "key": "users.get", "version": "1.0.0"}),
            descriptor_from_dict({"specType": "event", "key": "users.seen", "version": "1.0.0"}),
            descriptor_from_dict(
                {"specType": "presentation", "key": "users.card", "version": "1.0.0"}
            ),
        ],
        strict_ancestry=True,
    )

    assert registries.capabilities.has("users")
    assert registries.operations is not None and registries.operations.has("users.get")
    assert registries.events is not None and registries.events.has("users.seen")
    assert registries.presentations is not None and registries.presentations.has("users.card")


def test_register_rejects_unmodelled_spec_types() -> None:
    registries = ContractRegistries()
    workflow = descriptor_from_dict({"specType": "workflow", "key": "users.flow", "version": "1.0.0"})

    with pytest.raises(TypeError, match="workflow"):
        registries.register(workflow)


def test_capability_context_queries() -> None:
    context = CapabilityContext.from_refs(
        [SpecRef(key="billing.invoices", version="1.0.0"), SpecRef(key="billing.refunds", version="2.0.0")]
    )

    assert context.has_capability("billing.invoices")
    assert context.has_capability("billing.refunds", "2.0.0")
    assert not context.has_capability("billing.refunds", "1.0.0")
    assert context.has_all_capabilities(["billing.invoices", "billing.refunds"])
    assert not context.has_all_capabilities(["billing.invoices", "crm"])
    assert context.has_any_capability(["crm", "billing.refunds"])
    assert context.matching_capabilities("billing.*") == ("billing.invoices", "billing.refunds")
    with pytest.raises(CapabilityMissingError, match="crm"):
        context.require_capability("crm")


def test_operation_guards() -> None:
    context = CapabilityContext.from_refs([SpecRef(key="users", version="1.0.0")])
    public = _operation("health.ping")
    gated = _operation("users.get", capability="users")
    premium = _operation("reports.export", capability="reports")

    assert check_capability_for_operation(context, public).allowed
    assert check_capability_for_operation(context, gated).allowed
    denied = check_capability_for_operation(context, premium)
    assert not denied.allowed
    assert denied.missing_capability == SpecRef(key="reports", version="1.0.0")

    assert filter_operations_by_capability(context, [public, gated, premium]) == (public, gated)
    with pytest.raises(CapabilityMissingError):
        assert_capability_for_operation(CapabilityContext.empty(), gated)

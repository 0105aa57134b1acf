"""
contract-governance — unit tests for the guarded operation executor

File: tests/unit/runtime/test_executor.py

Purpose
- Validate the execution pipeline order and each of its guards.

What this test file should cover
- Input validation before the handler; output validation after it.
- Fail-closed policy and rate limiting; fail-open telemetry.
- The emit guard: undeclared events never reach the publisher.
- Variant resolution with fallback to the base handler.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace

import pytest
from structlog.testing import capture_logs

from contract_governance.domain.errors import (
    HandlerNotBoundError,
    PolicyDeniedError,
    SpecNotFoundError,
    UndeclaredEventError,
    ValidationFailedError,
)
from contract_governance.domain.models import (
    OperationSpec,
    SpecRef,
    TelemetryTrigger,
    descriptor_from_dict,
)
from contract_governance.registry.context import ContractRegistries
from contract_governance.registry.specs import EventRegistry, OperationRegistry
from contract_governance.runtime.executor import OperationExecutor
from contract_governance.runtime.ports import (
    HandlerContext,
    PolicyDecision,
    PolicyRequest,
    PublishedEvent,
    RateLimitHint,
    TelemetryContext,
    VariantRequest,
)


def _charge_spec(version: str = "1.0.0", **extra: object) -> OperationSpec:
    payload: dict[str, object] = {
        "specType": "operation",
        "key": "payments.charge",
        "version": version,
        "io": {
            "input": {
                "amount": {"type": "number"},
                "currency": {"type": "enum", "enumValues": ["EUR", "USD"]},
            },
            "output": {"chargeId": {"type": "string"}},
        },
        "sideEffects": {
            "emits": [
                {
                    "key": "payments.charged",
                    "version": "1.0.0",
                    "payload": {"chargeId": {"type": "string"}},
                },
                {"key": "audit.logged", "version": "1.0.0"},
            ]
        },
    }
    payload.update(extra)
    spec = descriptor_from_dict(payload)
    assert isinstance(spec, OperationSpec)
    return spec


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[object] = []

    def __call__(self, *args: object) -> None:
        self.calls.append(args[0] if len(args) == 1 else args)


class _Telemetry:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.tracked: list[tuple[str, str, Mapping[str, object], TelemetryContext]] = []

    async def track(
        self,
        event_key: str,
        event_version: str,
        properties: Mapping[str, object],
        context: TelemetryContext,
    ) -> None:
        if self.fail:
            raise RuntimeError("telemetry backend down")
        self.tracked.append((event_key, event_version, properties, context))


def _executor(
    spec: OperationSpec, handler: object, *, events: EventRegistry | None = None
) -> OperationExecutor:
    operations = OperationRegistry().register(spec)
    assert isinstance(operations, OperationRegistry)
    operations.bind(spec, handler)  # type: ignore[arg-type]
    return OperationExecutor(operations, events=events)


@pytest.mark.asyncio
async def test_handler_receives_parsed_input_and_output_is_validated() -> None:
    seen: list[object] = []

    async def handler(payload: dict[str, object], ctx: HandlerContext) -> dict[str, object]:
        seen.append(payload)
        return {"chargeId": "ch_1", "internal": "dropped"}

    executor = _executor(_charge_spec(), handler)

    result = await executor.execute(
        "payments.charge", None, {"amount": 10, "currency": "EUR", "debug": True}
    )

    assert seen == [{"amount": 10, "currency": "EUR"}]
    assert result == {"chargeId": "ch_1"}


@pytest.mark.asyncio
async def test_sync_handlers_are_supported() -> None:
    def handler(payload: dict[str, object], ctx: HandlerContext) -> dict[str, object]:
        return {"chargeId": f"ch_{payload['amount']}"}

    executor = _executor(_charge_spec(), handler)

    assert await executor.execute("payments.charge", "1.0.0", {"amount": 5, "currency": "USD"}) == {
        "chargeId": "ch_5"
    }


@pytest.mark.asyncio
async def test_invalid_input_never_reaches_handler() -> None:
    handler = _Recorder()
    executor = _executor(_charge_spec(), handler)

    with pytest.raises(ValidationFailedError) as error:
        await executor.execute("payments.charge", None, {"amount": "ten", "currency": "GBP"})

    assert handler.calls == []
    assert {issue.path for issue in error.value.issues} == {"amount", "currency"}


@pytest.mark.asyncio
async def test_invalid_output_raises_validation_failed() -> None:
    executor = _executor(_charge_spec(), lambda payload, ctx: {"chargeId": 42})

    with pytest.raises(ValidationFailedError, match="output"):
        await executor.execute("payments.charge", None, {"amount": 1, "currency": "EUR"})


@pytest.mark.asyncio
async def test_unknown_operation_and_unbound_handler() -> None:
    spec = _charge_spec()
    operations = OperationRegistry().register(spec)
    assert isinstance(operations, OperationRegistry)
    executor = OperationExecutor(operations)

    with pytest.raises(SpecNotFoundError):
        await executor.execute("payments.refund", None, {})
    with pytest.raises(HandlerNotBoundError, match=r"payments\.charge\.v1\.0\.0"):
        await executor.execute("payments.charge", None, {"amount": 1, "currency": "EUR"})


@pytest.mark.asyncio
async def test_undeclared_event_is_rejected_before_publishing() -> None:
    publisher = _Recorder()

    async def handler(payload: dict[str, object], ctx: HandlerContext) -> dict[str, object]:
        assert ctx.emit is not None
        await ctx.emit("payments.refunded", "1.0.0", {"chargeId": "ch_1"})
        return {"chargeId": "ch_1"}

    with capture_logs() as logs:
        executor = _executor(_charge_spec(), handler)
        with pytest.raises(UndeclaredEventError) as error:
            await executor.execute(
                "payments.charge",
                None,
                {"amount": 1, "currency": "EUR"},
                HandlerContext(event_publisher=publisher),
            )

    assert publisher.calls == []
    assert error.value.event_key == "payments.refunded.v1.0.0"
    assert error.value.operation_key == "payments.charge.v1.0.0"
    assert any(entry["event"] == "operation_event_rejected" for entry in logs)


@pytest.mark.asyncio
async def test_declared_events_are_validated_and_published() -> None:
    publisher = _Recorder()

    async def handler(payload: dict[str, object], ctx: HandlerContext) -> dict[str, object]:
        assert ctx.emit is not None
        await ctx.emit("payments.charged", "1.0.0", {"chargeId": "ch_1", "extra": 1})
        await ctx.emit("audit.logged", "1.0.0", {"anything": "goes"})
        return {"chargeId": "ch_1"}

    executor = _executor(_charge_spec(), handler)
    await executor.execute(
        "payments.charge",
        None,
        {"amount": 1, "currency": "EUR"},
        HandlerContext(event_publisher=publisher, trace_id="trace-1"),
    )

    assert publisher.calls == [
        PublishedEvent(
            key="payments.charged", version="1.0.0", payload={"chargeId": "ch_1"}, trace_id="trace-1"
        ),
        PublishedEvent(
            key="audit.logged", version="1.0.0", payload={"anything": "goes"}, trace_id="trace-1"
        ),
    ]


@pytest.mark.asyncio
async def test_event_payload_falls_back_to_registered_event_schema() -> None:
    events = EventRegistry()
    audit = descriptor_from_dict(
        {
            "specType": "event",
            "key": "audit.logged",
            "version": "1.0.0",
            "payload": {"actor": {"type": "string"}},
        }
    )
    events.register(audit)  # type: ignore[arg-type]

    async def handler(payload: dict[str, object], ctx: HandlerContext) -> dict[str, object]:
        assert ctx.emit is not None
        await ctx.emit("audit.logged", "1.0.0", {"anything": "goes"})
        return {"chargeId": "ch_1"}

    executor = _executor(_charge_spec(), handler, events=events)

    with pytest.raises(ValidationFailedError, match="audit.logged.v1.0.0 payload"):
        await executor.execute("payments.charge", None, {"amount": 1, "currency": "EUR"})


@pytest.mark.asyncio
async def test_policy_denial_aborts_before_handler() -> None:
    handler = _Recorder()
    requests: list[PolicyRequest] = []

    def decide(request: PolicyRequest) -> PolicyDecision:
        requests.append(request)
        return PolicyDecision.deny("insufficient role")

    executor = _executor(_charge_spec(), handler)
    ctx = HandlerContext(actor="alice", roles=("viewer",), decide=decide)

    with pytest.raises(PolicyDeniedError, match="insufficient role"):
        await executor.execute("payments.charge", None, {"amount": 1, "currency": "EUR"}, ctx)

    assert handler.calls == []
    assert len(requests) == 1
    assert (requests[0].service, requests[0].command, requests[0].version) == (
        "payments",
        "charge",
        "1.0.0",
    )
    assert requests[0].actor == "alice"
    assert requests[0].roles == ("viewer",)


@pytest.mark.asyncio
async def test_policy_key_without_service_segment_is_rejected() -> None:
    spec = descriptor_from_dict({"specType": "operation", "key": "ping", "version": "1.0.0"})
    assert isinstance(spec, OperationSpec)
    executor = _executor(spec, lambda payload, ctx: {})

    with pytest.raises(ValueError, match="<service>.<command>"):
        await executor.execute(
            "ping", None, None, HandlerContext(decide=lambda request: PolicyDecision.allow())
        )


@pytest.mark.asyncio
async def test_rate_limit_hint_uses_defaults_and_failures_propagate() -> None:
    limiter = _Recorder()

    async def decide(request: PolicyRequest) -> PolicyDecision:
        return PolicyDecision.allow(rate_limit=RateLimitHint())

    executor = _executor(_charge_spec(), lambda payload, ctx: {"chargeId": "ch_1"})
    await executor.execute(
        "payments.charge",
        None,
        {"amount": 1, "currency": "EUR"},
        HandlerContext(decide=decide, rate_limit=limiter),
    )
    assert limiter.calls == [("default", 1, 60)]

    def exhausted(key: str, cost: int, rpm: int) -> None:
        raise RuntimeError(f"rate limit exceeded for {key}")

    with pytest.raises(RuntimeError, match="rate limit exceeded for tenant-1"):
        await executor.execute(
            "payments.charge",
            None,
            {"amount": 1, "currency": "EUR"},
            HandlerContext(
                decide=lambda request: PolicyDecision.allow(
                    rate_limit=RateLimitHint(rpm=10, key="tenant-1")
                ),
                rate_limit=exhausted,
            ),
        )


@pytest.mark.asyncio
async def test_success_and_failure_telemetry() -> None:
    spec = replace(
        _charge_spec(),
        telemetry_success=TelemetryTrigger(
            event=SpecRef(key="payments.charge_succeeded", version="1.0.0"),
            properties=lambda details: {"amount": details["input"]["amount"]},  # type: ignore[index]
        ),
        telemetry_failure=TelemetryTrigger(
            event=SpecRef(key="payments.charge_failed", version="1.0.0"),
            properties=lambda details: {"error": type(details["error"]).__name__},
        ),
    )
    telemetry = _Telemetry()
    ctx = HandlerContext(telemetry=telemetry, user_id="u-1", trace_id="t-1")

    ok_executor = _executor(spec, lambda payload, ctx: {"chargeId": "ch_1"})
    await ok_executor.execute("payments.charge", None, {"amount": 7, "currency": "EUR"}, ctx)

    def failing(payload: object, ctx: HandlerContext) -> object:
        raise LookupError("card declined")

    failing_executor = _executor(spec, failing)
    with pytest.raises(LookupError, match="card declined"):
        await failing_executor.execute("payments.charge", None, {"amount": 7, "currency": "EUR"}, ctx)

    assert [(key, props) for key, _, props, _ in telemetry.tracked] == [
        ("payments.charge_succeeded", {"amount": 7}),
        ("payments.charge_failed", {"error": "LookupError"}),
    ]
    assert telemetry.tracked[0][3] == TelemetryContext(user_id="u-1", trace_id="t-1")


@pytest.mark.asyncio
async def test_telemetry_errors_are_logged_and_swallowed() -> None:
    spec = replace(
        _charge_spec(),
        telemetry_success=TelemetryTrigger(event=SpecRef(key="payments.tracked", version="1.0.0")),
    )

    with capture_logs() as logs:
        executor = _executor(spec, lambda payload, ctx: {"chargeId": "ch_1"})
        result = await executor.execute(
            "payments.charge",
            None,
            {"amount": 1, "currency": "EUR"},
            HandlerContext(telemetry=_Telemetry(fail=True)),
        )

    assert result == {"chargeId": "ch_1"}
    failures = [entry for entry in logs if entry["event"] == "telemetry_tracking_failed"]
    assert len(failures) == 1
    assert failures[0]["error_type"] == "RuntimeError"


class _VariantResolver:
    def __init__(self, variant: OperationSpec | None) -> None:
        self.variant = variant
        self.requests: list[VariantRequest] = []

    def resolve(self, request: VariantRequest, ctx: HandlerContext) -> OperationSpec | None:
        self.requests.append(request)
        return self.variant


@pytest.mark.asyncio
async def test_variant_without_handler_falls_back_to_base_handler() -> None:
    base = _charge_spec()
    variant = _charge_spec(
        "1.1.0",
        io={
            "input": {"amount": {"type": "number"}},
            "output": {"chargeId": {"type": "string"}},
        },
    )
    operations = OperationRegistry().register(base)
    assert isinstance(operations, OperationRegistry)
    operations.register(variant)
    operations.bind(base, lambda payload, ctx: {"chargeId": f"base-{payload['amount']}"})
    resolver = _VariantResolver(variant)
    executor = OperationExecutor(operations)

    result = await executor.execute(
        "payments.charge", "1.0.0", {"amount": 3}, HandlerContext(variant_resolver=resolver)
    )

    assert result == {"chargeId": "base-3"}
    assert resolver.requests[0].key == "payments.charge"
    assert resolver.requests[0].version == "1.0.0"


@pytest.mark.asyncio
async def test_resource_ref_output_is_returned_as_is() -> None:
    spec = _charge_spec(io={"input": {}, "output": {"resourceRef": {"entity": "Charge"}}})
    row = object()
    executor = _executor(spec, lambda payload, ctx: row)

    assert await executor.execute("payments.charge", None, None) is row


@pytest.mark.asyncio
async def test_from_registries_uses_event_registry_and_bound_handlers() -> None:
    spec = _charge_spec()
    registries = ContractRegistries.from_descriptors([spec])
    assert registries.operations is not None
    registries.operations.bind(spec, lambda payload, ctx: {"chargeId": "ch_9"})

    executor = OperationExecutor.from_registries(registries)

    assert await executor.execute("payments.charge", None, {"amount": 1, "currency": "EUR"}) == {
        "chargeId": "ch_9"
    }

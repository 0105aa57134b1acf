"""
contract-governance — guarded operation executor

File: src/contract_governance/runtime/executor.py

Purpose
- Run one operation call through a strictly ordered pipeline: resolve,
  validate input, policy, emit guard, invoke handler, telemetry, validate
  output.

Functional requirements
- Unvalidated input never reaches a handler.
- Events not declared by the operation never reach the publisher.
- Policy denials and rate-limiter failures abort the call (fail-closed).
- Telemetry errors are logged and swallowed (fail-open).
- Resource-reference outputs, and outputs with no declared fields, are
  returned as-is; hydration belongs to the host.

Non-functional requirements
- Calls against different operations may run concurrently; the executor holds
  no per-call state outside the coroutine.
- No cancellation or timeout handling; the host runtime owns that.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from contract_governance.domain.errors import (
    HandlerNotBoundError,
    PolicyDeniedError,
    SpecNotFoundError,
    UndeclaredEventError,
)
from contract_governance.domain.models import (
    FieldMap,
    OperationSpec,
    ResourceRef,
    TelemetryTrigger,
    composite_key,
    iter_resolved_emits,
)
from contract_governance.observability.logging import correlation_scope
from contract_governance.registry.context import ContractRegistries
from contract_governance.registry.specs import EventRegistry, Handler, OperationRegistry
from contract_governance.runtime.ports import (
    EmitGuard,
    HandlerContext,
    PolicyEffect,
    PolicyRequest,
    PublishedEvent,
    VariantRequest,
    maybe_await,
)
from contract_governance.runtime.schema import parse_payload

__all__ = ["OperationExecutor"]

_DEFAULT_RATE_LIMIT_KEY = "default"
_DEFAULT_RATE_LIMIT_RPM = 60


class OperationExecutor:
    """Executes bound operation handlers behind validation, policy, and event guards."""

    def __init__(
        self,
        operations: OperationRegistry,
        *,
        events: EventRegistry | None = None,
        logger: Any | None = None,
    ) -> None:
        self._operations = operations
        self._events = events
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_registries(
        cls, registries: ContractRegistries, *, logger: Any | None = None
    ) -> OperationExecutor:
        operations = registries.operations
        if operations is None:
            operations = OperationRegistry()
        return cls(operations, events=registries.events, logger=logger)

    async def execute(
        self,
        key: str,
        version: str | None,
        raw_input: object,
        ctx: HandlerContext | None = None,
    ) -> object:
        """
        Execute ``key`` (at ``version``, or the latest when ``None``).

        Raises ``SpecNotFoundError``, ``HandlerNotBoundError``,
        ``ValidationFailedError``, ``PolicyDeniedError``, and
        ``UndeclaredEventError``; handler and rate-limiter exceptions
        propagate unchanged.
        """

        context = ctx if ctx is not None else HandlerContext()
        spec, handler = await self._resolve(key, version, context)

        with correlation_scope(trace_id=context.trace_id, operation_key=spec.composite_key):
            parsed_input = parse_payload(
                spec.input, raw_input, subject=f"{spec.composite_key} input"
            )
            await self._enforce_policy(spec, context)

            guarded = context.with_emit_guard(self._emit_guard(spec, context))
            try:
                result = await maybe_await(handler(parsed_input, guarded))
            except Exception as exc:
                await self._track(
                    spec.telemetry_failure,
                    {"input": parsed_input, "error": exc},
                    context,
                )
                self._logger.info(
                    "operation_failed",
                    operation_key=spec.composite_key,
                    error_type=type(exc).__name__,
                )
                raise

            await self._track(
                spec.telemetry_success,
                {"input": parsed_input, "output": result},
                context,
            )

            if isinstance(spec.output, ResourceRef) or not spec.output:
                return result
            output = parse_payload(spec.output, result, subject=f"{spec.composite_key} output")
            self._logger.debug("operation_executed", operation_key=spec.composite_key)
            return output

    async def _resolve(
        self, key: str, version: str | None, ctx: HandlerContext
    ) -> tuple[OperationSpec, Handler]:
        base = self._operations.get(key, version)
        if base is None:
            raise SpecNotFoundError("operation", key, version)

        spec = base
        if ctx.variant_resolver is not None:
            variant = await maybe_await(
                ctx.variant_resolver.resolve(
                    VariantRequest(key=base.meta.key, version=base.meta.version, kind=base.kind),
                    ctx,
                )
            )
            if variant is not None:
                spec = variant

        handler = self._operations.get_handler(spec.meta.key, spec.meta.version)
        if handler is None and spec is not base:
            self._logger.debug(
                "variant_handler_fallback",
                operation_key=base.composite_key,
                variant_key=spec.composite_key,
            )
            handler = self._operations.get_handler(base.meta.key, base.meta.version)
        if handler is None:
            raise HandlerNotBoundError(base.composite_key)
        return spec, handler

    async def _enforce_policy(self, spec: OperationSpec, ctx: HandlerContext) -> None:
        if ctx.decide is None:
            return

        service, _, command = spec.meta.key.partition(".")
        if not service or not command:
            raise ValueError(f"operation key {spec.meta.key!r} must be '<service>.<command>'")
        request = PolicyRequest(
            service=service,
            command=command,
            version=spec.meta.version,
            actor=ctx.actor or "anonymous",
            channel=ctx.channel,
            roles=tuple(ctx.roles),
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
        )
        decision = await maybe_await(ctx.decide(request))
        if decision.effect is PolicyEffect.DENY:
            self._logger.info(
                "operation_policy_denied",
                operation_key=spec.composite_key,
                actor=request.actor,
                reason=decision.reason,
            )
            raise PolicyDeniedError(spec.composite_key, decision.reason)

        if decision.rate_limit is not None and ctx.rate_limit is not None:
            await maybe_await(
                ctx.rate_limit(
                    decision.rate_limit.key or _DEFAULT_RATE_LIMIT_KEY,
                    1,
                    decision.rate_limit.rpm or _DEFAULT_RATE_LIMIT_RPM,
                )
            )
        if decision.escalate is not None:
            # Advisory only; the host decides whether to act on it.
            self._logger.info(
                "operation_policy_escalation",
                operation_key=spec.composite_key,
                escalate=decision.escalate,
            )

    def _allowed_events(self, spec: OperationSpec) -> dict[str, FieldMap | None]:
        allowed: dict[str, FieldMap | None] = {}
        for declaration in iter_resolved_emits(spec):
            schema = declaration.payload
            if schema is None and self._events is not None:
                event = self._events.get(declaration.key, declaration.version)
                if event is not None:
                    schema = event.payload
            allowed[declaration.composite_key] = schema
        return allowed

    def _emit_guard(self, spec: OperationSpec, ctx: HandlerContext) -> EmitGuard:
        allowed = self._allowed_events(spec)
        logger = self._logger

        async def emit(
            event_key: str, event_version: str, payload: Mapping[str, object]
        ) -> None:
            event_ck = composite_key(event_key, event_version)
            if event_ck not in allowed:
                logger.warning(
                    "operation_event_rejected",
                    operation_key=spec.composite_key,
                    event_key=event_ck,
                )
                raise UndeclaredEventError(event_ck, spec.composite_key)
            schema = allowed[event_ck]
            parsed: Mapping[str, object] = (
                parse_payload(schema, payload, subject=f"{event_ck} payload")
                if schema is not None
                else payload
            )
            if ctx.event_publisher is None:
                return
            await maybe_await(
                ctx.event_publisher(
                    PublishedEvent(
                        key=event_key,
                        version=event_version,
                        payload=parsed,
                        trace_id=ctx.trace_id,
                    )
                )
            )

        return emit

    async def _track(
        self,
        trigger: TelemetryTrigger | None,
        details: Mapping[str, object],
        ctx: HandlerContext,
    ) -> None:
        if trigger is None or ctx.telemetry is None:
            return
        try:
            properties = trigger.properties(details) if trigger.properties is not None else {}
            await maybe_await(
                ctx.telemetry.track(
                    trigger.event.key,
                    trigger.event.version,
                    properties,
                    ctx.telemetry_context(),
                )
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "telemetry_tracking_failed",
                event_key=trigger.event.composite_key,
                error_type=type(exc).__name__,
            )

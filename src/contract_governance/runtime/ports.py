"""
contract-governance — execution pipeline ports

File: src/contract_governance/runtime/ports.py

Purpose
- Callback interfaces the host supplies to the operation executor: policy
  decider, rate limiter, telemetry tracker, event publisher, secret provider,
  and spec-variant resolver. Concrete implementations live outside this core.

Functional requirements
- Every port may be synchronous or return an awaitable; the executor awaits
  results uniformly.
- ``HandlerContext`` carries the caller identity plus the ports; the executor
  hands handlers a copy augmented with the call-scoped emit guard.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Protocol, TypeAlias, TypeVar, runtime_checkable

from contract_governance.domain.models import OperationKind, OperationSpec

T = TypeVar("T")

MaybeAwaitable: TypeAlias = T | Awaitable[T]

__all__ = [
    "EmitGuard",
    "EventPublisher",
    "HandlerContext",
    "PolicyDecider",
    "PolicyDecision",
    "PolicyEffect",
    "PolicyRequest",
    "PublishedEvent",
    "RateLimitHint",
    "RateLimiter",
    "SecretProvider",
    "TelemetryContext",
    "TelemetryTracker",
    "VariantRequest",
    "VariantResolver",
    "maybe_await",
]


async def maybe_await(value: object) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class PolicyEffect(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class RateLimitHint:
    rpm: int | None = None
    key: str | None = None
    window_seconds: int | None = None
    burst: int | None = None


@dataclass(frozen=True, slots=True)
class PolicyRequest:
    service: str
    command: str
    version: str
    actor: str = "anonymous"
    channel: str | None = None
    roles: tuple[str, ...] = ()
    organization_id: str | None = None
    user_id: str | None = None
    flags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    effect: PolicyEffect
    reason: str | None = None
    rate_limit: RateLimitHint | None = None
    escalate: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "effect", PolicyEffect(self.effect))

    @classmethod
    def allow(cls, *, rate_limit: RateLimitHint | None = None) -> PolicyDecision:
        return cls(effect=PolicyEffect.ALLOW, rate_limit=rate_limit)

    @classmethod
    def deny(cls, reason: str | None = None) -> PolicyDecision:
        return cls(effect=PolicyEffect.DENY, reason=reason)


@dataclass(frozen=True, slots=True)
class PublishedEvent:
    key: str
    version: str
    payload: Mapping[str, object]
    trace_id: str | None = None


@dataclass(frozen=True, slots=True)
class TelemetryContext:
    organization_id: str | None = None
    user_id: str | None = None
    actor: str | None = None
    channel: str | None = None
    trace_id: str | None = None


@dataclass(frozen=True, slots=True)
class VariantRequest:
    key: str
    version: str
    kind: OperationKind


class PolicyDecider(Protocol):
    def __call__(self, request: PolicyRequest) -> MaybeAwaitable[PolicyDecision]: ...


class RateLimiter(Protocol):
    """May raise to abort the call; the executor does not catch it."""

    def __call__(self, key: str, cost: int, rpm: int) -> MaybeAwaitable[None]: ...


@runtime_checkable
class TelemetryTracker(Protocol):
    def track(
        self,
        event_key: str,
        event_version: str,
        properties: Mapping[str, object],
        context: TelemetryContext,
    ) -> MaybeAwaitable[None]: ...


class EventPublisher(Protocol):
    def __call__(self, event: PublishedEvent) -> MaybeAwaitable[None]: ...


@runtime_checkable
class SecretProvider(Protocol):
    def get_secret(self, name: str) -> MaybeAwaitable[str | None]: ...


@runtime_checkable
class VariantResolver(Protocol):
    def resolve(
        self, request: VariantRequest, ctx: HandlerContext
    ) -> MaybeAwaitable[OperationSpec | None]: ...


class EmitGuard(Protocol):
    def __call__(
        self, event_key: str, event_version: str, payload: Mapping[str, object]
    ) -> Awaitable[None]: ...


@dataclass(frozen=True, slots=True)
class HandlerContext:
    """Per-call runtime context: caller identity plus host-supplied ports."""

    actor: str | None = None
    channel: str | None = None
    roles: Sequence[str] = ()
    organization_id: str | None = None
    user_id: str | None = None
    trace_id: str | None = None
    decide: PolicyDecider | None = None
    rate_limit: RateLimiter | None = None
    telemetry: TelemetryTracker | None = None
    event_publisher: EventPublisher | None = None
    secrets: SecretProvider | None = None
    variant_resolver: VariantResolver | None = None
    emit: EmitGuard | None = None
    extras: Mapping[str, object] = field(default_factory=dict)

    def with_emit_guard(self, guard: EmitGuard) -> HandlerContext:
        return replace(self, emit=guard)

    def telemetry_context(self) -> TelemetryContext:
        return TelemetryContext(
            organization_id=self.organization_id,
            user_id=self.user_id,
            actor=self.actor,
            channel=self.channel,
            trace_id=self.trace_id,
        )

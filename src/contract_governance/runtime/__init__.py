"""Operation execution pipeline: executor, host ports, and payload validation."""

from contract_governance.runtime.executor import OperationExecutor
from contract_governance.runtime.ports import (
    EmitGuard,
    EventPublisher,
    HandlerContext,
    PolicyDecider,
    PolicyDecision,
    PolicyEffect,
    PolicyRequest,
    PublishedEvent,
    RateLimitHint,
    RateLimiter,
    SecretProvider,
    TelemetryContext,
    TelemetryTracker,
    VariantRequest,
    VariantResolver,
)
from contract_governance.runtime.schema import check_field_map, check_value, parse_payload

__all__ = [
    "EmitGuard",
    "EventPublisher",
    "HandlerContext",
    "OperationExecutor",
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
    "check_field_map",
    "check_value",
    "parse_payload",
]

"""Error taxonomy for registry, execution, and consistency failures."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


class ContractGovernanceError(Exception):
    """Base class for all engine errors."""


class DuplicateRegistrationError(ContractGovernanceError):
    """Raised when a ``(key, version)`` pair is registered twice."""

    def __init__(self, kind: str, composite_key: str) -> None:
        self.kind = kind
        self.composite_key = composite_key
        super().__init__(f"Duplicate {kind} {composite_key}")


class SpecNotFoundError(ContractGovernanceError):
    """Raised when a lookup by key (and optional version) finds nothing."""

    def __init__(self, kind: str, key: str, version: str | None = None) -> None:
        self.kind = kind
        self.key = key
        self.version = version
        suffix = f".v{version}" if version else ""
        super().__init__(f"{kind} spec not found for {key}{suffix}")


class HandlerNotBoundError(ContractGovernanceError):
    """Raised when an operation is executed without a bound handler."""

    def __init__(self, composite_key: str, reason: str | None = None) -> None:
        self.composite_key = composite_key
        message = f"No handler bound for {composite_key}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class SchemaIssue:
    """One payload validation failure at a dotted path."""

    path: str
    message: str


class ValidationFailedError(ContractGovernanceError):
    """Raised when a payload does not satisfy its declared schema."""

    def __init__(self, subject: str, issues: Sequence[SchemaIssue]) -> None:
        self.subject = subject
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "; ".join(f"{issue.path}: {issue.message}" for issue in self.issues[:5])
            if len(self.issues) > 5:
                rendered += f"; ... ({len(self.issues) - 5} more)"
        super().__init__(f"ValidationFailed: {subject}: {rendered}")


class PolicyDeniedError(ContractGovernanceError):
    """Raised when the policy decider returns a ``deny`` effect."""

    def __init__(self, composite_key: str, reason: str | None = None) -> None:
        self.composite_key = composite_key
        self.reason = reason
        message = f"PolicyDenied: {composite_key}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UndeclaredEventError(ContractGovernanceError):
    """Raised when a handler emits an event its operation does not declare."""

    def __init__(self, event_key: str, operation_key: str) -> None:
        self.event_key = event_key
        self.operation_key = operation_key
        super().__init__(f"UndeclaredEvent: {event_key} not allowed by {operation_key}")


class CapabilityNotFoundError(ContractGovernanceError):
    """Raised when a capability reference cannot be resolved."""

    def __init__(self, composite_key: str) -> None:
        self.composite_key = composite_key
        super().__init__(f"capability not found: {composite_key}")


class SurfaceNotInProvidesError(ContractGovernanceError):
    """Raised when a surface claims a capability that does not provide it."""

    def __init__(self, surface: str, spec_key: str, capability_key: str) -> None:
        self.surface = surface
        self.spec_key = spec_key
        self.capability_key = capability_key
        super().__init__(
            f"{surface} {spec_key!r} claims capability {capability_key!r} "
            "but is not in its provides"
        )


class MissingSurfaceSpecError(ContractGovernanceError):
    """Raised when a capability provides a surface that is not registered."""

    def __init__(self, capability_key: str, surface: str, spec_key: str) -> None:
        self.capability_key = capability_key
        self.surface = surface
        self.spec_key = spec_key
        super().__init__(
            f"capability {capability_key!r} provides {surface} {spec_key!r} but spec not found"
        )


class CycleDetectedError(ContractGovernanceError):
    """Raised (or reported) when a reference chain loops back on itself."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]], *, subject: str = "graph") -> None:
        normalized: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        self.cycles = normalized
        self.subject = subject

        if not normalized:
            message = f"{subject} contains at least one cycle."
        else:
            preview = ", ".join(" -> ".join(path) for path in normalized[:3])
            suffix = "..." if len(normalized) > 3 else ""
            message = f"{subject} contains cycle(s): {preview}{suffix}"
        super().__init__(message)


__all__ = [
    "CapabilityNotFoundError",
    "ContractGovernanceError",
    "CycleDetectedError",
    "DuplicateRegistrationError",
    "HandlerNotBoundError",
    "MissingSurfaceSpecError",
    "PolicyDeniedError",
    "SchemaIssue",
    "SpecNotFoundError",
    "SurfaceNotInProvidesError",
    "UndeclaredEventError",
    "ValidationFailedError",
]

"""
contract-governance — spec registries

File: src/contract_governance/registry/specs.py

Purpose
- In-memory registries for operation, event, and presentation specs keyed
  by ``"<key>.v<version>"``, plus handler binding for operations.

Functional requirements
- Duplicate ``(key, version)`` registration fails with
  ``DuplicateRegistrationError``; versions equal under semantic-version
  precedence (``2`` and ``2.0.0``) count as duplicates.
- ``get(key)`` without a version returns the greatest version under
  semantic-version precedence, never string order.
- Handlers bind once per registered operation version.

Non-functional requirements
- No internal locking: registries are populated during a single-threaded
  initialization phase and are read-mostly afterwards.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from contract_governance.domain.errors import (
    DuplicateRegistrationError,
    HandlerNotBoundError,
    SpecNotFoundError,
)
from contract_governance.domain.models import (
    CapabilitySpec,
    EventSpec,
    OperationSpec,
    PresentationSpec,
    composite_key,
)
from contract_governance.utils.semver import SemVer, is_valid_version

TSpec = TypeVar("TSpec", OperationSpec, EventSpec, PresentationSpec, CapabilitySpec)

Handler = Callable[..., Any]

__all__ = [
    "BoundOperation",
    "EventRegistry",
    "Handler",
    "OperationRegistry",
    "PresentationRegistry",
    "SpecRegistry",
]


class SpecRegistry(Generic[TSpec]):
    """Versioned spec store shared by every surface registry."""

    kind: ClassVar[str] = "spec"

    def __init__(self) -> None:
        self._specs: dict[str, TSpec] = {}

    def register(self, spec: TSpec) -> SpecRegistry[TSpec]:
        key = composite_key(spec.meta.key, spec.meta.version)
        existing = self._find_equivalent(spec.meta.key, SemVer.parse(spec.meta.version))
        if existing is not None:
            raise DuplicateRegistrationError(
                self.kind, composite_key(existing.meta.key, existing.meta.version)
            )
        self._specs[key] = spec
        self._on_register()
        return self

    def _on_register(self) -> None:
        """Hook for derived views that must be invalidated on every write."""

    def _find_equivalent(self, key: str, version: SemVer) -> TSpec | None:
        for spec in self._specs.values():
            if spec.meta.key == key and SemVer.parse(spec.meta.version) == version:
                return spec
        return None

    def get(self, key: str, version: str | None = None) -> TSpec | None:
        if version is not None:
            exact = self._specs.get(composite_key(key, version))
            if exact is not None:
                return exact
            if not is_valid_version(version):
                return None
            return self._find_equivalent(key, SemVer.parse(version))
        candidate: TSpec | None = None
        candidate_version: SemVer | None = None
        for spec in self._specs.values():
            if spec.meta.key != key:
                continue
            parsed = SemVer.parse(spec.meta.version)
            if candidate_version is None or parsed > candidate_version:
                candidate = spec
                candidate_version = parsed
        return candidate

    def require(self, key: str, version: str | None = None) -> TSpec:
        spec = self.get(key, version)
        if spec is None:
            raise SpecNotFoundError(self.kind, key, version)
        return spec

    def has(self, key: str, version: str | None = None) -> bool:
        return self.get(key, version) is not None

    def list(self) -> tuple[TSpec, ...]:
        return tuple(
            sorted(
                self._specs.values(),
                key=lambda spec: (spec.meta.key, SemVer.parse(spec.meta.version)),
            )
        )

    def list_by_tag(self, tag: str) -> tuple[TSpec, ...]:
        return tuple(spec for spec in self.list() if tag in spec.meta.tags)

    def list_by_owner(self, owner: str) -> tuple[TSpec, ...]:
        return tuple(spec for spec in self.list() if owner in spec.meta.owners)

    def group_by_domain(self) -> dict[str, tuple[TSpec, ...]]:
        """Group by the first dotted segment of the key (``payments.charge`` -> ``payments``)."""

        groups: dict[str, list[TSpec]] = {}
        for spec in self.list():
            groups.setdefault(spec.meta.key.split(".", 1)[0], []).append(spec)
        return {domain: tuple(groups[domain]) for domain in sorted(groups)}

    def unique_tags(self) -> tuple[str, ...]:
        return tuple(sorted({tag for spec in self._specs.values() for tag in spec.meta.tags}))

    def unique_owners(self) -> tuple[str, ...]:
        return tuple(
            sorted({owner for spec in self._specs.values() for owner in spec.meta.owners})
        )

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self._specs

    def __iter__(self) -> Iterator[TSpec]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self._specs)


class EventRegistry(SpecRegistry[EventSpec]):
    kind = "event"


class PresentationRegistry(SpecRegistry[PresentationSpec]):
    kind = "presentation"


@dataclass(frozen=True, slots=True)
class BoundOperation:
    spec: OperationSpec
    handler: Handler


class OperationRegistry(SpecRegistry[OperationSpec]):
    """Operation specs plus their bound runtime handlers."""

    kind = "operation"

    def __init__(self) -> None:
        super().__init__()
        self._handlers: dict[str, Handler] = {}

    def bind(self, spec: OperationSpec, handler: Handler) -> OperationRegistry:
        registered = self.get(spec.meta.key, spec.meta.version)
        if registered is None:
            raise SpecNotFoundError(self.kind, spec.meta.key, spec.meta.version)
        key = registered.composite_key
        if key in self._handlers:
            raise DuplicateRegistrationError("handler", key)
        if not callable(handler):
            raise TypeError(f"handler for {key} must be callable")
        self._handlers[key] = handler
        return self

    def get_handler(self, key: str, version: str | None = None) -> Handler | None:
        spec = self.get(key, version)
        if spec is None:
            return None
        return self._handlers.get(spec.composite_key)

    def require_handler(self, key: str, version: str | None = None) -> Handler:
        spec = self.require(key, version)
        handler = self._handlers.get(spec.composite_key)
        if handler is None:
            raise HandlerNotBoundError(spec.composite_key)
        return handler

    def list_bound(self) -> tuple[BoundOperation, ...]:
        return tuple(
            BoundOperation(spec=spec, handler=self._handlers[spec.composite_key])
            for spec in self.list()
            if spec.composite_key in self._handlers
        )

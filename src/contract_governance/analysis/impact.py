"""
contract-governance — impact classifier

File: src/contract_governance/analysis/impact.py

Purpose
- Classify diff items and added/removed specs into a governance verdict
  (``breaking`` / ``non-breaking`` / ``no-impact``) for CI gating.

Functional requirements
- Removed specs are breaking (``endpoint-removed``); added specs are
  non-breaking (``endpoint-added``).
- Each diff item is matched against an ordered rule table: custom rules
  first, then breaking, non-breaking and informational defaults. The first
  match decides severity and rule id; unmatched diffs are dropped.
- ``status`` is ``breaking`` iff any breaking delta exists, else
  ``non-breaking`` iff any non-breaking delta exists, else ``no-impact``.

Non-functional requirements
- Deterministic delta ordering; the result is JSON-serializable.
- Verdicts are logged through ``structlog`` as machine-parseable events.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from contract_governance.analysis.diff import DiffItem, DiffType, SpecDiff, diff_specs, match_specs
from contract_governance.domain.models import JSONValue, SpecDescriptor, SpecType
from contract_governance.utils.semver import BumpType, bump_version

if TYPE_CHECKING:
    from contract_governance.snapshot.normalizer import ContractSnapshot

__all__ = [
    "DEFAULT_RULES",
    "ENDPOINT_ADDED_RULE",
    "ENDPOINT_REMOVED_RULE",
    "ImpactDelta",
    "ImpactResult",
    "ImpactRule",
    "ImpactSeverity",
    "ImpactStatus",
    "ImpactSummary",
    "SpecIdentity",
    "classify_impact",
    "default_rules",
    "detect_impact",
    "determine_bump_type",
    "suggest_bump",
    "suggest_next_version",
]

ENDPOINT_REMOVED_RULE = "endpoint-removed"
ENDPOINT_ADDED_RULE = "endpoint-added"


class ImpactSeverity(StrEnum):
    BREAKING = "breaking"
    NON_BREAKING = "non_breaking"
    INFO = "info"


class ImpactStatus(StrEnum):
    BREAKING = "breaking"
    NON_BREAKING = "non-breaking"
    NO_IMPACT = "no-impact"


DiffPredicate = Callable[[DiffItem], bool]


@dataclass(frozen=True, slots=True)
class ImpactRule:
    """A named predicate over diff items that fixes a severity."""

    id: str
    severity: ImpactSeverity
    matches: DiffPredicate
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("ImpactRule.id must be a non-empty string")
        object.__setattr__(self, "severity", ImpactSeverity(self.severity))

    @classmethod
    def pattern(
        cls,
        rule_id: str,
        severity: ImpactSeverity | str,
        *,
        path: str | None = None,
        description: str | None = None,
        types: Iterable[DiffType | str] | None = None,
        summary: str = "",
    ) -> ImpactRule:
        """Build a rule from path/description regexes and an optional diff-type filter."""

        path_re = re.compile(path) if path is not None else None
        description_re = re.compile(description) if description is not None else None
        allowed = frozenset(DiffType(item) for item in types) if types is not None else None

        def matches(item: DiffItem) -> bool:
            if allowed is not None and item.type not in allowed:
                return False
            if path_re is not None and path_re.search(item.path) is None:
                return False
            if description_re is not None and description_re.search(item.description) is None:
                return False
            return True

        return cls(
            id=rule_id,
            severity=ImpactSeverity(severity),
            matches=matches,
            description=summary,
        )


_B = ImpactSeverity.BREAKING
_N = ImpactSeverity.NON_BREAKING
_I = ImpactSeverity.INFO

_BREAKING_RULES: tuple[ImpactRule, ...] = (
    ImpactRule.pattern("field-removed", _B, description=r"^Field '.+' removed$"),
    ImpactRule.pattern("required-field-added", _B, description=r"^Required field '.+' added$"),
    ImpactRule.pattern("type-changed", _B, path=r"\.type$", types=[DiffType.BREAKING]),
    ImpactRule.pattern("field-made-required", _B, path=r"\.required$", types=[DiffType.BREAKING]),
    ImpactRule.pattern("nullable-removed", _B, path=r"\.nullable$", types=[DiffType.BREAKING]),
    ImpactRule.pattern(
        "enum-value-removed",
        _B,
        path=r"\.enumValues$",
        description=r" removed from ",
    ),
    ImpactRule.pattern(
        "union-member-removed",
        _B,
        path=r"\.unionTypes\[",
        description=r" removed from ",
    ),
    ImpactRule.pattern("items-schema-removed", _B, path=r"\.items$", types=[DiffType.BREAKING]),
    ImpactRule.pattern("output-shape-changed", _B, path=r"^io\.output$"),
    ImpactRule.pattern("http-binding-changed", _B, path=r"^http\."),
    ImpactRule.pattern("auth-level-raised", _B, path=r"^authLevel$", types=[DiffType.BREAKING]),
    ImpactRule.pattern("emitted-event-removed", _B, path=r"^emits\.", types=[DiffType.REMOVED]),
    ImpactRule.pattern(
        "provided-surface-removed",
        _B,
        path=r"^provides\.",
        types=[DiffType.REMOVED],
    ),
)

_NON_BREAKING_RULES: tuple[ImpactRule, ...] = (
    ImpactRule.pattern("optional-field-added", _N, description=r"^Optional field '.+' added$"),
    ImpactRule.pattern("field-made-optional", _N, path=r"\.required$", types=[DiffType.CHANGED]),
    ImpactRule.pattern("nullable-added", _N, path=r"\.nullable$", types=[DiffType.CHANGED]),
    ImpactRule.pattern("enum-value-added", _N, path=r"\.enumValues$", description=r" added to "),
    ImpactRule.pattern(
        "union-member-added",
        _N,
        path=r"\.unionTypes\[",
        description=r" added to ",
    ),
    ImpactRule.pattern("items-schema-declared", _N, path=r"\.items$", types=[DiffType.CHANGED]),
    ImpactRule.pattern("auth-level-changed", _N, path=r"^authLevel$", types=[DiffType.CHANGED]),
    ImpactRule.pattern("emitted-event-added", _N, path=r"^emits\.", types=[DiffType.ADDED]),
    ImpactRule.pattern("provided-surface-added", _N, path=r"^provides\.", types=[DiffType.ADDED]),
)

_INFO_RULES: tuple[ImpactRule, ...] = (
    ImpactRule.pattern("stability-changed", _I, path=r"^meta\.stability$"),
    ImpactRule.pattern("description-changed", _I, path=r"^meta\.description$"),
    ImpactRule.pattern("owners-changed", _I, path=r"^meta\.owners$"),
    ImpactRule.pattern("tags-changed", _I, path=r"^meta\.tags$"),
    ImpactRule.pattern("requirements-changed", _I, path=r"^requires\."),
)

DEFAULT_RULES: tuple[ImpactRule, ...] = _BREAKING_RULES + _NON_BREAKING_RULES + _INFO_RULES


def default_rules(*, include_info: bool = True) -> tuple[ImpactRule, ...]:
    """Return the ordered default table, optionally without informational rules."""

    if include_info:
        return DEFAULT_RULES
    return _BREAKING_RULES + _NON_BREAKING_RULES


@dataclass(frozen=True, slots=True)
class SpecIdentity:
    key: str
    version: str
    spec_type: SpecType

    @classmethod
    def of(cls, spec: SpecDescriptor) -> SpecIdentity:
        return cls(key=spec.meta.key, version=spec.meta.version, spec_type=spec.spec_type)

    def to_dict(self) -> dict[str, JSONValue]:
        return {"key": self.key, "version": self.version, "type": self.spec_type.value}


@dataclass(frozen=True, slots=True)
class ImpactDelta:
    spec_key: str
    spec_version: str
    spec_type: SpecType
    path: str
    severity: ImpactSeverity
    rule: str
    description: str
    old_value: JSONValue = None
    new_value: JSONValue = None

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "specKey": self.spec_key,
            "specVersion": self.spec_version,
            "specType": self.spec_type.value,
            "path": self.path,
            "severity": self.severity.value,
            "rule": self.rule,
            "description": self.description,
        }
        if self.old_value is not None:
            out["oldValue"] = self.old_value
        if self.new_value is not None:
            out["newValue"] = self.new_value
        return out


@dataclass(frozen=True, slots=True)
class ImpactSummary:
    breaking: int = 0
    non_breaking: int = 0
    info: int = 0
    added: int = 0
    removed: int = 0

    @property
    def total(self) -> int:
        return self.breaking + self.non_breaking + self.info

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "breaking": self.breaking,
            "nonBreaking": self.non_breaking,
            "info": self.info,
            "added": self.added,
            "removed": self.removed,
            "total": self.total,
        }


@dataclass(frozen=True, slots=True)
class ImpactResult:
    status: ImpactStatus
    summary: ImpactSummary
    deltas: tuple[ImpactDelta, ...]
    added_specs: tuple[SpecIdentity, ...]
    removed_specs: tuple[SpecIdentity, ...]
    timestamp: str
    specs_analyzed: int = 0
    base_ref: str | None = None
    head_ref: str | None = None
    dropped_diffs: tuple[DiffItem, ...] = field(default=(), compare=False)

    @property
    def has_breaking(self) -> bool:
        return self.summary.breaking > 0

    @property
    def has_non_breaking(self) -> bool:
        return self.summary.non_breaking > 0

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "status": self.status.value,
            "hasBreaking": self.has_breaking,
            "hasNonBreaking": self.has_non_breaking,
            "summary": self.summary.to_dict(),
            "deltas": [delta.to_dict() for delta in self.deltas],
            "addedSpecs": [item.to_dict() for item in self.added_specs],
            "removedSpecs": [item.to_dict() for item in self.removed_specs],
            "specsAnalyzed": self.specs_analyzed,
            "timestamp": self.timestamp,
        }
        if self.base_ref is not None:
            out["baseRef"] = self.base_ref
        if self.head_ref is not None:
            out["headRef"] = self.head_ref
        return out


def _match_rule(item: DiffItem, rules: Sequence[ImpactRule]) -> ImpactRule | None:
    for rule in rules:
        if rule.matches(item):
            return rule
    return None


def _delta_sort_key(delta: ImpactDelta) -> tuple[str, str, str, str, str]:
    return (delta.spec_key, delta.spec_type.value, delta.spec_version, delta.path, delta.rule)


def classify_impact(
    base_specs: Sequence[SpecDescriptor],
    head_specs: Sequence[SpecDescriptor],
    spec_diffs: Sequence[SpecDiff] | None = None,
    *,
    custom_rules: Sequence[ImpactRule] = (),
    include_info: bool = True,
    base_ref: str | None = None,
    head_ref: str | None = None,
    timestamp: str | None = None,
    logger: Any | None = None,
) -> ImpactResult:
    """
    Classify diffs between ``base_specs`` and ``head_specs``.

    ``spec_diffs`` defaults to :func:`diff_specs` over the same inputs.
    Custom rules are tried before the defaults so they can override them.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    _, removed, added = match_specs(base_specs, head_specs)
    diffs = spec_diffs if spec_diffs is not None else diff_specs(base_specs, head_specs)
    rules = tuple(custom_rules) + default_rules(include_info=include_info)

    deltas: list[ImpactDelta] = []
    dropped: list[DiffItem] = []

    for spec in removed:
        deltas.append(
            ImpactDelta(
                spec_key=spec.meta.key,
                spec_version=spec.meta.version,
                spec_type=spec.spec_type,
                path="",
                severity=ImpactSeverity.BREAKING,
                rule=ENDPOINT_REMOVED_RULE,
                description=f"{spec.spec_type} '{spec.meta.key}' v{spec.meta.version} removed",
            )
        )
    for spec in added:
        deltas.append(
            ImpactDelta(
                spec_key=spec.meta.key,
                spec_version=spec.meta.version,
                spec_type=spec.spec_type,
                path="",
                severity=ImpactSeverity.NON_BREAKING,
                rule=ENDPOINT_ADDED_RULE,
                description=f"{spec.spec_type} '{spec.meta.key}' v{spec.meta.version} added",
            )
        )

    for spec_diff in diffs:
        for item in spec_diff.diffs:
            rule = _match_rule(item, rules)
            if rule is None:
                dropped.append(item)
                continue
            deltas.append(
                ImpactDelta(
                    spec_key=spec_diff.spec_key,
                    spec_version=spec_diff.head_version,
                    spec_type=spec_diff.spec_type,
                    path=item.path,
                    severity=rule.severity,
                    rule=rule.id,
                    description=item.description,
                    old_value=item.old_value,
                    new_value=item.new_value,
                )
            )

    deltas.sort(key=_delta_sort_key)
    summary = ImpactSummary(
        breaking=sum(1 for delta in deltas if delta.severity is ImpactSeverity.BREAKING),
        non_breaking=sum(1 for delta in deltas if delta.severity is ImpactSeverity.NON_BREAKING),
        info=sum(1 for delta in deltas if delta.severity is ImpactSeverity.INFO),
        added=len(added),
        removed=len(removed),
    )
    if summary.breaking:
        status = ImpactStatus.BREAKING
    elif summary.non_breaking:
        status = ImpactStatus.NON_BREAKING
    else:
        status = ImpactStatus.NO_IMPACT

    analyzed = {(spec.spec_type, spec.meta.key, spec.meta.version) for spec in base_specs}
    analyzed.update((spec.spec_type, spec.meta.key, spec.meta.version) for spec in head_specs)

    result = ImpactResult(
        status=status,
        summary=summary,
        deltas=tuple(deltas),
        added_specs=tuple(sorted((SpecIdentity.of(spec) for spec in added), key=_identity_key)),
        removed_specs=tuple(sorted((SpecIdentity.of(spec) for spec in removed), key=_identity_key)),
        timestamp=(
            timestamp
            if timestamp is not None
            else datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")
        ),
        specs_analyzed=len(analyzed),
        base_ref=base_ref,
        head_ref=head_ref,
        dropped_diffs=tuple(dropped),
    )
    log.info(
        "impact_classified",
        status=result.status.value,
        summary=result.summary.to_dict(),
        specs_analyzed=result.specs_analyzed,
        dropped_diffs=len(dropped),
        base_ref=base_ref,
        head_ref=head_ref,
    )
    return result


def _identity_key(identity: SpecIdentity) -> tuple[str, str, str]:
    return (identity.key, identity.spec_type.value, identity.version)


def detect_impact(
    base: ContractSnapshot,
    head: ContractSnapshot,
    *,
    custom_rules: Sequence[ImpactRule] = (),
    include_info: bool = True,
    base_ref: str | None = None,
    head_ref: str | None = None,
    logger: Any | None = None,
) -> ImpactResult:
    """Diff two snapshots and classify the result in one step."""

    return classify_impact(
        base.specs,
        head.specs,
        diff_specs(base.specs, head.specs),
        custom_rules=custom_rules,
        include_info=include_info,
        base_ref=base_ref if base_ref is not None else base.commit_sha,
        head_ref=head_ref if head_ref is not None else head.commit_sha,
        logger=logger,
    )


def determine_bump_type(has_breaking: bool, has_non_breaking: bool) -> BumpType:
    if has_breaking:
        return BumpType.MAJOR
    if has_non_breaking:
        return BumpType.MINOR
    return BumpType.PATCH


def suggest_bump(result: ImpactResult) -> BumpType:
    """Suggest the semver bump an impact verdict calls for."""

    return determine_bump_type(result.has_breaking, result.has_non_breaking)


def suggest_next_version(current_version: str, result: ImpactResult) -> str:
    return bump_version(current_version, suggest_bump(result))

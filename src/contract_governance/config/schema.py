"""
contract-governance — configuration schema and validation.

File: src/contract_governance/config/schema.py

Purpose
- Define the authoritative ``governance.toml`` defaults and the field table
  every config layer is validated against.

Functional requirements
- Validate config payloads and return structured issues (field path + message).
- Support profile overlays; ``strict`` and ``lenient`` are built in.
- Map an impact verdict to a CI exit code according to ``impact.fail_on``.

Non-functional requirements
- Deterministic: merges and issue lists are key-sorted.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Collection, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Literal, TypedDict

from contract_governance.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_LOG_DIR,
    DEFAULT_SNAPSHOT_PATH,
)

if TYPE_CHECKING:
    from contract_governance.analysis.impact import ImpactResult

BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "lenient")
FAIL_ON_VALUES: Final[tuple[str, ...]] = ("breaking", "non-breaking", "never")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Resolved against the config file's directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("snapshot", "path"),
    ("observability", "log_dir"),
)

_PROFILE_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")


class SnapshotConfig(TypedDict):
    path: str
    include_commit_sha: bool


class ImpactConfig(TypedDict):
    fail_on: Literal["breaking", "non-breaking", "never"]
    informational_rules: bool


class CapabilitiesConfig(TypedDict):
    strict_ancestry: bool


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    snapshot: dict[str, object]
    impact: dict[str, object]
    capabilities: dict[str, object]
    observability: dict[str, object]


class GovernanceConfig(TypedDict):
    meta: dict[str, int]
    snapshot: SnapshotConfig
    impact: ImpactConfig
    capabilities: CapabilitiesConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[GovernanceConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "snapshot": {
        "path": str(DEFAULT_SNAPSHOT_PATH),
        "include_commit_sha": True,
    },
    "impact": {
        "fail_on": "breaking",
        "informational_rules": True,
    },
    "capabilities": {"strict_ancestry": False},
    "observability": {
        "log_level": "INFO",
        "log_dir": f"{DEFAULT_LOG_DIR}/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "impact": {"fail_on": "non-breaking"},
            "capabilities": {"strict_ancestry": True},
        },
        "lenient": {
            "impact": {"fail_on": "never", "informational_rules": False},
        },
    },
}


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Type and value constraints for one scalar config field."""

    kind: type[bool] | type[int] | type[str]
    choices: tuple[str, ...] = ()
    minimum: int | None = None
    path_like: bool = False


_SCHEMA: Final[dict[str, dict[str, FieldRule]]] = {
    "meta": {"schema_version": FieldRule(int, minimum=1)},
    "snapshot": {
        "path": FieldRule(str, path_like=True),
        "include_commit_sha": FieldRule(bool),
    },
    "impact": {
        "fail_on": FieldRule(str, choices=FAIL_ON_VALUES),
        "informational_rules": FieldRule(bool),
    },
    "capabilities": {"strict_ancestry": FieldRule(bool)},
    "observability": {
        "log_level": FieldRule(str, choices=LOG_LEVELS),
        "log_dir": FieldRule(str, path_like=True),
        "log_to_stdout": FieldRule(bool),
        "redact_secrets": FieldRule(bool),
    },
}

_KIND_NAMES: Final[dict[type, str]] = {bool: "boolean", int: "integer", str: "string"}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Collection[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: invalid"))


def iter_schema_fields() -> Iterator[tuple[str, str, FieldRule]]:
    """Yield ``(section, key, rule)`` for every known scalar field, sorted."""

    for section in sorted(_SCHEMA):
        for key in sorted(_SCHEMA[section]):
            yield section, key, _SCHEMA[section][key]


def default_config() -> GovernanceConfig:
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade governance.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade contract-governance"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; neither input is mutated."""

    merged: dict[str, Any] = {}
    for key in sorted({*base, *overlay}):
        if key not in overlay:
            value = base[key]
        elif isinstance(overlay[key], Mapping) and isinstance(base.get(key), Mapping):
            value = merge_config(base[key], overlay[key])  # type: ignore[arg-type]
        else:
            value = overlay[key]
        merged[key] = merge_config({}, value) if isinstance(value, Mapping) else copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and re-validate."""

    name = (profile or "").strip()
    if not name:
        return merge_config({}, config)
    profiles = config.get("profiles")
    overlay = profiles.get(name) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            [ConfigValidationIssue("profiles", f"profile {name!r} is not defined")]
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            [ConfigValidationIssue(f"profiles.{name}", "profile overlay must be an object")]
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=name)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate a full config payload and collect every issue."""

    validator = _Validator()
    payload = validator.mapping(config, "<root>")
    if payload is None:
        return ConfigValidationResult(config=None, issues=tuple(validator.issues))

    normalized = validator.root(payload)
    profile = active_profile.strip() if isinstance(active_profile, str) else ""
    if profile and profile not in normalized.get("profiles", {}):
        validator.fail("profiles", f"profile {profile!r} is not defined")

    if validator.issues:
        return ConfigValidationResult(config=None, issues=tuple(validator.issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def gate_exit_code(result: ImpactResult, config: Mapping[str, Any]) -> int:
    """
    Return the CI exit code for an impact verdict: ``1`` fails the build.

    ``impact.fail_on`` selects the threshold: ``breaking`` fails only on
    breaking changes, ``non-breaking`` on any breaking or additive change,
    ``never`` always passes.
    """

    impact = config.get("impact")
    threshold = impact.get("fail_on", "breaking") if isinstance(impact, Mapping) else "breaking"
    if threshold == "never":
        return 0
    tripped = result.has_breaking or (threshold == "non-breaking" and result.has_non_breaking)
    return 1 if tripped else 0


class _Validator:
    """Walks a raw payload against ``_SCHEMA``, collecting issues in path order."""

    def __init__(self) -> None:
        self.issues: list[ConfigValidationIssue] = []

    def fail(self, path: str, message: str) -> None:
        self.issues.append(ConfigValidationIssue(path=path, message=message))

    def mapping(self, value: object, path: str) -> dict[str, object] | None:
        if not isinstance(value, Mapping):
            self.fail(path, f"expected object, got {type(value).__name__}")
            return None
        if any(not isinstance(key, str) for key in value):
            self.fail(path, "object keys must be strings")
        return {key: item for key, item in value.items() if isinstance(key, str)}

    def check_keys(
        self,
        payload: Mapping[str, object],
        path: str,
        *,
        allowed: Collection[str],
        required: Collection[str] = (),
    ) -> None:
        for key in sorted(set(payload) - set(allowed)):
            self.fail(_join(path, key), "unknown field")
        for key in sorted(set(required) - set(payload)):
            self.fail(_join(path, key), "missing required field")

    def root(self, payload: Mapping[str, object]) -> dict[str, Any]:
        self.check_keys(payload, "", allowed={*_SCHEMA, "profiles"}, required=_SCHEMA)
        out: dict[str, Any] = {}
        for name in sorted(_SCHEMA):
            if name not in payload:
                continue
            body = self.mapping(payload[name], name)
            if body is not None:
                out[name] = self.section(name, body, name, partial=False)

        version = out.get("meta", {}).get("schema_version")
        if isinstance(version, int) and version != CONFIG_SCHEMA_VERSION:
            self.fail("meta.schema_version", migration_guidance(version))

        if "profiles" in payload:
            profiles = self.mapping(payload["profiles"], "profiles")
            if profiles is not None:
                out["profiles"] = {}
                for name in sorted(profiles):
                    overlay = self.profile(name, profiles[name])
                    if overlay is not None:
                        out["profiles"][name] = overlay
        return out

    def profile(self, name: str, raw: object) -> dict[str, Any] | None:
        path = _join("profiles", name)
        if not _PROFILE_NAME.fullmatch(name):
            self.fail(path, f"profile name must match {_PROFILE_NAME.pattern}")
            return None
        payload = self.mapping(raw, path)
        if payload is None:
            return None
        sections = set(_SCHEMA) - {"meta"}
        self.check_keys(payload, path, allowed=sections)
        overlay: dict[str, Any] = {}
        for section in sorted(sections & set(payload)):
            section_path = _join(path, section)
            body = self.mapping(payload[section], section_path)
            if body is not None:
                overlay[section] = self.section(section, body, section_path, partial=True)
        return overlay

    def section(
        self, name: str, payload: Mapping[str, object], path: str, *, partial: bool
    ) -> dict[str, Any]:
        rules = _SCHEMA[name]
        self.check_keys(payload, path, allowed=rules, required=() if partial else rules)
        out: dict[str, Any] = {}
        for key in sorted(rules.keys() & payload.keys()):
            value = self.scalar(rules[key], payload[key], _join(path, key))
            if value is not None:
                out[key] = value
        return out

    def scalar(self, rule: FieldRule, value: object, path: str) -> object | None:
        if isinstance(value, bool) is not (rule.kind is bool) or not isinstance(value, rule.kind):
            self.fail(path, f"expected {_KIND_NAMES[rule.kind]}, got {type(value).__name__}")
            return None
        if isinstance(value, str):
            value = value.strip()
            if not value:
                self.fail(path, "must not be empty")
                return None
            if rule.path_like and "\x00" in value:
                self.fail(path, "must not contain NUL bytes")
                return None
            if rule.choices and value not in rule.choices:
                expected = ", ".join(sorted(rule.choices))
                self.fail(path, f"invalid value {value!r}; expected one of: {expected}")
                return None
        if rule.minimum is not None and isinstance(value, int) and value < rule.minimum:
            self.fail(path, f"must be >= {rule.minimum}")
            return None
        return value


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "FAIL_ON_VALUES",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "FieldRule",
    "GovernanceConfig",
    "ObservabilityConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "gate_exit_code",
    "iter_schema_fields",
    "merge_config",
    "migration_guidance",
    "validate_config",
]

"""Spec descriptor dataclasses with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, ClassVar, NoReturn, TypeAlias, TypeVar

from contract_governance.constants import VERSION_KEY_SEPARATOR
from contract_governance.utils.semver import is_valid_version

if TYPE_CHECKING:
    from collections.abc import Iterable

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_FIELD_DEPTH = 32


class SpecType(StrEnum):
    OPERATION = "operation"
    EVENT = "event"
    CAPABILITY = "capability"
    PRESENTATION = "presentation"
    WORKFLOW = "workflow"
    RESOURCE = "resource"
    FEATURE = "feature"
    DATA_VIEW = "data-view"
    FORM = "form"


class Stability(StrEnum):
    EXPERIMENTAL = "experimental"
    BETA = "beta"
    STABLE = "stable"
    DEPRECATED = "deprecated"


class FieldType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ENUM = "enum"
    UNION = "union"
    LITERAL = "literal"
    DATE = "date"
    UNKNOWN = "unknown"


class CapabilitySurface(StrEnum):
    OPERATION = "operation"
    EVENT = "event"
    WORKFLOW = "workflow"
    PRESENTATION = "presentation"
    RESOURCE = "resource"


class CapabilityKind(StrEnum):
    API = "api"
    EVENT = "event"
    DATA = "data"
    UI = "ui"
    INTEGRATION = "integration"


class AuthLevel(StrEnum):
    ANONYMOUS = "anonymous"
    USER = "user"
    ADMIN = "admin"


class OperationKind(StrEnum):
    COMMAND = "command"
    QUERY = "query"


def composite_key(key: str, version: str) -> str:
    """Return the registry key ``"<key>.v<version>"``."""

    return f"{key}{VERSION_KEY_SEPARATOR}{version}"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_version(value: object, path: str) -> str:
    parsed = _as_str(value, path, max_len=128)
    if not is_valid_version(parsed):
        _fail(path, f"invalid semantic version {parsed!r}")
    return parsed


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str, *, unique: bool) -> tuple[str, ...]:
    parsed = tuple(
        _as_str(item, f"{path}[{index}]") for index, item in enumerate(_as_sequence(value, path))
    )
    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return parsed


# ---------------------------------------------------------------------------
# Field snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldSnapshot:
    """Atomic unit compared by the diff engine."""

    name: str
    type: FieldType
    required: bool = True
    nullable: bool = False
    enum_values: tuple[str, ...] | None = None
    items: FieldSnapshot | None = None
    properties: dict[str, FieldSnapshot] | None = None
    union_types: tuple[FieldSnapshot, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_str(self.name, "FieldSnapshot.name"))
        object.__setattr__(self, "type", _as_enum(FieldType, self.type, "FieldSnapshot.type"))
        _as_bool(self.required, f"{self.name}.required")
        _as_bool(self.nullable, f"{self.name}.nullable")
        if self.enum_values is not None:
            object.__setattr__(
                self,
                "enum_values",
                _as_str_tuple(self.enum_values, f"{self.name}.enumValues", unique=True),
            )
        if self.union_types is not None:
            object.__setattr__(self, "union_types", tuple(self.union_types))

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, name: str | None = None) -> FieldSnapshot:
        return _parse_field(data, name=name, path=name or "field", depth=0)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
            "nullable": self.nullable,
        }
        if self.enum_values is not None:
            out["enumValues"] = list(self.enum_values)
        if self.items is not None:
            out["items"] = self.items.to_dict()
        if self.properties is not None:
            out["properties"] = {
                name: self.properties[name].to_dict() for name in sorted(self.properties)
            }
        if self.union_types is not None:
            out["unionTypes"] = [member.to_dict() for member in self.union_types]
        return out


FieldMap: TypeAlias = dict[str, FieldSnapshot]


def _parse_field(
    data: object,
    *,
    name: str | None,
    path: str,
    depth: int,
) -> FieldSnapshot:
    if depth > _MAX_FIELD_DEPTH:
        _fail(path, f"field nesting exceeds max depth {_MAX_FIELD_DEPTH}")
    parsed = _expect_object(
        data,
        path,
        required={"type"},
        optional={"name", "required", "nullable", "enumValues", "items", "properties", "unionTypes"},
    )
    declared_name = parsed.get("name")
    if declared_name is None:
        if name is None:
            _fail(path, "missing required fields: ['name']")
        resolved_name = name
    else:
        resolved_name = _as_str(declared_name, f"{path}.name")
        if name is not None and resolved_name != name:
            _fail(f"{path}.name", f"does not match map key {name!r}")

    items_raw = parsed.get("items")
    properties_raw = parsed.get("properties")
    union_raw = parsed.get("unionTypes")
    enum_raw = parsed.get("enumValues")

    return FieldSnapshot(
        name=resolved_name,
        type=_as_enum(FieldType, parsed["type"], f"{path}.type"),
        required=_as_bool(parsed.get("required", True), f"{path}.required"),
        nullable=_as_bool(parsed.get("nullable", False), f"{path}.nullable"),
        enum_values=(
            _as_str_tuple(enum_raw, f"{path}.enumValues", unique=True)
            if enum_raw is not None
            else None
        ),
        items=(
            _parse_field(items_raw, name="items", path=f"{path}.items", depth=depth + 1)
            if items_raw is not None
            else None
        ),
        properties=(
            parse_field_map(properties_raw, f"{path}.properties", _depth=depth + 1)
            if properties_raw is not None
            else None
        ),
        union_types=(
            tuple(
                _parse_field(
                    member,
                    name=f"{resolved_name}[{index}]",
                    path=f"{path}.unionTypes[{index}]",
                    depth=depth + 1,
                )
                if isinstance(member, Mapping) and "name" not in member
                else _parse_field(
                    member, name=None, path=f"{path}.unionTypes[{index}]", depth=depth + 1
                )
                for index, member in enumerate(_as_sequence(union_raw, f"{path}.unionTypes"))
            )
            if union_raw is not None
            else None
        ),
    )


def parse_field_map(value: object, path: str, *, _depth: int = 0) -> FieldMap:
    """Parse ``{name: field}`` into a field map keyed by field name."""

    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    fields: FieldMap = {}
    for raw_name in sorted(value, key=str):
        if not isinstance(raw_name, str):
            _fail(path, f"field names must be strings, got {type(raw_name).__name__}")
        fields[raw_name] = _parse_field(
            value[raw_name], name=raw_name, path=f"{path}.{raw_name}", depth=_depth
        )
    return fields


def field_map_to_dict(fields: Mapping[str, FieldSnapshot]) -> dict[str, JSONValue]:
    return {name: fields[name].to_dict() for name in sorted(fields)}


# ---------------------------------------------------------------------------
# References and shared metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SpecRef:
    """Versioned reference to another spec."""

    key: str
    version: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _as_str(self.key, "SpecRef.key"))
        object.__setattr__(self, "version", _as_version(self.version, "SpecRef.version"))

    @property
    def composite_key(self) -> str:
        return composite_key(self.key, self.version)

    @classmethod
    def from_dict(cls, data: object, path: str = "SpecRef") -> SpecRef:
        parsed = _expect_object(data, path, required={"key", "version"})
        return cls(
            key=_as_str(parsed["key"], f"{path}.key"),
            version=_as_version(parsed["version"], f"{path}.version"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {"key": self.key, "version": self.version}


@dataclass(frozen=True, slots=True)
class SpecMeta:
    """Identity and ownership metadata shared by every descriptor."""

    key: str
    version: str
    stability: Stability = Stability.STABLE
    owners: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _as_str(self.key, "SpecMeta.key", max_len=256))
        object.__setattr__(self, "version", _as_version(self.version, "SpecMeta.version"))
        object.__setattr__(
            self, "stability", _as_enum(Stability, self.stability, "SpecMeta.stability")
        )
        object.__setattr__(self, "owners", _as_str_tuple(self.owners, "SpecMeta.owners", unique=True))
        object.__setattr__(self, "tags", _as_str_tuple(self.tags, "SpecMeta.tags", unique=True))

    @classmethod
    def from_fields(cls, parsed: Mapping[str, object], path: str) -> SpecMeta:
        return cls(
            key=_as_str(parsed["key"], f"{path}.key", max_len=256),
            version=_as_version(parsed["version"], f"{path}.version"),
            stability=_as_enum(Stability, parsed.get("stability", "stable"), f"{path}.stability"),
            owners=_as_str_tuple(parsed.get("owners", ()), f"{path}.owners", unique=True),
            tags=_as_str_tuple(parsed.get("tags", ()), f"{path}.tags", unique=True),
            description=_as_optional_str(parsed.get("description"), f"{path}.description"),
        )

    def to_fields(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "key": self.key,
            "version": self.version,
            "stability": self.stability.value,
            "owners": list(self.owners),
            "tags": list(self.tags),
        }
        if self.description is not None:
            out["description"] = self.description
        return out


_META_FIELDS: frozenset[str] = frozenset(
    {"specType", "key", "version", "stability", "owners", "tags", "description"}
)


@dataclass(frozen=True, slots=True)
class EmitDeclaration:
    """
    One entry of an operation's declared event emissions.

    Either resolved (``key`` + ``version``, optionally an inline payload schema)
    or unresolved: the scanner saw an emission it could not statically
    resolve and recorded the raw reference text instead of guessing.
    """

    key: str | None = None
    version: str | None = None
    payload: FieldMap | None = None
    unresolved: str | None = None

    def __post_init__(self) -> None:
        if self.unresolved is not None:
            if self.key is not None or self.version is not None or self.payload is not None:
                _fail("EmitDeclaration", "unresolved emissions must not carry key/version/payload")
            object.__setattr__(
                self, "unresolved", _as_str(self.unresolved, "EmitDeclaration.unresolved")
            )
            return
        if self.key is None or self.version is None:
            _fail("EmitDeclaration", "resolved emissions require key and version")
        object.__setattr__(self, "key", _as_str(self.key, "EmitDeclaration.key"))
        object.__setattr__(self, "version", _as_version(self.version, "EmitDeclaration.version"))

    @property
    def resolved(self) -> bool:
        return self.unresolved is None

    @property
    def composite_key(self) -> str | None:
        if self.key is None or self.version is None:
            return None
        return composite_key(self.key, self.version)

    @classmethod
    def from_dict(cls, data: object, path: str) -> EmitDeclaration:
        parsed = _expect_object(
            data, path, required=set(), optional={"key", "version", "payload", "unresolved", "ref"}
        )
        if "ref" in parsed:
            # ``{ref: {key, version}}`` points at a registered event spec.
            if any(name in parsed for name in ("key", "version", "payload", "unresolved")):
                _fail(path, "'ref' cannot be combined with other fields")
            ref = parsed["ref"]
            if isinstance(ref, str):
                return cls(unresolved=_as_str(ref, f"{path}.ref"))
            spec_ref = SpecRef.from_dict(ref, f"{path}.ref")
            return cls(key=spec_ref.key, version=spec_ref.version)
        if "unresolved" in parsed:
            return cls(unresolved=_as_str(parsed["unresolved"], f"{path}.unresolved"))
        if "key" not in parsed or "version" not in parsed:
            _fail(path, "expected key+version, ref, or unresolved")
        payload_raw = parsed.get("payload")
        return cls(
            key=_as_str(parsed["key"], f"{path}.key"),
            version=_as_version(parsed["version"], f"{path}.version"),
            payload=(
                parse_field_map(payload_raw, f"{path}.payload") if payload_raw is not None else None
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        if self.unresolved is not None:
            return {"unresolved": self.unresolved}
        out: dict[str, JSONValue] = {"key": self.key, "version": self.version}
        if self.payload is not None:
            out["payload"] = field_map_to_dict(self.payload)
        return out


TelemetryProperties = Callable[[Mapping[str, object]], Mapping[str, object]]


@dataclass(frozen=True, slots=True)
class TelemetryTrigger:
    """Telemetry event tracked on operation success or failure."""

    event: SpecRef
    properties: TelemetryProperties | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: object, path: str) -> TelemetryTrigger:
        parsed = _expect_object(data, path, required={"event"})
        raw_event = parsed["event"]
        if isinstance(raw_event, Mapping) and "version" not in raw_event:
            raw_event = {**raw_event, "version": "1.0.0"}
        return cls(event=SpecRef.from_dict(raw_event, f"{path}.event"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"event": self.event.to_dict()}


@dataclass(frozen=True, slots=True)
class HttpBinding:
    method: str
    path: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", _as_str(self.method, "HttpBinding.method").upper())
        object.__setattr__(self, "path", _as_str(self.path, "HttpBinding.path"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"method": self.method, "path": self.path}


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Output descriptor pointing at a resource; hydration is adapter-side."""

    entity: str
    many: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        return {"resourceRef": {"entity": self.entity, "many": self.many}}


# ---------------------------------------------------------------------------
# Spec descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OperationSpec:
    spec_type: ClassVar[SpecType] = SpecType.OPERATION

    meta: SpecMeta
    input: FieldMap = field(default_factory=dict)
    output: FieldMap | ResourceRef = field(default_factory=dict)
    kind: OperationKind = OperationKind.COMMAND
    http: HttpBinding | None = None
    auth_level: AuthLevel | None = None
    emits: tuple[EmitDeclaration, ...] = ()
    telemetry_success: TelemetryTrigger | None = None
    telemetry_failure: TelemetryTrigger | None = None
    capability: SpecRef | None = None

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def version(self) -> str:
        return self.meta.version

    @property
    def composite_key(self) -> str:
        return composite_key(self.meta.key, self.meta.version)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> OperationSpec:
        path = "OperationSpec"
        parsed = _expect_object(
            data,
            path,
            required={"key", "version"},
            optional=set(_META_FIELDS)
            | {
                "kind",
                "io",
                "http",
                "authLevel",
                "sideEffects",
                "emittedEvents",
                "telemetry",
                "capability",
            },
        )
        io = _expect_object(
            parsed.get("io", {}), f"{path}.io", required=set(), optional={"input", "output"}
        )
        output_raw = io.get("output", {})
        output: FieldMap | ResourceRef
        if isinstance(output_raw, Mapping) and "resourceRef" in output_raw:
            ref = _expect_object(
                output_raw["resourceRef"],
                f"{path}.io.output.resourceRef",
                required={"entity"},
                optional={"many"},
            )
            output = ResourceRef(
                entity=_as_str(ref["entity"], f"{path}.io.output.resourceRef.entity"),
                many=_as_bool(ref.get("many", False), f"{path}.io.output.resourceRef.many"),
            )
        else:
            output = parse_field_map(output_raw, f"{path}.io.output")

        http_raw = parsed.get("http")
        http: HttpBinding | None = None
        if http_raw is not None:
            http_obj = _expect_object(http_raw, f"{path}.http", required={"method", "path"})
            http = HttpBinding(
                method=_as_str(http_obj["method"], f"{path}.http.method"),
                path=_as_str(http_obj["path"], f"{path}.http.path"),
            )

        emits_raw: object = ()
        emits_path = f"{path}.emittedEvents"
        if "sideEffects" in parsed:
            side_effects = _expect_object(
                parsed["sideEffects"], f"{path}.sideEffects", required=set(), optional={"emits"}
            )
            emits_raw = side_effects.get("emits", ())
            emits_path = f"{path}.sideEffects.emits"
        if "emittedEvents" in parsed:
            if "sideEffects" in parsed:
                _fail(path, "set only one of sideEffects.emits/emittedEvents")
            emits_raw = parsed["emittedEvents"]

        telemetry_success: TelemetryTrigger | None = None
        telemetry_failure: TelemetryTrigger | None = None
        if "telemetry" in parsed:
            telemetry = _expect_object(
                parsed["telemetry"],
                f"{path}.telemetry",
                required=set(),
                optional={"success", "failure"},
            )
            if telemetry.get("success") is not None:
                telemetry_success = TelemetryTrigger.from_dict(
                    telemetry["success"], f"{path}.telemetry.success"
                )
            if telemetry.get("failure") is not None:
                telemetry_failure = TelemetryTrigger.from_dict(
                    telemetry["failure"], f"{path}.telemetry.failure"
                )

        auth_raw = parsed.get("authLevel")
        capability_raw = parsed.get("capability")
        return cls(
            meta=SpecMeta.from_fields(parsed, path),
            input=parse_field_map(io.get("input", {}), f"{path}.io.input"),
            output=output,
            kind=_as_enum(OperationKind, parsed.get("kind", "command"), f"{path}.kind"),
            http=http,
            auth_level=(
                _as_enum(AuthLevel, auth_raw, f"{path}.authLevel") if auth_raw is not None else None
            ),
            emits=tuple(
                EmitDeclaration.from_dict(item, f"{emits_path}[{index}]")
                for index, item in enumerate(_as_sequence(emits_raw, emits_path))
            ),
            telemetry_success=telemetry_success,
            telemetry_failure=telemetry_failure,
            capability=(
                SpecRef.from_dict(capability_raw, f"{path}.capability")
                if capability_raw is not None
                else None
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"specType": self.spec_type.value, **self.meta.to_fields()}
        out["kind"] = self.kind.value
        out["io"] = {
            "input": field_map_to_dict(self.input),
            "output": (
                self.output.to_dict()
                if isinstance(self.output, ResourceRef)
                else field_map_to_dict(self.output)
            ),
        }
        if self.http is not None:
            out["http"] = self.http.to_dict()
        if self.auth_level is not None:
            out["authLevel"] = self.auth_level.value
        out["sideEffects"] = {"emits": [item.to_dict() for item in self.emits]}
        telemetry: dict[str, JSONValue] = {}
        if self.telemetry_success is not None:
            telemetry["success"] = self.telemetry_success.to_dict()
        if self.telemetry_failure is not None:
            telemetry["failure"] = self.telemetry_failure.to_dict()
        if telemetry:
            out["telemetry"] = telemetry
        if self.capability is not None:
            out["capability"] = self.capability.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class EventSpec:
    spec_type: ClassVar[SpecType] = SpecType.EVENT

    meta: SpecMeta
    payload: FieldMap = field(default_factory=dict)
    capability: SpecRef | None = None

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def version(self) -> str:
        return self.meta.version

    @property
    def composite_key(self) -> str:
        return composite_key(self.meta.key, self.meta.version)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EventSpec:
        path = "EventSpec"
        parsed = _expect_object(
            data,
            path,
            required={"key", "version"},
            optional=set(_META_FIELDS) | {"payload", "capability"},
        )
        capability_raw = parsed.get("capability")
        return cls(
            meta=SpecMeta.from_fields(parsed, path),
            payload=parse_field_map(parsed.get("payload", {}), f"{path}.payload"),
            capability=(
                SpecRef.from_dict(capability_raw, f"{path}.capability")
                if capability_raw is not None
                else None
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"specType": self.spec_type.value, **self.meta.to_fields()}
        out["payload"] = field_map_to_dict(self.payload)
        if self.capability is not None:
            out["capability"] = self.capability.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class PresentationSpec:
    spec_type: ClassVar[SpecType] = SpecType.PRESENTATION

    meta: SpecMeta
    capability: SpecRef | None = None

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def version(self) -> str:
        return self.meta.version

    @property
    def composite_key(self) -> str:
        return composite_key(self.meta.key, self.meta.version)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PresentationSpec:
        path = "PresentationSpec"
        parsed = _expect_object(
            data, path, required={"key", "version"}, optional=set(_META_FIELDS) | {"capability"}
        )
        capability_raw = parsed.get("capability")
        return cls(
            meta=SpecMeta.from_fields(parsed, path),
            capability=(
                SpecRef.from_dict(capability_raw, f"{path}.capability")
                if capability_raw is not None
                else None
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"specType": self.spec_type.value, **self.meta.to_fields()}
        if self.capability is not None:
            out["capability"] = self.capability.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class CapabilitySurfaceRef:
    surface: CapabilitySurface
    key: str
    version: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "surface", _as_enum(CapabilitySurface, self.surface, "CapabilitySurfaceRef.surface")
        )
        object.__setattr__(self, "key", _as_str(self.key, "CapabilitySurfaceRef.key"))
        if self.version is not None:
            object.__setattr__(
                self, "version", _as_version(self.version, "CapabilitySurfaceRef.version")
            )

    @property
    def index_key(self) -> str:
        return f"{self.surface.value}:{self.key}"

    @classmethod
    def from_dict(cls, data: object, path: str) -> CapabilitySurfaceRef:
        parsed = _expect_object(
            data, path, required={"surface", "key"}, optional={"version", "description"}
        )
        version_raw = parsed.get("version")
        return cls(
            surface=_as_enum(CapabilitySurface, parsed["surface"], f"{path}.surface"),
            key=_as_str(parsed["key"], f"{path}.key"),
            version=_as_version(version_raw, f"{path}.version") if version_raw is not None else None,
            description=_as_optional_str(parsed.get("description"), f"{path}.description"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"surface": self.surface.value, "key": self.key}
        if self.version is not None:
            out["version"] = self.version
        if self.description is not None:
            out["description"] = self.description
        return out


@dataclass(frozen=True, slots=True)
class CapabilityRequirement:
    key: str
    version: str | None = None
    kind: CapabilityKind | None = None
    optional: bool = False
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _as_str(self.key, "CapabilityRequirement.key"))
        if self.version is not None:
            object.__setattr__(
                self, "version", _as_version(self.version, "CapabilityRequirement.version")
            )
        if self.kind is not None:
            object.__setattr__(
                self, "kind", _as_enum(CapabilityKind, self.kind, "CapabilityRequirement.kind")
            )
        _as_bool(self.optional, "CapabilityRequirement.optional")

    @classmethod
    def from_dict(cls, data: object, path: str) -> CapabilityRequirement:
        parsed = _expect_object(
            data, path, required={"key"}, optional={"version", "kind", "optional", "reason"}
        )
        version_raw = parsed.get("version")
        kind_raw = parsed.get("kind")
        return cls(
            key=_as_str(parsed["key"], f"{path}.key"),
            version=_as_version(version_raw, f"{path}.version") if version_raw is not None else None,
            kind=_as_enum(CapabilityKind, kind_raw, f"{path}.kind") if kind_raw is not None else None,
            optional=_as_bool(parsed.get("optional", False), f"{path}.optional"),
            reason=_as_optional_str(parsed.get("reason"), f"{path}.reason"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"key": self.key, "optional": self.optional}
        if self.version is not None:
            out["version"] = self.version
        if self.kind is not None:
            out["kind"] = self.kind.value
        if self.reason is not None:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True, slots=True)
class CapabilitySpec:
    spec_type: ClassVar[SpecType] = SpecType.CAPABILITY

    meta: SpecMeta
    kind: CapabilityKind = CapabilityKind.API
    provides: tuple[CapabilitySurfaceRef, ...] = ()
    requires: tuple[CapabilityRequirement, ...] = ()
    extends: SpecRef | None = None

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def version(self) -> str:
        return self.meta.version

    @property
    def composite_key(self) -> str:
        return composite_key(self.meta.key, self.meta.version)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CapabilitySpec:
        path = "CapabilitySpec"
        parsed = _expect_object(
            data,
            path,
            required={"key", "version"},
            optional=set(_META_FIELDS) | {"kind", "provides", "requires", "extends"},
        )
        extends_raw = parsed.get("extends")
        return cls(
            meta=SpecMeta.from_fields(parsed, path),
            kind=_as_enum(CapabilityKind, parsed.get("kind", "api"), f"{path}.kind"),
            provides=tuple(
                CapabilitySurfaceRef.from_dict(item, f"{path}.provides[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("provides", ()), f"{path}.provides")
                )
            ),
            requires=tuple(
                CapabilityRequirement.from_dict(item, f"{path}.requires[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("requires", ()), f"{path}.requires")
                )
            ),
            extends=(
                SpecRef.from_dict(extends_raw, f"{path}.extends") if extends_raw is not None else None
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"specType": self.spec_type.value, **self.meta.to_fields()}
        out["kind"] = self.kind.value
        out["provides"] = [item.to_dict() for item in self.provides]
        out["requires"] = [item.to_dict() for item in self.requires]
        if self.extends is not None:
            out["extends"] = self.extends.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class GenericSpec:
    """Descriptor for spec types the core only snapshots (workflow, form, ...)."""

    spec_type: SpecType
    meta: SpecMeta

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def version(self) -> str:
        return self.meta.version

    @property
    def composite_key(self) -> str:
        return composite_key(self.meta.key, self.meta.version)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> GenericSpec:
        path = "GenericSpec"
        parsed = _expect_object(
            data, path, required={"specType", "key", "version"}, optional=set(_META_FIELDS)
        )
        return cls(
            spec_type=_as_enum(SpecType, parsed["specType"], f"{path}.specType"),
            meta=SpecMeta.from_fields(parsed, path),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {"specType": self.spec_type.value, **self.meta.to_fields()}


SpecDescriptor: TypeAlias = (
    OperationSpec | EventSpec | PresentationSpec | CapabilitySpec | GenericSpec
)

_DESCRIPTOR_TYPES: dict[
    SpecType, type[OperationSpec | EventSpec | PresentationSpec | CapabilitySpec]
] = {
    SpecType.OPERATION: OperationSpec,
    SpecType.EVENT: EventSpec,
    SpecType.PRESENTATION: PresentationSpec,
    SpecType.CAPABILITY: CapabilitySpec,
}


def descriptor_from_dict(data: Mapping[str, object]) -> SpecDescriptor:
    """Parse one plain-data descriptor, dispatching on ``specType``."""

    if not isinstance(data, Mapping):
        _fail("descriptor", f"expected object, got {type(data).__name__}")
    spec_type = _as_enum(SpecType, data.get("specType"), "descriptor.specType")
    descriptor_type = _DESCRIPTOR_TYPES.get(spec_type)
    if descriptor_type is None:
        return GenericSpec.from_dict(data)
    payload = {key: value for key, value in data.items() if key != "specType"}
    return descriptor_type.from_dict(payload)


def descriptors_from_json(raw: str) -> list[SpecDescriptor]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        _fail("descriptors", f"invalid JSON: {exc}")
    descriptors: list[SpecDescriptor] = []
    for index, item in enumerate(_as_sequence(parsed, "descriptors")):
        if not isinstance(item, Mapping):
            _fail(f"descriptors[{index}]", "expected object")
        descriptors.append(descriptor_from_dict(item))
    return descriptors


def iter_resolved_emits(spec: OperationSpec) -> Iterable[EmitDeclaration]:
    return (item for item in spec.emits if item.resolved)


__all__ = [
    "AuthLevel",
    "CapabilityKind",
    "CapabilityRequirement",
    "CapabilitySpec",
    "CapabilitySurface",
    "CapabilitySurfaceRef",
    "EmitDeclaration",
    "EventSpec",
    "FieldMap",
    "FieldSnapshot",
    "FieldType",
    "GenericSpec",
    "HttpBinding",
    "JSONValue",
    "OperationKind",
    "OperationSpec",
    "PresentationSpec",
    "ResourceRef",
    "SpecDescriptor",
    "SpecMeta",
    "SpecRef",
    "SpecType",
    "Stability",
    "TelemetryTrigger",
    "composite_key",
    "descriptor_from_dict",
    "descriptors_from_json",
    "field_map_to_dict",
    "iter_resolved_emits",
    "parse_field_map",
]

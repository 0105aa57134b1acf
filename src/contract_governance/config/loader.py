"""
contract-governance — config loader.

File: src/contract_governance/config/loader.py

Purpose
- Build the effective governance config from layered sources.

Functional requirements
- Layers, lowest first: defaults, ``governance.toml``, the selected profile,
  ``CONTRACTS_<SECTION>_<KEY>`` environment variables, explicit overrides.
- A missing file is fine when no path was given; an explicit path must exist.
- Path fields are resolved against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from contract_governance.config.schema import (
    PATH_FIELDS,
    FieldRule,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    iter_schema_fields,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "governance.toml"
ENV_PREFIX: Final[str] = "CONTRACTS_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """
    Return the validated effective config.

    ``profile`` falls back to ``CONTRACTS_PROFILE``. ``overrides`` uses dotted
    keys such as ``"impact.fail_on"``.
    """

    path = (
        Path(config_path).expanduser().resolve()
        if config_path is not None
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )
    env = os.environ if environ is None else environ

    from_file = _read_toml(path, required=config_path is not None)
    effective = assert_valid_config(merge_config(default_config(), from_file))

    raw_profile = profile if profile is not None else env.get(f"{ENV_PREFIX}PROFILE", "")
    profile_name = raw_profile.strip()
    if profile_name:
        effective = apply_profile_overlay(effective, profile_name)

    effective = merge_config(effective, _env_layer(env))
    effective = merge_config(effective, _nest_dotted(overrides or {}))
    effective = assert_valid_config(effective, active_profile=profile_name or None)
    return normalize_paths(effective, base_dir=path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Rewrite path fields as absolute POSIX paths anchored at ``base_dir``."""

    normalized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        block = normalized.get(section)
        if isinstance(block, dict) and isinstance(block.get(key), str):
            block[key] = _anchor(block[key], base_dir)
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(env: Mapping[str, str]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for section, key, rule in iter_schema_fields():
        if section == "meta":
            continue
        name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
        raw = env.get(name)
        if raw is not None:
            layer.setdefault(section, {})[key] = _coerce(raw, rule, name)
    return layer


def _coerce(raw: str, rule: FieldRule, name: str) -> object:
    text = raw.strip()
    if rule.kind is bool:
        if text.lower() in _TRUTHY:
            return True
        if text.lower() in _FALSY:
            return False
        raise ConfigLoadError(f"{name} must be a boolean (true/false/1/0/yes/no/on/off)")
    if rule.kind is int:
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} must be an integer") from exc
    return text


def _nest_dotted(overrides: Mapping[str, object]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for dotted in sorted(overrides):
        *parents, leaf = dotted.split(".")
        if not leaf or not all(parents):
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        cursor = nested
        for part in parents:
            cursor = cursor.setdefault(part, {})
        cursor[leaf] = overrides[dotted]
    return nested


def _anchor(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]

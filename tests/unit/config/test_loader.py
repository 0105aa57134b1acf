"""
contract-governance — unit tests for config loading

File: tests/unit/config/test_loader.py

Purpose
- Validate layering (defaults, file, profile, env, overrides) and path
  normalization for ``governance.toml``.

Functional requirements
- Offline; every test writes its own config into ``tmp_path``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from contract_governance.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from contract_governance.config.schema import ConfigValidationError

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(path: Path, body: str) -> Path:
    path.write_text(body.strip() + "\n", encoding="utf-8")
    return path


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    root = tmp_path.resolve()
    assert config["impact"]["fail_on"] == "breaking"
    assert config["snapshot"]["path"] == (root / ".contracts" / "snapshot.json").as_posix()
    assert config["observability"]["log_dir"] == (root / "logs").as_posix()


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_file_values_override_defaults_and_paths_resolve_against_file(tmp_path: Path) -> None:
    config_dir = tmp_path.resolve() / "repo"
    config_dir.mkdir()
    config_path = _write_config(
        config_dir / "governance.toml",
        """
[snapshot]
path = "artifacts/contracts.json"

[impact]
fail_on = "non-breaking"
""",
    )

    config = load_config(config_path, environ={})

    assert config["impact"]["fail_on"] == "non-breaking"
    assert config["snapshot"]["path"] == (config_dir / "artifacts" / "contracts.json").as_posix()
    assert config["snapshot"]["include_commit_sha"] is True


def test_precedence_overrides_beat_env_beat_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "governance.toml",
        """
[impact]
fail_on = "never"

[observability]
log_level = "DEBUG"
""",
    )
    environ = {
        "CONTRACTS_IMPACT_FAIL_ON": "non-breaking",
        "CONTRACTS_OBSERVABILITY_LOG_LEVEL": "WARNING",
        "CONTRACTS_CAPABILITIES_STRICT_ANCESTRY": "yes",
    }

    config = load_config(
        config_path, environ=environ, overrides={"observability.log_level": "ERROR"}
    )

    assert config["impact"]["fail_on"] == "non-breaking"
    assert config["observability"]["log_level"] == "ERROR"
    assert config["capabilities"]["strict_ancestry"] is True


def test_profile_from_env_applies_before_env_overrides(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "governance.toml",
        """
[profiles.ci.observability]
log_to_stdout = true
""",
    )

    config = load_config(
        config_path,
        environ={"CONTRACTS_PROFILE": "strict", "CONTRACTS_IMPACT_FAIL_ON": "breaking"},
    )
    assert config["capabilities"]["strict_ancestry"] is True
    assert config["impact"]["fail_on"] == "breaking"

    ci = load_config(config_path, profile="ci", environ={})
    assert ci["observability"]["log_to_stdout"] is True


def test_invalid_env_boolean_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "governance.toml", "[impact]\nfail_on = \"breaking\"")

    with pytest.raises(ConfigLoadError, match="CONTRACTS_OBSERVABILITY_REDACT_SECRETS"):
        load_config(config_path, environ={"CONTRACTS_OBSERVABILITY_REDACT_SECRETS": "maybe"})


def test_invalid_toml_and_invalid_values_are_reported(tmp_path: Path) -> None:
    broken = _write_config(tmp_path / "broken.toml", "[impact\nfail_on =")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(broken, environ={})

    invalid = _write_config(tmp_path / "invalid.toml", '[impact]\nfail_on = "sometimes"')
    with pytest.raises(ConfigValidationError, match="impact.fail_on"):
        load_config(invalid, environ={})


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "governance.toml", "")
    config = load_config(config_path, environ={})

    dumped = dump_effective_config(config)

    assert dumped == dump_effective_config(json.loads(dumped))
    assert json.loads(dumped)["meta"]["schema_version"] == 1

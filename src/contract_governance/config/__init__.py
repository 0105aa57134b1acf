"""Layered ``governance.toml`` loading, validation and the CI gate."""

from contract_governance.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from contract_governance.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    FAIL_ON_VALUES,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    GovernanceConfig,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    gate_exit_code,
    merge_config,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "FAIL_ON_VALUES",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "GovernanceConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "gate_exit_code",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]

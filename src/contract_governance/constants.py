"""Stable constants shared across the governance engine."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted artifacts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
SNAPSHOT_FORMAT_VERSION: Final[str] = "1.0.0"

# Default artifact locations (relative to the config file unless overridden).
DEFAULT_SNAPSHOT_PATH: Final[PurePosixPath] = PurePosixPath(".contracts/snapshot.json")
DEFAULT_LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Composite registry key separator: ``"<key>.v<version>"``.
VERSION_KEY_SEPARATOR: Final[str] = ".v"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_LOG_DIR",
    "DEFAULT_SNAPSHOT_PATH",
    "SNAPSHOT_FORMAT_VERSION",
    "VERSION_KEY_SEPARATOR",
]

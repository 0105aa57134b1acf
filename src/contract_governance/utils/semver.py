"""Semantic-version parsing, precedence comparison, and bumping."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from functools import total_ordering
from typing import Final

_SEMVER_RE: Final[re.Pattern[str]] = re.compile(
    r"""
    ^v?
    (?P<major>0|[1-9]\d*)
    (?:\.(?P<minor>0|[1-9]\d*))?
    (?:\.(?P<patch>0|[1-9]\d*))?
    (?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    $
    """,
    re.VERBOSE,
)


class BumpType(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@total_ordering
@dataclass(frozen=True, slots=True)
class SemVer:
    """
    Parsed semantic version.

    Ordering follows SemVer 2.0 precedence: numeric core first, a
    pre-release sorts before its release, and build metadata is ignored.
    Missing minor/patch components default to ``0`` so ``"2"`` equals ``"2.0.0"``.
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> SemVer:
        if not isinstance(raw, str):
            raise ValueError(f"version must be a string, got {type(raw).__name__}")
        match = _SEMVER_RE.fullmatch(raw.strip())
        if match is None:
            raise ValueError(f"invalid semantic version: {raw!r}")
        prerelease = match.group("prerelease")
        build = match.group("build")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=tuple(build.split(".")) if build else (),
        )

    def _precedence_key(self) -> tuple[object, ...]:
        # A release (no pre-release) outranks every pre-release of the same core.
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        identifiers = tuple(_identifier_key(item) for item in self.prerelease)
        return (self.major, self.minor, self.patch, 0, identifiers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence_key() == other._precedence_key()

    def __lt__(self, other: SemVer) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()

    def __hash__(self) -> int:
        return hash(self._precedence_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def bump(self, bump_type: BumpType | str) -> SemVer:
        kind = BumpType(bump_type)
        if kind is BumpType.MAJOR:
            return SemVer(self.major + 1, 0, 0)
        if kind is BumpType.MINOR:
            return SemVer(self.major, self.minor + 1, 0)
        if self.prerelease:
            # 1.2.3-rc.1 -> 1.2.3: a patch bump releases the pre-release.
            return SemVer(self.major, self.minor, self.patch)
        return SemVer(self.major, self.minor, self.patch + 1)


def _identifier_key(identifier: str) -> tuple[int, int, str]:
    # Numeric identifiers compare numerically and sort before alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


def parse_version(raw: str) -> SemVer:
    """Parse ``raw`` into a :class:`SemVer`."""

    return SemVer.parse(raw)


def is_valid_version(raw: object) -> bool:
    """Return whether ``raw`` is a parseable semantic version string."""

    if not isinstance(raw, str):
        return False
    return _SEMVER_RE.fullmatch(raw.strip()) is not None


def compare_versions(left: str, right: str) -> int:
    """Return ``-1``, ``0``, or ``1`` comparing ``left`` to ``right`` by precedence."""

    parsed_left = SemVer.parse(left)
    parsed_right = SemVer.parse(right)
    if parsed_left < parsed_right:
        return -1
    if parsed_left > parsed_right:
        return 1
    return 0


def bump_version(version: str, bump_type: BumpType | str) -> str:
    """Return ``version`` bumped by ``bump_type`` in canonical ``X.Y.Z`` form."""

    return str(SemVer.parse(version).bump(bump_type))


__all__ = [
    "BumpType",
    "SemVer",
    "bump_version",
    "compare_versions",
    "is_valid_version",
    "parse_version",
]

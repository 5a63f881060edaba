# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Semantic versioning utilities for addon dependencies.

Supported constraint syntax:

- exact: ``1.2.3`` or ``=1.2.3``
- comparisons: ``>1.0.0``, ``>=1.0.0``, ``<2.0.0``, ``<=2.0.0``
- caret: ``^1.2.3`` (same major; a zero major behaves like tilde)
- tilde: ``~1.2.3`` (same major and minor), ``~1`` (same major)
- wildcard: ``*``
- ranges: ``>=1.0.0 <2.0.0`` (all parts must hold) and ``^1.0.0 || ^2.0.0``
  (any alternative may hold)

Versions inside constraints may be partial (``^1.2``); missing components
are treated as zero and the number of given components is kept as the
comparator precision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cmp_to_key

from pawnctl.addons.exceptions import InvalidVersionError
from pawnctl.logging import get_logger

logger = get_logger(__name__)

_VERSION_RE = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
_PARTIAL_RE = re.compile(
    r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
# Longest operators first so ">=" is not read as ">".
_OPERATORS = (">=", "<=", "^", "~", ">", "<", "=")
_WILDCARDS = {"*", "x", "X"}


@dataclass(frozen=True)
class Version:
    """Parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


@dataclass(frozen=True)
class Comparator:
    """A single ``<operator><version>`` term of a constraint."""

    operator: str
    version: Version | None
    precision: int
    raw: str

    @property
    def is_exact(self) -> bool:
        return self.operator == "=" and self.precision == 3

    def matches(self, version: Version) -> bool:
        if self.operator == "*" or self.version is None:
            return True

        target = self.version
        if self.operator == "=":
            if self.precision == 3:
                return compare(version, target) == 0
            return _within(version, target, _bump(target, self.precision))
        if self.operator == ">":
            return compare(version, target) > 0
        if self.operator == ">=":
            return compare(version, target) >= 0
        if self.operator == "<":
            return compare(version, target) < 0
        if self.operator == "<=":
            return compare(version, target) <= 0
        if self.operator == "~":
            return _within(version, target, _bump(target, 2 if self.precision >= 2 else 1))
        if self.operator == "^":
            if target.major == 0:
                return _within(version, target, _bump(target, 2 if self.precision >= 2 else 1))
            return _within(version, target, _bump(target, 1))
        return False


@dataclass(frozen=True)
class Constraint:
    """Parsed constraint: OR of alternatives, each an AND of comparators."""

    alternatives: tuple[tuple[Comparator, ...], ...]
    raw: str

    @property
    def is_simple(self) -> bool:
        return len(self.alternatives) == 1 and len(self.alternatives[0]) == 1

    @property
    def is_exact(self) -> bool:
        return self.is_simple and self.alternatives[0][0].is_exact

    @property
    def operator(self) -> str:
        """Operator of a simple constraint; ``""`` for ranges."""
        return self.alternatives[0][0].operator if self.is_simple else ""

    def matches(self, version: Version) -> bool:
        return any(all(term.matches(version) for term in alternative) for alternative in self.alternatives)


@dataclass(frozen=True)
class ConstraintConflict:
    constraint1: str
    constraint2: str
    reason: str


def parse_version(version: str | Version) -> Version:
    """Parse ``major.minor.patch[-prerelease][+build]``.

    Raises:
        InvalidVersionError: If the string is not a full semantic version
    """
    if isinstance(version, Version):
        return version
    match = _VERSION_RE.match(version.strip()) if isinstance(version, str) else None
    if not match:
        raise InvalidVersionError(f"Invalid version format: {version}")
    major, minor, patch, prerelease, build = match.groups()
    return Version(int(major), int(minor), int(patch), prerelease, build)


def _parse_comparator(term: str) -> Comparator:
    text = term.strip()
    if not text or text in _WILDCARDS:
        return Comparator("*", None, 0, text or "*")

    operator = "="
    for candidate in _OPERATORS:
        if text.startswith(candidate):
            operator = candidate
            text = text[len(candidate):].strip()
            break

    match = _PARTIAL_RE.match(text)
    if not match:
        raise InvalidVersionError(f"Invalid version constraint: {term}")
    major, minor, patch, prerelease, build = match.groups()
    precision = 1 + (minor is not None) + (patch is not None)
    version = Version(int(major), int(minor or 0), int(patch or 0), prerelease, build)
    return Comparator(operator, version, precision, term.strip())


def parse_constraint(constraint: str) -> Constraint:
    """Parse a constraint expression.

    Raises:
        InvalidVersionError: If any term cannot be parsed
    """
    raw = constraint.strip()
    alternatives = []
    for alternative in raw.split("||"):
        terms = alternative.split()
        if not terms:
            if "||" in raw:
                raise InvalidVersionError(f"Invalid version constraint: {constraint}")
            terms = ["*"]
        alternatives.append(tuple(_parse_comparator(term) for term in terms))
    return Constraint(tuple(alternatives), raw)


def _bump(version: Version, precision: int) -> Version:
    """Exclusive upper bound after pinning the first *precision* components."""
    if precision <= 1:
        return Version(version.major + 1, 0, 0)
    if precision == 2:
        return Version(version.major, version.minor + 1, 0)
    return Version(version.major, version.minor, version.patch + 1)


def _within(version: Version, lower: Version, upper: Version) -> bool:
    return compare(version, lower) >= 0 and compare(version, upper) < 0


def compare(v1: str | Version, v2: str | Version) -> int:
    """Compare two versions.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2. A pre-release sorts before
        the same version without one; two pre-releases compare lexically.
    """
    a = parse_version(v1)
    b = parse_version(v2)

    for left, right in ((a.major, b.major), (a.minor, b.minor), (a.patch, b.patch)):
        if left != right:
            return 1 if left > right else -1

    if a.prerelease and not b.prerelease:
        return -1
    if not a.prerelease and b.prerelease:
        return 1
    if a.prerelease and b.prerelease and a.prerelease != b.prerelease:
        return 1 if a.prerelease > b.prerelease else -1
    return 0


def satisfies(version: str | Version, constraint: str) -> bool:
    """Check whether *version* satisfies *constraint*.

    Invalid input is logged and reported as not satisfied.
    """
    try:
        parsed_version = parse_version(version)
        parsed_constraint = parse_constraint(constraint)
    except InvalidVersionError as e:
        logger.warning("semver_invalid_input", version=str(version), constraint=constraint, error=str(e))
        return False
    return parsed_constraint.matches(parsed_version)


def find_best_version(versions: list[str], constraints: list[str]) -> str | None:
    """Return the highest version that satisfies every constraint, or None."""
    candidates = [
        version
        for version in versions
        if is_valid_version(version) and all(satisfies(version, constraint) for constraint in constraints)
    ]
    if not candidates:
        return None
    return max(candidates, key=cmp_to_key(compare))


def constraints_compatible(constraint1: str, constraint2: str) -> bool:
    """Coarse compatibility check between two constraints.

    Only two exact pins on different versions are treated as incompatible;
    every other pairing is assumed to overlap. Unparsable input is
    incompatible.
    """
    try:
        parsed1 = parse_constraint(constraint1)
        parsed2 = parse_constraint(constraint2)
    except InvalidVersionError:
        return False

    if parsed1.is_exact and parsed2.is_exact:
        return compare(parsed1.alternatives[0][0].version, parsed2.alternatives[0][0].version) == 0
    return True


def detect_conflicts(constraints: list[str]) -> list[ConstraintConflict]:
    """Pairwise incompatibilities between *constraints*."""
    conflicts: list[ConstraintConflict] = []
    for i, first in enumerate(constraints):
        for second in constraints[i + 1:]:
            if not constraints_compatible(first, second):
                conflicts.append(ConstraintConflict(first, second, "Incompatible version constraints"))
    return conflicts


def is_valid_version(version: str) -> bool:
    try:
        parse_version(version)
    except InvalidVersionError:
        return False
    return True


def is_valid_constraint(constraint: str) -> bool:
    try:
        parse_constraint(constraint)
    except InvalidVersionError:
        return False
    return True

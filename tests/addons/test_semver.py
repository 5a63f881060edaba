# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for semantic version parsing and constraint matching."""

from __future__ import annotations

import pytest

from pawnctl.addons import semver
from pawnctl.addons.exceptions import InvalidVersionError


def test_parse_version_with_prerelease_and_build():
    """Test full version strings keep prerelease and build metadata."""
    version = semver.parse_version("1.2.3-beta.1+build.5")
    assert (version.major, version.minor, version.patch) == (1, 2, 3)
    assert version.prerelease == "beta.1"
    assert version.build == "build.5"
    assert str(version) == "1.2.3-beta.1+build.5"


@pytest.mark.parametrize("text", ["1.2", "v1.2.3", "1.2.3.4", "latest", ""])
def test_parse_version_rejects_invalid(text):
    """Test anything but major.minor.patch is rejected."""
    with pytest.raises(InvalidVersionError):
        semver.parse_version(text)


def test_invalid_version_error_is_value_error():
    """Test callers catching ValueError also see version errors."""
    with pytest.raises(ValueError):
        semver.parse_version("nope")


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [
        ("1.0.0", "1.0.0", 0),
        ("2.0.0", "1.9.9", 1),
        ("1.2.3", "1.10.0", -1),
        ("1.0.0-alpha", "1.0.0", -1),
        ("1.0.0", "1.0.0-rc.1", 1),
        ("1.0.0-alpha", "1.0.0-beta", -1),
        ("1.0.0+build.1", "1.0.0+build.2", 0),
    ],
)
def test_compare(left, right, expected):
    """Test version ordering, including prereleases."""
    assert semver.compare(left, right) == expected


@pytest.mark.parametrize(
    ("version", "constraint", "expected"),
    [
        ("1.2.3", "1.2.3", True),
        ("1.2.4", "=1.2.3", False),
        ("1.5.0", "^1.2.0", True),
        ("2.0.0", "^1.2.0", False),
        ("1.1.9", "^1.2.0", False),
        ("0.2.5", "^0.2.0", True),
        ("0.3.0", "^0.2.0", False),
        ("1.2.9", "~1.2.0", True),
        ("1.3.0", "~1.2.0", False),
        ("1.9.0", "~1", True),
        ("2.0.0", "~1", False),
        ("1.3.0", "^1.2", True),
        ("1.2.7", "=1.2", True),
        ("1.3.0", "1.2", False),
        ("2.0.1", ">2.0.0", True),
        ("2.0.0", ">=2.0.0", True),
        ("1.9.9", "<2.0.0", True),
        ("2.0.0", "<=2.0.0", True),
        ("9.9.9", "*", True),
        ("1.5.0", ">=1.0.0 <2.0.0", True),
        ("2.0.0", ">=1.0.0 <2.0.0", False),
        ("2.5.0", "^1.0.0 || ^2.0.0", True),
        ("3.0.0", "^1.0.0 || ^2.0.0", False),
    ],
)
def test_satisfies(version, constraint, expected):
    """Test constraint operators, partial versions and ranges."""
    assert semver.satisfies(version, constraint) is expected


def test_satisfies_invalid_input_is_false():
    """Test bad input is reported as unsatisfied instead of raising."""
    assert semver.satisfies("bogus", "^1.0.0") is False
    assert semver.satisfies("1.0.0", ">=banana") is False


def test_find_best_version():
    """Test the highest matching version wins and junk is ignored."""
    versions = ["1.0.0", "1.5.0", "2.0.0", "junk", "1.4.9"]
    assert semver.find_best_version(versions, ["^1.0.0"]) == "1.5.0"
    assert semver.find_best_version(versions, [">=1.2.0", "<2.0.0"]) == "1.5.0"
    assert semver.find_best_version(versions, ["^3.0.0"]) is None


def test_constraints_compatible_is_coarse():
    """Test only differing exact pins are treated as incompatible."""
    assert semver.constraints_compatible("1.0.0", "2.0.0") is False
    assert semver.constraints_compatible("1.0.0", "=1.0.0") is True
    assert semver.constraints_compatible("^1.0.0", "^2.0.0") is True
    assert semver.constraints_compatible("^1.0.0", "not valid") is False


def test_detect_conflicts():
    """Test pairwise conflict detection reports both sides."""
    conflicts = semver.detect_conflicts(["1.0.0", "2.0.0", "^1.0.0"])
    assert len(conflicts) == 1
    assert conflicts[0].constraint1 == "1.0.0"
    assert conflicts[0].constraint2 == "2.0.0"
    assert conflicts[0].reason == "Incompatible version constraints"


def test_validity_helpers():
    """Test the boolean validators used by the CLI."""
    assert semver.is_valid_version("1.0.0")
    assert not semver.is_valid_version("1.0")
    assert semver.is_valid_constraint(">=1.0.0 <2.0.0")
    assert semver.is_valid_constraint("*")
    assert not semver.is_valid_constraint("^1.0.0 ||")
    assert not semver.is_valid_constraint("~banana")

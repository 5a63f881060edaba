# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for dependency resolution and install ordering."""

from __future__ import annotations

import pytest

from pawnctl.addons.dependencies import DependencyResolver
from pawnctl.addons.models import AddonInfo


@pytest.fixture
def resolver(loader):
    return DependencyResolver(loader)


@pytest.fixture
def add(loader):
    def _add(name, version="1.0.0", dependencies=None, constraints=None, enabled=True):
        loader.register_info(
            AddonInfo(
                name=name,
                version=version,
                dependencies=dependencies or [],
                dependency_constraints=constraints or {},
                enabled=enabled,
            )
        )

    return _add


def test_linear_chain(resolver, add):
    """Test a chain resolves root first and installs leaves first."""
    add("app", dependencies=["lib"])
    add("lib", dependencies=["core"])
    add("core")

    resolution = resolver.resolve_dependencies("app")

    assert resolution.ok
    assert resolution.resolved == ["app", "lib", "core"]
    assert resolver.get_installation_order(resolution) == ["core", "lib", "app"]


def test_diamond_installs_shared_dependency_once(resolver, add):
    """Test a shared dependency appears once, before both dependents."""
    add("app", dependencies=["left", "right"])
    add("left", dependencies=["base"])
    add("right", dependencies=["base"])
    add("base")

    resolution = resolver.resolve_dependencies("app")

    assert resolution.resolved == ["app", "left", "base", "right"]
    assert resolver.get_installation_order(resolution) == ["base", "left", "right", "app"]


def test_uninstallation_order_removes_dependents_first(resolver, add):
    """Test dependents are removed before what they depend on."""
    add("app", dependencies=["left", "right"])
    add("left", dependencies=["base"])
    add("right", dependencies=["base"])
    add("base")

    assert resolver.get_uninstallation_order("base") == ["app", "left", "right", "base"]


def test_dependency_graph_tracks_dependents(resolver, add):
    """Test reverse edges are built from declared dependencies."""
    add("app", dependencies=["lib", "ghost"])
    add("lib")

    graph = resolver.build_dependency_graph()

    assert graph["lib"].dependents == ["app"]
    assert graph["app"].dependencies == ["lib", "ghost"]
    assert "ghost" not in graph


def test_missing_dependency(resolver, add):
    """Test unknown dependencies are reported and suggestions given."""
    add("app", dependencies=["ghost"])

    resolution = resolver.resolve_dependencies("app")

    assert resolution.missing == ["ghost"]
    assert not resolution.ok
    suggestions = resolver.suggest_solutions(resolution)
    assert suggestions[0] == "Install missing dependencies: pawnctl addon install ghost"


def test_unknown_root_is_missing(resolver):
    """Test resolving an unknown addon reports it as missing."""
    assert resolver.resolve_dependencies("nobody").missing == ["nobody"]


def test_cycle_is_reported_once(resolver, add):
    """Test a cycle terminates and yields a single circular conflict."""
    add("a", dependencies=["b"])
    add("b", dependencies=["c"])
    add("c", dependencies=["a"])

    resolution = resolver.resolve_dependencies("a")

    assert resolution.resolved == ["a", "b", "c"]
    assert len(resolution.conflicts) == 1
    conflict = resolution.conflicts[0]
    assert conflict.conflict == "circular"
    assert conflict.reason == "Circular dependency detected: a -> b -> c -> a"
    assert "Remove circular dependency involving a" in " ".join(resolver.suggest_solutions(resolution))


def test_self_dependency_is_circular(resolver, add):
    """Test an addon depending on itself is a cycle."""
    add("loop", dependencies=["loop"])
    resolution = resolver.resolve_dependencies("loop")
    assert resolution.conflicts[0].reason == "Circular dependency detected: loop -> loop"


def test_unsatisfied_constraint(resolver, add):
    """Test an installed version outside the constraint is a version conflict."""
    add("app", dependencies=["lib"], constraints={"lib": "^2.0.0"})
    add("lib", version="1.4.0")

    resolution = resolver.resolve_dependencies("app")

    assert len(resolution.version_conflicts) == 1
    conflict = resolution.version_conflicts[0]
    assert conflict.addon == "lib"
    assert conflict.constraint == "^2.0.0"
    assert conflict.available_version == "1.4.0"
    assert conflict.reason == "Version 1.4.0 does not satisfy constraint ^2.0.0"


def test_satisfied_constraint(resolver, add):
    """Test a matching version produces no conflicts."""
    add("app", dependencies=["lib"], constraints={"lib": ">=1.0.0 <2.0.0"})
    add("lib", version="1.4.0")

    assert resolver.resolve_dependencies("app").ok


def test_incompatible_pins_from_two_dependents(resolver, add):
    """Test two exact pins on the same dependency conflict."""
    add("app", dependencies=["x", "y"])
    add("x", dependencies=["core"], constraints={"core": "1.0.0"})
    add("y", dependencies=["core"], constraints={"core": "2.0.0"})
    add("core", version="1.0.0")

    resolution = resolver.resolve_dependencies("app")

    pin_conflicts = [c for c in resolution.version_conflicts if c.available_version == "unknown"]
    assert len(pin_conflicts) == 1
    assert pin_conflicts[0].constraint == "1.0.0 vs 2.0.0"
    unsatisfied = [c for c in resolution.version_conflicts if c.available_version == "1.0.0"]
    assert [c.constraint for c in unsatisfied] == ["2.0.0"]


def test_validate_dependencies(resolver, add):
    """Test validation flags missing and disabled dependencies."""
    add("app", dependencies=["ghost", "off", "on"])
    add("off", enabled=False)
    add("on")

    validation = resolver.validate_dependencies("app")

    assert not validation.valid
    assert validation.issues == ["Missing dependency: ghost", "Dependency disabled: off"]
    assert resolver.validate_dependencies("on").valid
    assert resolver.validate_dependencies("nobody").issues == ["Addon 'nobody' not found"]


@pytest.mark.asyncio
async def test_auto_install_dependencies(loader, add):
    """Test each missing dependency is installed and failures collected."""
    installed = []

    async def install(name, **options):
        if name == "broken":
            raise RuntimeError("no such repository")
        installed.append((name, options))

    resolver = DependencyResolver(loader, install=install)
    add("app", dependencies=["owner/helper", "broken"])

    resolution = resolver.resolve_dependencies("app")
    result = await resolver.auto_install_dependencies(resolution, {"global_": True})

    assert installed == [("owner/helper", {"global_": True})]
    assert result.installed == ["owner/helper"]
    assert result.failed == ["broken"]
    assert result.errors == {"broken": "no such repository"}


@pytest.mark.asyncio
async def test_auto_install_without_installer(resolver, add):
    """Test every missing dependency fails when nothing can install."""
    add("app", dependencies=["ghost"])
    result = await resolver.auto_install_dependencies(resolver.resolve_dependencies("app"))
    assert result.failed == ["ghost"]


@pytest.mark.asyncio
async def test_installation_order_with_auto_install(loader, add):
    """Test the plan reports what was auto-installed."""

    async def install(name, **options):
        loader.register_info(AddonInfo(name=name, version="1.0.0"))

    resolver = DependencyResolver(loader, install=install)
    add("app", dependencies=["helper"])

    plan = await resolver.get_installation_order_with_auto_install("app")

    assert plan.auto_installed == ["helper"]
    assert plan.order == ["helper", "app"]

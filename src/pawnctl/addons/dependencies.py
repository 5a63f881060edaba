# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Addon dependency graph, resolution and install ordering."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pawnctl.addons import semver
from pawnctl.addons.loader import AddonLoader
from pawnctl.addons.models import AddonInfo
from pawnctl.logging import get_logger

logger = get_logger(__name__)

InstallFunc = Callable[..., Awaitable[Any]]


@dataclass
class DependencyNode:
    addon: AddonInfo
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)


@dataclass
class DependencyConflict:
    addon: str
    conflict: Literal["circular", "version"]
    reason: str


@dataclass
class VersionConflict:
    addon: str
    constraint: str
    available_version: str
    reason: str


@dataclass
class DependencyResolution:
    resolved: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    conflicts: list[DependencyConflict] = field(default_factory=list)
    version_conflicts: list[VersionConflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.conflicts or self.version_conflicts)


@dataclass
class DependencyValidation:
    valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass
class AutoInstallResult:
    installed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


@dataclass
class InstallPlan:
    order: list[str]
    auto_installed: list[str]


DependencyGraph = dict[str, DependencyNode]


class DependencyResolver:
    """Resolves what an addon's dependency closure needs.

    Problems are reported as data on :class:`DependencyResolution`; nothing
    here raises for a missing or conflicting dependency.
    """

    def __init__(self, loader: AddonLoader, install: InstallFunc | None = None) -> None:
        self.loader = loader
        self.install = install

    def build_dependency_graph(self) -> DependencyGraph:
        graph: DependencyGraph = {
            info.name: DependencyNode(addon=info, dependencies=list(info.dependencies))
            for info in self.loader.get_all_addon_info()
        }
        for name, node in graph.items():
            for dependency in node.dependencies:
                target = graph.get(dependency)
                if target is not None and name not in target.dependents:
                    target.dependents.append(name)
        return graph

    def resolve_dependencies(self, root: str) -> DependencyResolution:
        graph = self.build_dependency_graph()
        resolution = DependencyResolution()
        if root not in graph:
            resolution.missing.append(root)
            return resolution

        expanded: set[str] = set()
        circular: set[str] = set()

        def visit(name: str, path: list[str]) -> None:
            if name in path:
                if name not in circular:
                    circular.add(name)
                    cycle = " -> ".join([*path[path.index(name):], name])
                    resolution.conflicts.append(
                        DependencyConflict(name, "circular", f"Circular dependency detected: {cycle}")
                    )
                return

            node = graph.get(name)
            if node is None:
                if name not in resolution.missing:
                    resolution.missing.append(name)
                return

            if name not in resolution.resolved:
                resolution.resolved.append(name)
            if name in expanded:
                return

            path.append(name)
            for dependency in node.dependencies:
                visit(dependency, path)
            path.pop()
            expanded.add(name)

        visit(root, [])
        self._check_version_mismatches(resolution, graph)
        self._check_constraints(resolution, graph)

        logger.debug(
            "dependencies_resolved",
            addon=root,
            resolved=len(resolution.resolved),
            missing=len(resolution.missing),
            conflicts=len(resolution.conflicts),
            version_conflicts=len(resolution.version_conflicts),
        )
        return resolution

    def _check_version_mismatches(self, resolution: DependencyResolution, graph: DependencyGraph) -> None:
        seen: dict[str, str] = {}
        for name in resolution.resolved:
            version = graph[name].addon.version
            previous = seen.setdefault(name, version)
            if previous != version:
                resolution.conflicts.append(
                    DependencyConflict(name, "version", f"Version conflict: {previous} vs {version}")
                )

    def _check_constraints(self, resolution: DependencyResolution, graph: DependencyGraph) -> None:
        aggregated: dict[str, list[str]] = {}
        for name in resolution.resolved:
            for dependency, constraint in graph[name].addon.dependency_constraints.items():
                constraints = aggregated.setdefault(dependency, [])
                if constraint not in constraints:
                    constraints.append(constraint)

        for dependency, constraints in aggregated.items():
            for conflict in semver.detect_conflicts(constraints):
                resolution.version_conflicts.append(
                    VersionConflict(
                        addon=dependency,
                        constraint=f"{conflict.constraint1} vs {conflict.constraint2}",
                        available_version="unknown",
                        reason=conflict.reason,
                    )
                )

            node = graph.get(dependency)
            if node is None:
                continue
            available = node.addon.version
            for constraint in constraints:
                if not semver.satisfies(available, constraint):
                    resolution.version_conflicts.append(
                        VersionConflict(
                            addon=dependency,
                            constraint=constraint,
                            available_version=available,
                            reason=f"Version {available} does not satisfy constraint {constraint}",
                        )
                    )

    def get_installation_order(self, resolution: DependencyResolution) -> list[str]:
        """Dependencies before dependents, each name once."""
        graph = self.build_dependency_graph()
        order: list[str] = []
        visited: set[str] = set()

        def place(name: str) -> None:
            if name in visited or name not in graph:
                return
            visited.add(name)
            for dependency in graph[name].dependencies:
                place(dependency)
            order.append(name)

        for name in resolution.resolved:
            place(name)
        return order

    def get_uninstallation_order(self, name: str) -> list[str]:
        """Dependents before *name*, each name once."""
        graph = self.build_dependency_graph()
        order: list[str] = []
        visited: set[str] = set()

        def place(current: str) -> None:
            if current in visited or current not in graph:
                return
            visited.add(current)
            for dependent in graph[current].dependents:
                place(dependent)
            order.append(current)

        place(name)
        return order

    def validate_dependencies(self, name: str) -> DependencyValidation:
        info = self.loader.get_addon_info(name)
        if info is None:
            return DependencyValidation(valid=False, issues=[f"Addon '{name}' not found"])

        issues: list[str] = []
        for dependency in info.dependencies:
            dependency_info = self.loader.get_addon_info(dependency)
            if dependency_info is None:
                issues.append(f"Missing dependency: {dependency}")
            elif not dependency_info.enabled:
                issues.append(f"Dependency disabled: {dependency}")
        return DependencyValidation(valid=not issues, issues=issues)

    async def auto_install_dependencies(
        self, resolution: DependencyResolution, options: dict[str, Any] | None = None
    ) -> AutoInstallResult:
        """Try to install every missing dependency; partial success is normal."""
        result = AutoInstallResult()
        if self.install is None:
            result.failed.extend(resolution.missing)
            result.errors.update({name: "No installer available" for name in resolution.missing})
            return result

        for name in resolution.missing:
            logger.info("dependency_installing", addon=name)
            try:
                await self.install(name, **(options or {}))
            except Exception as e:
                result.failed.append(name)
                result.errors[name] = str(e)
                logger.error("dependency_install_failed", addon=name, error=str(e))
            else:
                result.installed.append(name)
                logger.info("dependency_installed", addon=name)
        return result

    async def get_installation_order_with_auto_install(
        self, name: str, options: dict[str, Any] | None = None
    ) -> InstallPlan:
        resolution = self.resolve_dependencies(name)
        installed = await self.auto_install_dependencies(resolution, options)
        return InstallPlan(order=self.get_installation_order(resolution), auto_installed=installed.installed)

    @staticmethod
    def suggest_solutions(resolution: DependencyResolution) -> list[str]:
        suggestions: list[str] = []

        if resolution.missing:
            suggestions.append(f"Install missing dependencies: pawnctl addon install {' '.join(resolution.missing)}")
            suggestions.append("Or use the --auto-deps flag for automatic installation")

        if resolution.conflicts:
            suggestions.append("Resolve conflicts by:")
            for conflict in resolution.conflicts:
                if conflict.conflict == "circular":
                    suggestions.append(f"  - Remove circular dependency involving {conflict.addon}")
                else:
                    suggestions.append(f"  - Update addon versions to resolve conflict: {conflict.reason}")

        if resolution.version_conflicts:
            suggestions.append("Resolve version conflicts by:")
            for version_conflict in resolution.version_conflicts:
                suggestions.append(f"  - {version_conflict.addon}: {version_conflict.reason}")
                suggestions.append(f"    Available version: {version_conflict.available_version}")
                suggestions.append(f"    Required constraint: {version_conflict.constraint}")
            suggestions.append("  - Update addon versions or adjust version constraints in addon configuration")

        return suggestions

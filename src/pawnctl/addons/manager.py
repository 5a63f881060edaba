# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Addon manager facade used by the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import click

from pawnctl.addons.api import AddonContext, EventBus, HostAPI, HostServices
from pawnctl.addons.base import AddonCommand
from pawnctl.addons.commands import CommandResolver
from pawnctl.addons.dependencies import (
    AutoInstallResult,
    DependencyResolution,
    DependencyResolver,
    DependencyValidation,
)
from pawnctl.addons.discovery import AddonDiscovery
from pawnctl.addons.exceptions import AddonError, AddonLoadError, AddonNotFoundError
from pawnctl.addons.github import GitHubDownloader
from pawnctl.addons.hooks import HookManager
from pawnctl.addons.installer import AddonInstaller, SourceType, UpdateSummary
from pawnctl.addons.loader import AddonLoader
from pawnctl.addons.models import AddonInfo
from pawnctl.addons.recovery import AddonRecovery
from pawnctl.addons.registry import AddonRegistry, utc_timestamp
from pawnctl.logging import get_logger
from pawnctl.manifest import ManifestError, ProjectManifest
from pawnctl.settings import Settings

logger = get_logger(__name__)


@dataclass
class RecoverySummary:
    recovered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class AddonManager:
    """Entry point for every addon operation.

    Construct one per process (or per test) and pass it around. The first
    operation loads the registry, runs discovery and wires hooks and
    commands; later calls reuse that state.

    Args:
        settings: Runtime settings; defaults are read from the environment
        program: click group that addon commands are attached to
        services: Host delegate for package, build and server operations
        downloader: GitHub archive downloader
    """

    def __init__(
        self,
        settings: Settings | None = None,
        program: click.Group | None = None,
        services: HostServices | None = None,
        downloader: GitHubDownloader | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.program = program
        self.services = services or HostServices()

        self.hooks = HookManager(on_error=self._on_hook_error)
        self.commands = CommandResolver()
        self.events = EventBus(self.hooks)
        self.manifest = ProjectManifest(self.settings.manifest_file, self.hooks)

        self.loader = AddonLoader(self.settings, context_factory=self.create_context)
        self.registry = AddonRegistry(self.loader, self.settings.registry_file)
        self.recovery = AddonRecovery(self.registry, self.settings.max_addon_errors)
        self.downloader = downloader or GitHubDownloader(
            self.settings.github_base_url, self.settings.download_timeout_seconds
        )
        self.installer = AddonInstaller(self.loader, self.hooks, self.registry, self.downloader, self.settings)
        self.discovery = AddonDiscovery(self.loader, self.settings)
        self.dependencies = DependencyResolver(self.loader, install=self.install_addon)

        self._initialized = False

    def create_context(self, addon: str) -> AddonContext:
        api = HostAPI(
            addon,
            self.settings,
            self.hooks,
            self.commands,
            self.manifest,
            services=self.services,
            program=self.program,
        )
        try:
            config = api.get_config()
        except ManifestError as e:
            logger.warning("addon_config_unavailable", addon=addon, error=str(e))
            config = {}
        return AddonContext(
            addon=addon,
            logger=get_logger(f"pawnctl.addon.{addon}"),
            config=config,
            events=self.events,
            api=api,
        )

    async def ensure_addons_loaded(self) -> None:
        """Load the registry, discover addons and wire hooks and commands, once."""
        if self._initialized:
            return
        self._initialized = True

        result = await self.registry.load_from_registry()
        for name in result.failed:
            info = self.loader.get_addon_info(name)
            error = info.last_error if info and info.last_error else "Failed to load"
            self.recovery.record_addon_error(name, error)
            await self.registry.update_addon_in_registry(
                name, {"last_error": error, "last_error_time": info.last_error_time if info else utc_timestamp()}
            )
            if self.recovery.should_quarantine(name):
                await self.quarantine_addon(name)

        discovered = await self.discovery.discover_addons()
        self._refresh()
        logger.info(
            "addons_initialized",
            loaded=len(result.loaded),
            failed=len(result.failed),
            discovered=len(discovered),
        )

    def _refresh(self) -> None:
        enabled = self.loader.get_enabled_addons()
        self.hooks.register_addons(enabled)
        self.commands.reset()
        self.commands.register_addons(enabled)
        if self.program is not None:
            self.commands.register_addon_commands_with_program(self.program)

    async def _on_hook_error(self, addon: str | None, event: str, error: Exception) -> None:
        if addon is None:
            return
        self.recovery.record_addon_error(addon, f"{event}: {error}")
        if self.recovery.should_quarantine(addon) and self.loader.is_loaded(addon):
            await self.quarantine_addon(addon)

    async def quarantine_addon(self, name: str) -> None:
        """Unload *name* and mark it disabled, in memory and in the registry."""
        errors = self.recovery.get_addon_errors(name)
        last_error = errors[-1] if errors else "Unknown error"
        if self.loader.is_loaded(name):
            await self.loader.unload_addon(name, keep_info=True)
        if self.loader.has_addon(name):
            self.loader.update_addon_info(name, enabled=False, last_error=last_error, last_error_time=utc_timestamp())
        await self.recovery.attempt_addon_recovery(name)
        self._refresh()

    def _require(self, name: str) -> AddonInfo:
        info = self.loader.get_addon_info(name)
        if info is None:
            raise AddonNotFoundError(f"Addon '{name}' not found")
        return info

    async def install_addon(
        self,
        source: str,
        global_: bool = False,
        source_type: SourceType | None = None,
        path: str | None = None,
        auto_deps: bool = False,
    ) -> AddonInfo:
        await self.ensure_addons_loaded()
        info = await self.installer.install_addon(source, global_=global_, source_type=source_type, path=path)
        self.recovery.clear_addon_errors(info.name)
        self._refresh()

        if auto_deps:
            result = await self.install_dependencies(info.name, global_=global_)
            if result.failed:
                logger.warning("addon_dependencies_incomplete", addon=info.name, failed=result.failed)
        return self._require(info.name)

    async def uninstall_addon(self, name: str) -> None:
        await self.ensure_addons_loaded()
        self._require(name)
        await self.installer.uninstall_addon(name)
        self.recovery.clear_addon_errors(name)
        self._refresh()

    async def list_addons(self, enabled: bool | None = None) -> list[AddonInfo]:
        await self.ensure_addons_loaded()
        infos = self.loader.get_all_addon_info()
        if enabled is None:
            return infos
        return [info for info in infos if info.enabled == enabled]

    async def enable_addon(self, name: str) -> AddonInfo:
        """Load (if needed) and enable an addon, clearing its recorded errors.

        Raises:
            AddonNotFoundError: If *name* is unknown
            AddonLoadError: If the addon has no path or fails to load
        """
        await self.ensure_addons_loaded()
        info = self._require(name)
        cleared = {"enabled": True, "last_error": None, "last_error_time": None}

        if self.loader.is_loaded(name):
            self.loader.update_addon_info(name, **cleared)
        else:
            if not info.path:
                raise AddonLoadError(f"Addon '{name}' has no recorded path")
            addon = await self.loader.load_addon(info.path)
            stored = info.model_dump(include={"path", "source", "github_url", "installed"})
            self.loader.register_addon(addon, {**stored, **cleared})

        if not await self.registry.update_addon_in_registry(name, cleared):
            await self.registry.save_to_registry()
        self.recovery.clear_addon_errors(name)
        self._refresh()
        logger.info("addon_enabled", addon=name)
        return self._require(name)

    async def disable_addon(self, name: str) -> AddonInfo:
        await self.ensure_addons_loaded()
        self._require(name)
        if self.loader.is_loaded(name):
            await self.loader.unload_addon(name, keep_info=True)
        self.loader.update_addon_info(name, enabled=False)

        if not await self.registry.disable_addon_in_registry(name):
            await self.registry.save_to_registry()
        self._refresh()
        logger.info("addon_disabled", addon=name)
        return self._require(name)

    async def search_addons(self, query: str = "", limit: int | None = None) -> list[AddonInfo]:
        """Known addons matching *query*, followed by discoverable ones."""
        await self.ensure_addons_loaded()
        needle = query.strip().lower()
        results = [
            info
            for info in self.loader.get_all_addon_info()
            if not needle or needle in info.name.lower() or needle in info.description.lower()
        ]
        known = {info.name for info in results} | {info.name for info in self.loader.get_all_addon_info()}
        results.extend(info for info in await self.discovery.search(query) if info.name not in known)
        return results[:limit] if limit is not None else results

    async def get_addon_info(self, name: str) -> AddonInfo | None:
        await self.ensure_addons_loaded()
        return self.loader.get_addon_info(name)

    async def update_addon(self, name: str) -> AddonInfo:
        await self.ensure_addons_loaded()
        self._require(name)
        info = await self.installer.update_github_addon(name)
        self._refresh()
        return info

    async def update_all_addons(self) -> UpdateSummary:
        await self.ensure_addons_loaded()
        summary = await self.installer.update_all_github_addons()
        self._refresh()
        return summary

    async def run_addon_command(
        self, name: str, args: list[str] | None = None, options: dict[str, Any] | None = None
    ) -> Any:
        await self.ensure_addons_loaded()
        return await self.commands.execute(name, args, options)

    async def resolve_dependencies(self, name: str) -> DependencyResolution:
        await self.ensure_addons_loaded()
        return self.dependencies.resolve_dependencies(name)

    async def validate_dependencies(self, name: str) -> DependencyValidation:
        await self.ensure_addons_loaded()
        return self.dependencies.validate_dependencies(name)

    async def install_dependencies(self, name: str, global_: bool = False, dry_run: bool = False) -> AutoInstallResult:
        """Install the missing dependencies of *name*.

        With ``dry_run`` nothing is installed; the missing names are
        returned in ``skipped``.
        """
        await self.ensure_addons_loaded()
        self._require(name)
        resolution = self.dependencies.resolve_dependencies(name)
        if dry_run:
            return AutoInstallResult(skipped=list(resolution.missing))
        return await self.dependencies.auto_install_dependencies(resolution, {"global_": global_})

    async def recover_addons(self, names: list[str] | None = None) -> RecoverySummary:
        """Try to re-enable addons that failed or were quarantined.

        Without *names*, every unloaded addon with a recorded error is tried.
        """
        await self.ensure_addons_loaded()
        if names is None:
            names = [
                info.name
                for info in self.loader.get_all_addon_info()
                if info.last_error and not self.loader.is_loaded(info.name)
            ]

        summary = RecoverySummary()
        for name in names:
            try:
                await self.enable_addon(name)
            except AddonError as e:
                summary.failed.append(name)
                summary.errors[name] = str(e)
                logger.warning("addon_recovery_failed", addon=name, error=str(e))
            else:
                summary.recovered.append(name)
        return summary

    def get_addon_errors(self, name: str) -> list[str]:
        return self.recovery.get_addon_errors(name)

    def get_all_addon_errors(self) -> dict[str, list[str]]:
        return self.recovery.get_all_addon_errors()

    async def clear_addon_errors(self, name: str | None = None) -> list[str]:
        """Clear the error ledger and persisted last error; return cleared names."""
        await self.ensure_addons_loaded()
        if name is None:
            names = [info.name for info in self.loader.get_all_addon_info() if info.last_error]
            names.extend(n for n in self.recovery.get_all_addon_errors() if n not in names)
        else:
            names = [name]

        for addon_name in names:
            self.recovery.clear_addon_errors(addon_name)
            if self.loader.has_addon(addon_name):
                self.loader.update_addon_info(addon_name, last_error=None, last_error_time=None)
                await self.registry.update_addon_in_registry(addon_name, {"last_error": None, "last_error_time": None})
        return names

    def get_command_conflicts(self) -> dict[str, list[AddonCommand]]:
        return self.commands.get_command_conflicts()

    def get_command_conflict_info(self, name: str) -> dict[str, Any] | None:
        return self.commands.get_command_conflict_info(name)

    def get_command_stats(self) -> dict[str, int]:
        return self.commands.get_stats()

    def has_command_conflicts(self, name: str | None = None) -> bool:
        return self.commands.has_conflicts(name)

# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Install, update and uninstall addons from local paths or GitHub."""

from __future__ import annotations

import asyncio
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pawnctl.addons.exceptions import (
    AddonError,
    AddonNotFoundError,
    AddonSourceError,
    AddonUpdateError,
)
from pawnctl.addons.github import GitHubDownloader, RepoSpec, parse_repo_spec
from pawnctl.addons.hooks import HookManager
from pawnctl.addons.loader import AddonLoader, deactivate_addon
from pawnctl.addons.models import AddonInfo
from pawnctl.addons.registry import AddonRegistry
from pawnctl.logging import get_logger
from pawnctl.paths import is_local_path
from pawnctl.settings import Settings

logger = get_logger(__name__)

SourceType = Literal["local", "github"]


@dataclass
class UpdateSummary:
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class AddonInstaller:
    def __init__(
        self,
        loader: AddonLoader,
        hooks: HookManager,
        registry: AddonRegistry,
        downloader: GitHubDownloader,
        settings: Settings,
    ) -> None:
        self.loader = loader
        self.hooks = hooks
        self.registry = registry
        self.downloader = downloader
        self.settings = settings

    def addons_dir(self, global_: bool = False) -> Path:
        return self.settings.global_addons_dir if global_ else self.settings.project_addons_dir

    async def install_addon(
        self,
        source: str,
        global_: bool = False,
        source_type: SourceType | None = None,
        path: str | Path | None = None,
    ) -> AddonInfo:
        """Install from a local path or a GitHub repository.

        Raises:
            AddonSourceError: If *source* is neither a path nor a repository
            AddonLoadError: If the addon cannot be loaded
        """
        if source_type == "local" or (source_type is None and is_local_path(source)):
            return await self.install_from_local(source)

        spec = parse_repo_spec(source)
        if spec is not None and source_type in (None, "github"):
            return await self.install_from_github(spec, global_=global_, path=path)

        raise AddonSourceError(
            f"Unsupported addon source: {source}. "
            "Use a local path (./my-addon) or a GitHub repository (owner/repo, owner/repo@ref or a URL)"
        )

    async def install_from_local(self, source: str | Path) -> AddonInfo:
        addon_path = Path(source).expanduser().resolve()
        if not addon_path.exists():
            raise AddonSourceError(f"Local addon path not found: {addon_path}")
        addon = await self.loader.load_addon(addon_path)
        return await self._register(addon, {"path": str(addon_path), "source": "local"})

    async def install_from_github(
        self, spec: RepoSpec, global_: bool = False, path: str | Path | None = None
    ) -> AddonInfo:
        target = Path(path).expanduser() if path else self.addons_dir(global_) / spec.install_name
        existed = target.exists()

        await self.downloader.download_repo(spec.owner, spec.repo, target, spec.ref)
        try:
            addon = await self.loader.load_addon(target)
        except AddonError:
            if not existed:
                shutil.rmtree(target, ignore_errors=True)
            raise

        overrides = {
            "path": str(target),
            "source": "github",
            "github_url": spec.url(self.settings.github_base_url),
        }
        return await self._register(addon, overrides)

    async def _register(self, addon: Any, overrides: dict[str, Any]) -> AddonInfo:
        previous = self.loader.get_addon(addon.name)
        if previous is not None and previous is not addon:
            await deactivate_addon(previous)

        info = self.loader.register_addon(addon, overrides)
        self.hooks.register_addons(self.loader.get_enabled_addons())
        await self.registry.save_to_registry()
        logger.info("addon_installed", addon=info.name, version=info.version, source=info.source, path=info.path)
        return info

    def managed_directory(self, info: AddonInfo) -> Path | None:
        """Directory the runtime owns for *info*; local sources are never owned.

        Only the recorded path is ever returned. Outside GitHub installs it
        must sit inside the project or global addons directory.
        """
        if info.source == "local" or not info.path:
            return None
        recorded = Path(info.path)
        if info.source == "github":
            return recorded

        roots = [self.settings.project_addons_dir, self.settings.global_addons_dir]
        if any(recorded.is_relative_to(root) and recorded != root for root in roots):
            return recorded
        return None

    async def uninstall_addon(self, name: str) -> None:
        """Unload, delete the managed directory, then drop the registry entry."""
        info = self.loader.get_addon_info(name)
        if info is None:
            raise AddonNotFoundError(f"Addon '{name}' not found")

        await self.loader.unload_addon(name)
        self.hooks.register_addons(self.loader.get_enabled_addons())

        directory = self.managed_directory(info)
        if directory is not None and directory.exists():
            await asyncio.to_thread(shutil.rmtree, directory)
            logger.debug("addon_directory_removed", addon=name, path=str(directory))

        await self.registry.remove_addon_from_registry(name)
        logger.info("addon_uninstalled", addon=name)

    async def update_github_addon(self, name: str) -> AddonInfo:
        """Replace a GitHub install with the latest archive.

        The current directory is moved to a timestamped backup first. Any
        failure while downloading or loading restores the backup and leaves
        the loaded addon untouched.

        Raises:
            AddonNotFoundError: If *name* is unknown
            AddonUpdateError: If the addon is not a GitHub install or the
                update failed (after rollback)
        """
        info = self.loader.get_addon_info(name)
        if info is None:
            raise AddonNotFoundError(f"Addon '{name}' not found")
        spec = parse_repo_spec(info.github_url or "") if info.source == "github" else None
        if spec is None or not info.path:
            raise AddonUpdateError(f"Addon '{name}' was not installed from GitHub")

        install_path = Path(info.path)
        backup_path = install_path.with_name(f"{install_path.name}.backup.{int(time.time() * 1000)}")
        if install_path.exists():
            install_path.rename(backup_path)

        try:
            await self.downloader.download_from_spec(spec.slug, install_path)
            new_addon = await self.loader.load_addon(install_path)
        except Exception as e:
            logger.error("addon_update_failed", addon=name, error=str(e))
            if install_path.exists():
                shutil.rmtree(install_path, ignore_errors=True)
            if backup_path.exists():
                backup_path.rename(install_path)
            raise AddonUpdateError(f"Failed to update addon '{name}': {e}") from e

        if new_addon.name != name:
            await self.loader.unload_addon(name)
        else:
            old_addon = self.loader.get_addon(name)
            if old_addon is not None:
                await deactivate_addon(old_addon)

        updated = self.loader.register_addon(
            new_addon,
            {"path": info.path, "source": "github", "github_url": info.github_url, "enabled": info.enabled},
        )
        self.hooks.register_addons(self.loader.get_enabled_addons())
        await self.registry.save_to_registry()
        shutil.rmtree(backup_path, ignore_errors=True)

        logger.info("addon_updated", addon=updated.name, old_version=info.version, new_version=updated.version)
        return updated

    async def update_all_github_addons(self) -> UpdateSummary:
        summary = UpdateSummary()
        for info in self.loader.get_all_addon_info():
            if info.source != "github":
                continue
            try:
                await self.update_github_addon(info.name)
            except AddonError as e:
                summary.failed.append(info.name)
                summary.errors[info.name] = str(e)
            else:
                summary.updated.append(info.name)
        logger.info("addons_update_complete", updated=len(summary.updated), failed=len(summary.failed))
        return summary

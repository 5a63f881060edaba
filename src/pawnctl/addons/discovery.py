# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Discovery of addon packages in well-known directories."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pawnctl.addons.exceptions import AddonError
from pawnctl.addons.loader import AddonLoader, deactivate_addon, read_package_metadata
from pawnctl.addons.models import AddonInfo
from pawnctl.logging import get_logger
from pawnctl.settings import Settings

logger = get_logger(__name__)


class AddonDiscovery:
    """Finds directories whose ``pyproject.toml`` has a ``[tool.pawnctl]`` table."""

    def __init__(self, loader: AddonLoader, settings: Settings) -> None:
        self.loader = loader
        self.settings = settings

    def search_paths(self) -> list[Path]:
        paths: list[Path] = []
        for path in (self.settings.project_addons_dir, self.settings.global_addons_dir, *self.settings.discovery_paths):
            path = Path(path).expanduser()
            if path not in paths:
                paths.append(path)
        return paths

    def iter_candidates(self) -> Iterator[tuple[Path, dict[str, Any]]]:
        for base in self.search_paths():
            if not base.is_dir():
                continue
            for child in sorted(base.iterdir()):
                if not child.is_dir():
                    continue
                metadata = read_package_metadata(child)
                if metadata is not None:
                    yield child, metadata

    async def discover_addons(self) -> list[str]:
        """Load and register every discovered addon not already known."""
        discovered: list[str] = []
        known_paths = {Path(info.path) for info in self.loader.get_all_addon_info() if info.path}
        for directory, metadata in self.iter_candidates():
            if self.loader.has_addon(metadata["name"]) or directory in known_paths:
                continue
            try:
                addon = await self.loader.load_addon(directory)
            except AddonError as e:
                logger.warning("addon_discovery_failed", path=str(directory), error=str(e))
                continue
            if self.loader.has_addon(addon.name):
                logger.debug("addon_discovery_duplicate", addon=addon.name, path=str(directory))
                await deactivate_addon(addon)
                continue
            self.loader.register_addon(addon, {"path": str(directory), "source": "discovered"})
            discovered.append(addon.name)

        if discovered:
            logger.info("addons_discovered", addons=discovered)
        return discovered

    async def search(self, query: str = "") -> list[AddonInfo]:
        """Candidate addons matching *query*, read from metadata only."""
        needle = query.strip().lower()
        results: list[AddonInfo] = []
        seen: set[str] = set()
        for directory, metadata in self.iter_candidates():
            name = metadata["name"]
            if name in seen:
                continue
            haystack = (name, metadata["description"], directory.name)
            if needle and not any(needle in value.lower() for value in haystack):
                continue
            seen.add(name)
            results.append(
                AddonInfo(
                    name=name,
                    version=metadata["version"],
                    description=metadata["description"],
                    author=metadata["author"],
                    license=metadata["license"],
                    installed=False,
                    enabled=False,
                    path=str(directory),
                    source="discovered",
                )
            )
        return results

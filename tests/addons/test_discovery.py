# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for addon discovery."""

from __future__ import annotations

import pytest

from pawnctl.addons.discovery import AddonDiscovery
from pawnctl.addons.models import AddonInfo
from pawnctl.settings import Settings


@pytest.fixture
def discovery(loader, settings):
    return AddonDiscovery(loader, settings)


@pytest.mark.asyncio
async def test_discovers_project_addons(discovery, loader, settings, write_addon):
    """Test packages with a pawnctl table in the project dir are loaded."""
    directory = write_addon("found", pyproject=True, parent=settings.project_addons_dir)
    write_addon("no-metadata", parent=settings.project_addons_dir)

    assert await discovery.discover_addons() == ["found"]

    info = loader.get_addon_info("found")
    assert info.source == "discovered"
    assert info.path == str(directory)
    assert not loader.has_addon("no-metadata")


@pytest.mark.asyncio
async def test_extra_discovery_paths(loader, tmp_path, addons_root, write_addon):
    """Test configured discovery paths are searched after the defaults."""
    settings = Settings(home=tmp_path / "home", project_root=tmp_path, discovery_paths=[addons_root])
    write_addon("extra", pyproject=True)

    discovery = AddonDiscovery(loader, settings)

    assert discovery.search_paths() == [settings.project_addons_dir, settings.global_addons_dir, addons_root]
    assert await discovery.discover_addons() == ["extra"]


@pytest.mark.asyncio
async def test_known_addons_are_skipped(discovery, loader, settings, write_addon, read_events):
    """Test an addon already in the table is not loaded again."""
    directory = write_addon("known", pyproject=True, parent=settings.global_addons_dir)
    loader.register_info(AddonInfo(name="known", enabled=False))

    assert await discovery.discover_addons() == []
    assert read_events(directory) == []


@pytest.mark.asyncio
async def test_broken_candidate_is_skipped(discovery, loader, settings, write_addon):
    """Test a candidate that fails to load does not stop discovery."""
    write_addon("aaa-broken", pyproject=True, parent=settings.project_addons_dir, source="def oops(:\n")
    write_addon("zzz-fine", pyproject=True, parent=settings.project_addons_dir)

    assert await discovery.discover_addons() == ["zzz-fine"]
    assert not loader.has_addon("aaa-broken")


@pytest.mark.asyncio
async def test_search_reads_metadata_only(discovery, settings, write_addon, read_events):
    """Test search matches name or description without running code."""
    directory = write_addon(
        "mapper", "0.3.0", description="Map rotation tools", pyproject=True, parent=settings.project_addons_dir
    )
    write_addon("other", pyproject=True, parent=settings.project_addons_dir)

    results = await discovery.search("ROTATION")

    assert [info.name for info in results] == ["mapper"]
    assert results[0].version == "0.3.0"
    assert results[0].installed is False
    assert results[0].enabled is False
    assert read_events(directory) == []
    assert {info.name for info in await discovery.search()} == {"mapper", "other"}

# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for the persisted addon registry and the error ledger."""

from __future__ import annotations

import json

import pytest

from pawnctl.addons.loader import AddonLoader
from pawnctl.addons.models import AddonInfo
from pawnctl.addons.recovery import MAX_HISTORY, AddonRecovery
from pawnctl.addons.registry import AddonRegistry


@pytest.fixture
def registry(loader, settings):
    return AddonRegistry(loader, settings.registry_file)


def write_registry(registry, entries):
    registry.path.parent.mkdir(parents=True, exist_ok=True)
    registry.path.write_text(json.dumps({"addons": entries}))


def read_registry(registry):
    return json.loads(registry.path.read_text())["addons"]


@pytest.mark.asyncio
async def test_save_and_reload(settings, loader, registry, write_addon):
    """Test saved records reload into a fresh loader."""
    directory = write_addon("persisted", "1.3.0", constraints={"core": "^1.0.0"})
    loader.register_addon(await loader.load_addon(directory), {"path": str(directory), "source": "local"})

    await registry.save_to_registry()

    entries = read_registry(registry)
    assert entries[0]["name"] == "persisted"
    assert entries[0]["source"] == "local"
    assert entries[0]["dependencyConstraints"] == {"core": "^1.0.0"}
    assert "lastError" not in entries[0]
    assert not registry.path.with_name("addons.json.tmp").exists()

    fresh_loader = AddonLoader(settings)
    result = await AddonRegistry(fresh_loader, settings.registry_file).load_from_registry()

    assert result.loaded == ["persisted"]
    assert result.failed == []
    info = fresh_loader.get_addon_info("persisted")
    assert info.path == str(directory)
    assert info.source == "local"
    assert fresh_loader.is_loaded("persisted")


@pytest.mark.asyncio
async def test_missing_path_is_recorded_as_failure(loader, registry, tmp_path):
    """Test an entry whose directory vanished keeps its record with an error."""
    write_registry(registry, [{"name": "gone", "version": "1.0.0", "path": str(tmp_path / "gone"), "enabled": True}])

    result = await registry.load_from_registry()

    assert result.failed == ["gone"]
    info = loader.get_addon_info("gone")
    assert not loader.is_loaded("gone")
    assert "not found" in info.last_error
    assert info.last_error_time


@pytest.mark.asyncio
async def test_broken_addon_is_recorded_as_failure(loader, registry, write_addon):
    """Test an entry that fails to load is kept with the load error."""
    directory = write_addon("broken", source="def oops(:\n")
    write_registry(registry, [{"name": "broken", "path": str(directory), "enabled": True}])

    result = await registry.load_from_registry()

    assert result.failed == ["broken"]
    assert "Failed to load addon" in loader.get_addon_info("broken").last_error


@pytest.mark.asyncio
async def test_disabled_entries_are_not_loaded(loader, registry, write_addon, read_events):
    """Test disabled entries are listed without running their code."""
    directory = write_addon("sleepy")
    write_registry(registry, [{"name": "sleepy", "path": str(directory), "enabled": False}])

    result = await registry.load_from_registry()

    assert result.loaded == []
    assert loader.has_addon("sleepy")
    assert not loader.is_loaded("sleepy")
    assert read_events(directory) == []


@pytest.mark.asyncio
async def test_corrupt_registry_is_treated_as_empty(registry):
    """Test unreadable JSON does not crash startup."""
    registry.path.parent.mkdir(parents=True, exist_ok=True)
    registry.path.write_text("{not json")

    result = await registry.load_from_registry()

    assert result.loaded == []
    assert await registry.get_raw_data() == {"addons": []}


@pytest.mark.asyncio
async def test_disable_in_registry_records_error(registry):
    """Test disabling patches only the named entry."""
    write_registry(registry, [{"name": "a", "enabled": True}, {"name": "b", "enabled": True}])

    assert await registry.disable_addon_in_registry("a", "hook crashed") is True
    assert await registry.disable_addon_in_registry("missing") is False

    a, b = read_registry(registry)
    assert a["enabled"] is False
    assert a["lastError"] == "hook crashed"
    assert a["lastErrorTime"]
    assert b == {"name": "b", "enabled": True}


@pytest.mark.asyncio
async def test_update_in_registry_converts_keys_and_clears(registry):
    """Test snake_case updates land as camelCase and None removes a key."""
    write_registry(registry, [{"name": "a", "enabled": False, "lastError": "x", "lastErrorTime": "t"}])

    await registry.update_addon_in_registry("a", {"enabled": True, "last_error": None, "last_error_time": None})

    assert read_registry(registry) == [{"name": "a", "enabled": True}]


@pytest.mark.asyncio
async def test_remove_from_registry(registry):
    """Test removing an entry leaves the others in place."""
    write_registry(registry, [{"name": "a"}, {"name": "b"}])

    assert await registry.remove_addon_from_registry("a") is True
    assert await registry.remove_addon_from_registry("a") is False
    assert read_registry(registry) == [{"name": "b"}]


@pytest.mark.asyncio
async def test_save_includes_unloaded_records(loader, registry):
    """Test a full save writes known but unloaded addons too."""
    loader.register_info(AddonInfo(name="idle", version="0.1.0", enabled=False, source="local", path="/tmp/idle"))

    await registry.save_to_registry()

    entries = read_registry(registry)
    assert entries[0]["name"] == "idle"
    assert entries[0]["enabled"] is False
    assert entries[0]["path"] == "/tmp/idle"


def test_error_ledger_counts_and_caps(registry):
    """Test errors accumulate per addon and history is capped."""
    recovery = AddonRecovery(registry, max_errors=3)

    assert recovery.record_addon_error("x", "first") == 1
    assert recovery.record_addon_error("x", RuntimeError("second")) == 2
    assert not recovery.should_quarantine("x")
    recovery.record_addon_error("x", "third")
    assert recovery.should_quarantine("x")
    assert recovery.get_addon_errors("x") == ["first", "second", "third"]

    for i in range(MAX_HISTORY + 5):
        recovery.record_addon_error("y", f"e{i}")
    assert len(recovery.get_addon_errors("y")) == MAX_HISTORY
    assert recovery.get_addon_errors("y")[-1] == f"e{MAX_HISTORY + 4}"

    recovery.clear_addon_errors("x")
    assert recovery.get_addon_errors("x") == []
    assert list(recovery.get_all_addon_errors()) == ["y"]


@pytest.mark.asyncio
async def test_attempt_recovery_disables_with_last_error(registry):
    """Test quarantine persists the most recent error."""
    write_registry(registry, [{"name": "x", "enabled": True}])
    recovery = AddonRecovery(registry)
    recovery.record_addon_error("x", "boom 1")
    recovery.record_addon_error("x", "boom 2")

    assert await recovery.attempt_addon_recovery("x") is True

    entry = read_registry(registry)[0]
    assert entry["enabled"] is False
    assert entry["lastError"] == "boom 2"

"""Tests for lifecycle hook dispatch."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from pawnctl.addons.base import AddonHooks
from pawnctl.addons.hooks import HookManager, hook_error_hint


def make_addon(name, hooks):
    return SimpleNamespace(name=name, hooks=hooks)


@pytest.mark.asyncio
async def test_handlers_run_in_registration_order():
    """Test sync and async handlers run sequentially with the context."""
    calls = []

    def first(context):
        calls.append(("first", context["file"]))

    async def second(context):
        calls.append(("second", context["file"]))

    hooks = HookManager()
    hooks.register_addons([make_addon("a", {"preBuild": first}), make_addon("b", {"pre_build": second})])

    failed = await hooks.pre_build({"file": "main.pwn"})

    assert failed == 0
    assert calls == [("first", "main.pwn"), ("second", "main.pwn")]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_siblings():
    """Test one failure is counted and reported while others still run."""
    calls = []
    reported = []

    def explode(context):
        raise RuntimeError("boom")

    hooks = HookManager(on_error=lambda addon, event, error: reported.append((addon, event, str(error))))
    hooks.register_addons(
        [
            make_addon("bad", {"postInstall": explode}),
            make_addon("good", {"postInstall": lambda context: calls.append(context)}),
        ]
    )

    failed = await hooks.post_install("pkg")

    assert failed == 1
    assert calls == ["pkg"]
    assert reported == [("bad", "post_install", "boom")]


@pytest.mark.asyncio
async def test_error_callback_failure_is_contained():
    """Test a crashing error callback never reaches the caller."""

    def bad_callback(addon, event, error):
        raise ValueError("callback broke")

    def explode(context):
        raise RuntimeError("boom")

    hooks = HookManager(on_error=bad_callback)
    hooks.register_hook("pre_start", explode, addon="x")

    assert await hooks.pre_start({"port": 7777}) == 1


@pytest.mark.asyncio
async def test_async_error_callback_is_awaited():
    """Test coroutine error callbacks are awaited."""
    reported = []

    async def on_error(addon, event, error):
        reported.append(event)

    hooks = HookManager(on_error=on_error)
    hooks.register_hook("postStop", lambda context: 1 / 0, addon="x")

    await hooks.post_stop()
    assert reported == ["post_stop"]


@pytest.mark.asyncio
async def test_dataclass_hooks_and_stats():
    """Test AddonHooks declarations register only present handlers."""
    hooks = HookManager()
    hooks.register_addons(
        [make_addon("typed", AddonHooks(pre_init=lambda c: None, post_manifest_save=lambda c: None))]
    )

    stats = hooks.get_hook_stats()
    assert stats["pre_init"] == 1
    assert stats["post_manifest_save"] == 1
    assert stats["pre_build"] == 0
    assert hooks.get_addon_hooks("typed") == ["pre_init", "post_manifest_save"]
    assert hooks.has_hooks("preInit")


@pytest.mark.asyncio
async def test_register_addons_replaces_previous_handlers():
    """Test rebuilding from a new addon list drops old handlers."""
    calls = []
    hooks = HookManager()
    hooks.register_addons([make_addon("old", {"preBuild": lambda c: calls.append("old")})])
    hooks.register_addons([make_addon("new", {"preBuild": lambda c: calls.append("new")})])

    await hooks.pre_build({})

    assert calls == ["new"]
    assert hooks.get_addon_hooks("old") == []


@pytest.mark.asyncio
async def test_on_event_context():
    """Test generic events carry the event name and payload."""
    seen = []
    hooks = HookManager()
    hooks.register_hook("onEvent", seen.append, addon="listener")

    await hooks.on_event("server.crashed", {"code": 1})

    assert seen == [{"event": "server.crashed", "data": {"code": 1}}]


@pytest.mark.asyncio
async def test_event_without_handlers():
    """Test dispatching an empty slot is a no-op."""
    assert await HookManager().post_uninstall("pkg") == 0


def test_hook_error_hint():
    """Test hints follow the error family."""
    assert "context" in hook_error_hint(KeyError("output"))
    assert "Permission" in hook_error_hint(PermissionError("EACCES"))
    assert "missing" in hook_error_hint(FileNotFoundError("ENOENT"))
    assert "disable the addon" in hook_error_hint(RuntimeError("other"))

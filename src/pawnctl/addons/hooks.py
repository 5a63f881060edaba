# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Lifecycle hook registration and dispatch."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from pawnctl.addons.base import HOOK_NAMES, HookHandler, hook_slot_name, hooks_to_mapping, maybe_await
from pawnctl.logging import get_logger

logger = get_logger(__name__)

ErrorCallback = Callable[[str | None, str, Exception], Any]


def hook_error_hint(error: Exception) -> str:
    """Recovery guidance for a failed hook handler."""
    message = str(error)
    if isinstance(error, (AttributeError, KeyError)) or "NoneType" in message:
        return "The hook read a field the context does not provide; check the hook against the context it receives"
    if isinstance(error, PermissionError) or "EACCES" in message or "EPERM" in message:
        return "Permission denied; check file permissions for the files the hook touches"
    if isinstance(error, FileNotFoundError) or "ENOENT" in message:
        return "A file the hook expects is missing; check paths used by the addon"
    return "Check the addon's hook implementation or disable the addon"


class HookManager:
    """Ordered handler lists per lifecycle event.

    Handlers run sequentially in registration order. A failing handler is
    logged and counted but never stops its siblings or the caller.
    """

    def __init__(self, on_error: ErrorCallback | None = None) -> None:
        self.on_error = on_error
        self._hooks: dict[str, list[tuple[str | None, HookHandler]]] = {name: [] for name in HOOK_NAMES}

    def register_addons(self, addons: Iterable[Any]) -> None:
        """Rebuild every slot from *addons*, in order."""
        for handlers in self._hooks.values():
            handlers.clear()
        count = 0
        for addon in addons:
            for event, handler in hooks_to_mapping(getattr(addon, "hooks", None)).items():
                self.register_hook(event, handler, addon=getattr(addon, "name", None))
                count += 1
        logger.debug("hooks_registered", handlers=count)

    def register_hook(self, event: str, handler: HookHandler, addon: str | None = None) -> None:
        self._hooks.setdefault(hook_slot_name(event), []).append((addon, handler))

    def has_hooks(self, event: str) -> bool:
        return bool(self._hooks.get(hook_slot_name(event)))

    async def execute_hook(self, event: str, context: Any = None) -> int:
        """Run every handler for *event*; return how many failed."""
        slot = hook_slot_name(event)
        handlers = list(self._hooks.get(slot, []))
        failed = 0
        for addon, handler in handlers:
            try:
                await maybe_await(handler(context))
            except Exception as e:
                failed += 1
                logger.error("hook_failed", hook=slot, addon=addon, error=str(e), hint=hook_error_hint(e))
                await self._report(addon, slot, e)

        if failed:
            logger.warning("hook_failures", hook=slot, failed=failed, total=len(handlers))
        return failed

    async def _report(self, addon: str | None, event: str, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            await maybe_await(self.on_error(addon, event, error))
        except Exception as e:
            logger.error("hook_error_callback_failed", hook=event, addon=addon, error=str(e))

    async def pre_build(self, context: Any) -> int:
        return await self.execute_hook("pre_build", context)

    async def post_build(self, context: Any) -> int:
        return await self.execute_hook("post_build", context)

    async def pre_install(self, context: Any) -> int:
        return await self.execute_hook("pre_install", context)

    async def post_install(self, context: Any) -> int:
        return await self.execute_hook("post_install", context)

    async def pre_uninstall(self, context: Any) -> int:
        return await self.execute_hook("pre_uninstall", context)

    async def post_uninstall(self, context: Any) -> int:
        return await self.execute_hook("post_uninstall", context)

    async def pre_start(self, context: Any) -> int:
        return await self.execute_hook("pre_start", context)

    async def post_start(self, context: Any) -> int:
        return await self.execute_hook("post_start", context)

    async def pre_stop(self, context: Any = None) -> int:
        return await self.execute_hook("pre_stop", context)

    async def post_stop(self, context: Any = None) -> int:
        return await self.execute_hook("post_stop", context)

    async def pre_init(self, context: Any) -> int:
        return await self.execute_hook("pre_init", context)

    async def post_init(self, context: Any) -> int:
        return await self.execute_hook("post_init", context)

    async def pre_manifest_save(self, context: Any) -> int:
        return await self.execute_hook("pre_manifest_save", context)

    async def post_manifest_save(self, context: Any) -> int:
        return await self.execute_hook("post_manifest_save", context)

    async def on_event(self, event: str, data: Any = None) -> int:
        return await self.execute_hook("on_event", {"event": event, "data": data})

    def get_hook_stats(self) -> dict[str, int]:
        return {event: len(handlers) for event, handlers in self._hooks.items()}

    def get_addon_hooks(self, name: str) -> list[str]:
        """Events for which addon *name* has a registered handler."""
        return [event for event, handlers in self._hooks.items() if any(addon == name for addon, _ in handlers)]

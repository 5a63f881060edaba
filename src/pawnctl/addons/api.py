# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Host API handed to addons through ``activate(context)``."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from pawnctl.addons.base import AddonCommand, BuildContext, PackageInfo, ServerConfig, maybe_await
from pawnctl.addons.commands import CommandResolver
from pawnctl.addons.exceptions import CommandNotFoundError
from pawnctl.addons.hooks import HookManager
from pawnctl.logging import get_logger
from pawnctl.manifest import ProjectManifest
from pawnctl.settings import Settings

logger = get_logger(__name__)

EventHandler = Callable[[Any], Any]


class EventBus:
    """In-process publish/subscribe shared by all addons.

    ``emit`` also dispatches the ``on_event`` hook when a hook manager is
    attached.
    """

    def __init__(self, hooks: HookManager | None = None) -> None:
        self.hooks = hooks
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> bool:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    async def emit(self, event: str, data: Any = None) -> int:
        """Deliver *event*; return the number of subscribers that failed."""
        failed = 0
        for handler in list(self._handlers.get(event, [])):
            try:
                await maybe_await(handler(data))
            except Exception as e:
                failed += 1
                logger.error("event_handler_failed", event=event, error=str(e))
        if self.hooks is not None:
            failed += await self.hooks.on_event(event, data)
        return failed


class HostServices:
    """Project operations the addon runtime delegates to the host.

    This default only logs; the CLI layer that owns compiling, packages and
    the server supplies a subclass.
    """

    async def install_package(self, package: PackageInfo) -> None:
        logger.info("host_install_package", package=package.name, version=package.version)

    async def uninstall_package(self, package: PackageInfo) -> None:
        logger.info("host_uninstall_package", package=package.name)

    async def build(self, context: BuildContext) -> BuildContext:
        logger.info("host_build", input=context.input, output=context.output)
        return context

    async def start_server(self, config: ServerConfig) -> None:
        logger.info("host_start_server", port=config.port, gamemode=config.gamemode)

    async def stop_server(self) -> None:
        logger.info("host_stop_server")


class HostAPI:
    """Operations available to one addon."""

    def __init__(
        self,
        addon: str,
        settings: Settings,
        hooks: HookManager,
        commands: CommandResolver,
        manifest: ProjectManifest,
        services: HostServices | None = None,
        program: click.Group | None = None,
    ) -> None:
        self.addon = addon
        self.settings = settings
        self.hooks = hooks
        self.commands = commands
        self.services = services or HostServices()
        self.program = program
        self._manifest = manifest

    @property
    def manifest(self) -> ProjectManifest:
        return self._manifest

    def get_project_root(self) -> Path:
        return self.settings.project_root

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.settings.project_root / candidate

    async def read_file(self, path: str | Path) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    async def write_file(self, path: str | Path, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    async def exists(self, path: str | Path) -> bool:
        return self._resolve(path).exists()

    async def install_package(self, package: str | PackageInfo) -> None:
        info = package if isinstance(package, PackageInfo) else PackageInfo(name=package)
        await self.hooks.pre_install(info)
        await self.services.install_package(info)
        await self.hooks.post_install(info)

    async def uninstall_package(self, package: str | PackageInfo) -> None:
        info = package if isinstance(package, PackageInfo) else PackageInfo(name=package)
        await self.hooks.pre_uninstall(info)
        await self.services.uninstall_package(info)
        await self.hooks.post_uninstall(info)

    async def build(self, input: str, options: dict[str, Any] | None = None) -> BuildContext:
        context = BuildContext(input=input, options=options or {})
        await self.hooks.pre_build(context)
        context = await self.services.build(context)
        await self.hooks.post_build(context)
        return context

    async def start_server(self, config: dict[str, Any] | None = None) -> None:
        server_config = ServerConfig(**(config or {}))
        await self.hooks.pre_start(server_config)
        await self.services.start_server(server_config)
        await self.hooks.post_start(server_config)

    async def stop_server(self) -> None:
        await self.hooks.pre_stop()
        await self.services.stop_server()
        await self.hooks.post_stop()

    def register_command(self, command: AddonCommand | dict[str, Any]) -> bool:
        """Register a command at runtime; attaches it to the CLI when one is present."""
        active = self.commands.register_command(AddonCommand.from_declaration(command, addon=self.addon))
        if active and self.program is not None:
            self.commands.register_addon_commands_with_program(self.program)
        return active

    async def call_original_command(
        self, name: str, args: list[str] | None = None, options: dict[str, Any] | None = None
    ) -> Any:
        original = self.commands.get_original_command(name)
        if original is None:
            raise CommandNotFoundError(f"No original handler captured for command '{name}'")
        return await maybe_await(original(list(args or []), dict(options or {})))

    def get_config(self) -> dict[str, Any]:
        """This addon's section of the project manifest (``addons.<name>``)."""
        return dict(self.manifest.get(f"addons.{self.addon}", {}) or {})

    async def set_config(self, config: dict[str, Any]) -> None:
        await self.manifest.update(f"addons.{self.addon}", dict(config))


@dataclass
class AddonContext:
    """Bundle passed to ``activate``."""

    addon: str
    logger: Any
    config: dict[str, Any]
    events: EventBus
    api: HostAPI

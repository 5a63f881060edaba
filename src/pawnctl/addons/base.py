# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Addon interfaces: the addon protocol, hook slots and command declarations."""

from __future__ import annotations

import inspect
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


HookHandler = Callable[[Any], Awaitable[None] | None]
CommandHandler = Callable[[list[str], dict[str, Any]], Awaitable[None] | None]

HOOK_NAMES: tuple[str, ...] = (
    "pre_build",
    "post_build",
    "pre_install",
    "post_install",
    "pre_uninstall",
    "post_uninstall",
    "pre_start",
    "post_start",
    "pre_stop",
    "post_stop",
    "pre_init",
    "post_init",
    "pre_manifest_save",
    "post_manifest_save",
    "on_event",
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def hook_slot_name(name: str) -> str:
    """Normalise ``preBuild`` style hook names to ``pre_build``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


@dataclass
class AddonHooks:
    """Optional handler per lifecycle event."""

    pre_build: HookHandler | None = None
    post_build: HookHandler | None = None
    pre_install: HookHandler | None = None
    post_install: HookHandler | None = None
    pre_uninstall: HookHandler | None = None
    post_uninstall: HookHandler | None = None
    pre_start: HookHandler | None = None
    post_start: HookHandler | None = None
    pre_stop: HookHandler | None = None
    post_stop: HookHandler | None = None
    pre_init: HookHandler | None = None
    post_init: HookHandler | None = None
    pre_manifest_save: HookHandler | None = None
    post_manifest_save: HookHandler | None = None
    on_event: HookHandler | None = None

    def present(self) -> dict[str, HookHandler]:
        """Handlers that are actually wired up, in slot order."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def hooks_to_mapping(hooks: AddonHooks | Mapping[str, Any] | None) -> dict[str, Any]:
    """Present hook entries keyed by slot name.

    Values are returned as declared; callers validate callability.
    """
    if hooks is None:
        return {}
    if isinstance(hooks, AddonHooks):
        return hooks.present()
    return {hook_slot_name(name): handler for name, handler in hooks.items() if handler is not None}


@dataclass
class CommandOption:
    name: str
    description: str = ""
    required: bool = False
    default: Any = None
    is_flag: bool = False


@dataclass
class AddonCommand:
    """Command contributed by an addon."""

    name: str
    handler: CommandHandler
    description: str = ""
    options: list[CommandOption] = field(default_factory=list)
    override: bool = False
    priority: int = 0
    addon: str | None = None

    @classmethod
    def from_declaration(cls, declaration: AddonCommand | Mapping[str, Any], addon: str | None = None) -> AddonCommand:
        if isinstance(declaration, AddonCommand):
            if addon and declaration.addon is None:
                declaration.addon = addon
            return declaration
        data = dict(declaration)
        options = [
            option if isinstance(option, CommandOption) else CommandOption(**option)
            for option in data.pop("options", None) or []
        ]
        return cls(
            name=data["name"],
            handler=data["handler"],
            description=data.get("description", ""),
            options=options,
            override=bool(data.get("override", False)),
            priority=int(data.get("priority") or 0),
            addon=data.get("addon", addon),
        )


class Addon(Protocol):
    """What a loaded addon exposes.

    Optional members, read with ``getattr(addon, ..., default)``:
    ``commands``, ``dependencies``, ``dependency_constraints``,
    ``activate(context: AddonContext)`` and ``deactivate()``.
    """

    name: str
    version: str
    description: str
    author: str
    license: str
    hooks: AddonHooks | Mapping[str, HookHandler]


def addon_dependencies(addon: Any) -> list[str]:
    return list(getattr(addon, "dependencies", None) or [])


def addon_dependency_constraints(addon: Any) -> dict[str, str]:
    return dict(getattr(addon, "dependency_constraints", None) or {})


def addon_commands(addon: Any) -> list[AddonCommand]:
    name = getattr(addon, "name", None)
    return [AddonCommand.from_declaration(command, addon=name) for command in getattr(addon, "commands", None) or []]


class BuildContext(BaseModel):
    input: str
    output: str = ""
    options: dict[str, Any] = Field(default_factory=dict)
    success: bool = False
    errors: list[str] = Field(default_factory=list)


class PackageInfo(BaseModel):
    name: str
    version: str = ""
    source: str = ""
    dependencies: list[str] = Field(default_factory=list)


class ServerConfig(BaseModel):
    port: int = 7777
    max_players: int = 50
    hostname: str = ""
    gamemode: str = ""

    model_config = ConfigDict(extra="allow")


async def maybe_await(value: Any) -> Any:
    """Await *value* when an addon callable returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value

# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Merging addon commands into the host command surface.

Each command name resolves to one :class:`ResolvedCommand`. An addon command
that overrides a host command keeps the host callback as its fallback: if the
addon handler raises, the original runs with the same options, and only a
failure of both is reported. Net-new commands have no fallback.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass
from typing import Any

import click

from pawnctl.addons.base import AddonCommand, CommandOption, addon_commands, maybe_await
from pawnctl.addons.exceptions import CommandExecutionError, CommandNotFoundError
from pawnctl.logging import get_logger

logger = get_logger(__name__)

OVERRIDE_SUFFIX = "(overridden by addon)"

Fallback = Callable[[list[str], dict[str, Any]], Any]
CoroutineRunner = Callable[[Coroutine[Any, Any, Any]], Any]


async def _await(awaitable: Any) -> Any:
    return await awaitable


def _call_sync(
    func: Callable[..., Any], args: list[str], options: dict[str, Any], run: CoroutineRunner = asyncio.run
) -> Any:
    result = func(args, options)
    if inspect.isawaitable(result):
        return run(_await(result))
    return result


@dataclass
class ResolvedCommand:
    """An active command: the winning addon handler plus an optional fallback."""

    name: str
    primary: AddonCommand
    fallback: Fallback | None = None
    override: bool = False

    @property
    def addon(self) -> str | None:
        return self.primary.addon

    def _failure(self, error: Exception, fallback_error: Exception | None = None) -> CommandExecutionError:
        if fallback_error is None:
            return CommandExecutionError(f"Command '{self.name}' from addon '{self.addon}' failed: {error}")
        return CommandExecutionError(
            f"Command '{self.name}' failed in addon '{self.addon}' ({error}) "
            f"and in the original handler ({fallback_error})"
        )

    async def invoke(self, args: list[str] | None = None, options: dict[str, Any] | None = None) -> Any:
        args = list(args or [])
        options = dict(options or {})
        try:
            return await maybe_await(self.primary.handler(args, options))
        except Exception as e:
            if self.fallback is None:
                raise self._failure(e) from e
            logger.warning("command_falling_back", command=self.name, addon=self.addon, error=str(e))
            try:
                return await maybe_await(self.fallback(args, options))
            except Exception as fallback_error:
                raise self._failure(e, fallback_error) from fallback_error

    def invoke_sync(
        self,
        args: list[str] | None = None,
        options: dict[str, Any] | None = None,
        run: CoroutineRunner = asyncio.run,
    ) -> Any:
        """Run the chain from synchronous code such as a click callback.

        Awaitable results are driven with *run* (``asyncio.run`` unless the
        host shares its own loop runner); the fallback runs outside that loop
        so host callbacks may start their own.
        """
        args = list(args or [])
        options = dict(options or {})
        try:
            return _call_sync(self.primary.handler, args, options, run)
        except Exception as e:
            if self.fallback is None:
                raise self._failure(e) from e
            logger.warning("command_falling_back", command=self.name, addon=self.addon, error=str(e))
            try:
                return _call_sync(self.fallback, args, options, run)
            except Exception as fallback_error:
                raise self._failure(e, fallback_error) from fallback_error


def _option_decls(option: CommandOption) -> list[str]:
    decls = []
    for part in option.name.split(","):
        part = part.strip().split(" ")[0]
        if not part:
            continue
        decls.append(part if part.startswith("-") else f"--{part}")
    return decls


def build_click_params(options: Iterable[CommandOption]) -> list[click.Parameter]:
    params: list[click.Parameter] = []
    for option in options:
        if option.is_flag:
            params.append(
                click.Option(_option_decls(option), is_flag=True, default=bool(option.default), help=option.description)
            )
        else:
            params.append(
                click.Option(
                    _option_decls(option),
                    required=option.required,
                    default=option.default,
                    help=option.description,
                )
            )
    params.append(click.Argument(["args"], nargs=-1))
    return params


def _original_fallback(command: click.Command, callback: Callable[..., Any]) -> Fallback:
    """Call a host command's own callback as click would.

    Options the host command does not declare are dropped, undeclared ones
    take their click defaults, and positional args go to an ``args``
    parameter when the host has one.
    """
    declared = {param.name for param in command.params}

    def fallback(args: list[str], options: dict[str, Any]) -> Any:
        ctx = command.make_context(command.name, [], resilient_parsing=True)
        params = {**ctx.params, **{key: value for key, value in options.items() if key in declared}}
        if args and "args" in declared:
            params["args"] = tuple(args)
        with ctx:
            return callback(**params)

    return fallback


class CommandResolver:
    """Priority-based resolution of addon command names."""

    def __init__(self, run: CoroutineRunner = asyncio.run) -> None:
        self.run = run
        self._commands: dict[str, ResolvedCommand] = {}
        self._conflicts: dict[str, list[AddonCommand]] = {}
        self._originals: dict[str, Callable[..., Any] | None] = {}
        self._original_help: dict[str, str | None] = {}
        self._added: set[str] = set()
        self._program: click.Group | None = None

    def register_command(self, command: AddonCommand) -> bool:
        """Register *command*; return True when it becomes the active handler."""
        existing = self._commands.get(command.name)
        if existing is None:
            self._commands[command.name] = ResolvedCommand(command.name, command, override=command.override)
            logger.debug("command_registered", command=command.name, addon=command.addon, priority=command.priority)
            return True

        current = existing.primary
        self._record_conflict(command.name, current, command)
        if command.priority > current.priority:
            self._commands[command.name] = ResolvedCommand(command.name, command, override=command.override)
            logger.warning(
                "command_conflict_replaced",
                command=command.name,
                winner=command.addon,
                loser=current.addon,
                priority=command.priority,
            )
            return True

        logger.warning(
            "command_conflict_kept",
            command=command.name,
            winner=current.addon,
            loser=command.addon,
            winner_priority=current.priority,
            loser_priority=command.priority,
        )
        return False

    def _record_conflict(self, name: str, current: AddonCommand, incoming: AddonCommand) -> None:
        entries = self._conflicts.setdefault(name, [])
        for command in (current, incoming):
            if not any(entry is command for entry in entries):
                entries.append(command)

    def register_addons(self, addons: Iterable[Any]) -> None:
        for addon in addons:
            for command in addon_commands(addon):
                self.register_command(command)

    def register_addon_commands_with_program(self, program: click.Group) -> None:
        """Attach every resolved command to *program*, highest priority first."""
        self._program = program
        for resolved in sorted(self._commands.values(), key=lambda c: -c.primary.priority):
            if resolved.primary.override:
                self._override(program, resolved)
            else:
                self._add(program, resolved)

    def _override(self, program: click.Group, resolved: ResolvedCommand) -> None:
        name = resolved.name
        existing = program.commands.get(name)
        if existing is None:
            logger.warning("command_override_target_missing", command=name, addon=resolved.addon)
            return

        if name not in self._originals:
            self._originals[name] = existing.callback
            self._original_help[name] = existing.help
        original = self._originals[name]
        resolved.fallback = _original_fallback(existing, original) if original is not None else None
        resolved.override = True

        def callback(**params: Any) -> Any:
            try:
                return resolved.invoke_sync([], params, self.run)
            except CommandExecutionError as e:
                raise click.ClickException(str(e)) from e

        existing.callback = callback
        base_help = self._original_help[name]
        existing.help = f"{base_help} {OVERRIDE_SUFFIX}" if base_help else OVERRIDE_SUFFIX
        logger.info("command_overridden", command=name, addon=resolved.addon)

    def _add(self, program: click.Group, resolved: ResolvedCommand) -> None:
        name = resolved.name
        if name in program.commands and name not in self._added:
            logger.warning("command_exists", command=name, addon=resolved.addon)
            return

        def callback(args: tuple[str, ...] = (), **options: Any) -> Any:
            try:
                return resolved.invoke_sync(list(args), options, self.run)
            except CommandExecutionError as e:
                raise click.ClickException(str(e)) from e

        program.add_command(
            click.Command(
                name,
                callback=callback,
                params=build_click_params(resolved.primary.options),
                help=resolved.primary.description or None,
            )
        )
        self._added.add(name)
        logger.info("command_added", command=name, addon=resolved.addon)

    def resolve_command(self, name: str) -> ResolvedCommand | None:
        return self._commands.get(name)

    def get_original_command(self, name: str) -> Fallback | None:
        """Fallback of an overridden host command, if one was captured."""
        resolved = self._commands.get(name)
        if resolved is not None and resolved.fallback is not None:
            return resolved.fallback
        original = self._originals.get(name)
        command = self._program.commands.get(name) if self._program is not None else None
        if original is None or command is None:
            return None
        return _original_fallback(command, original)

    def is_command_overridden(self, name: str) -> bool:
        resolved = self._commands.get(name)
        return resolved is not None and resolved.primary.override

    def get_all_addon_commands(self) -> list[ResolvedCommand]:
        return list(self._commands.values())

    async def execute(self, name: str, args: list[str] | None = None, options: dict[str, Any] | None = None) -> Any:
        resolved = self._commands.get(name)
        if resolved is None:
            raise CommandNotFoundError(f"Command '{name}' not found")
        return await resolved.invoke(args, options)

    def reset(self) -> None:
        """Forget every command and undo changes made to the attached program."""
        if self._program is not None:
            for name, callback in self._originals.items():
                command = self._program.commands.get(name)
                if command is not None:
                    command.callback = callback
                    command.help = self._original_help.get(name)
            for name in self._added:
                self._program.commands.pop(name, None)
        self._commands.clear()
        self._conflicts.clear()
        self._originals.clear()
        self._original_help.clear()
        self._added.clear()

    def get_command_conflicts(self) -> dict[str, list[AddonCommand]]:
        return {name: list(entries) for name, entries in self._conflicts.items()}

    def has_conflicts(self, name: str | None = None) -> bool:
        if name is None:
            return bool(self._conflicts)
        return bool(self._conflicts.get(name))

    def get_command_conflict_info(self, name: str) -> dict[str, Any] | None:
        entries = self._conflicts.get(name)
        if not entries:
            return None
        active = self._commands.get(name)
        return {
            "command": name,
            "active": active.addon if active else None,
            "candidates": [
                {"addon": entry.addon, "priority": entry.priority, "override": entry.override} for entry in entries
            ],
        }

    def get_stats(self) -> dict[str, int]:
        commands = list(self._commands.values())
        overrides = sum(1 for command in commands if command.primary.override)
        return {
            "total_commands": len(commands),
            "override_commands": overrides,
            "new_commands": len(commands) - overrides,
            "conflicts": len(self._conflicts),
        }

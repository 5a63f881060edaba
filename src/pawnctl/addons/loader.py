# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Addon loading, validation and the in-memory addon table."""

from __future__ import annotations

import importlib.util
import inspect
import itertools
import re
import sys
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any

from pawnctl.addons.base import (
    AddonCommand,
    AddonHooks,
    addon_dependencies,
    addon_dependency_constraints,
    hooks_to_mapping,
    maybe_await,
)
from pawnctl.addons.exceptions import AddonLoadError, AddonNotFoundError, AddonValidationError
from pawnctl.addons.models import AddonInfo
from pawnctl.addons.retry import retry_with_backoff
from pawnctl.logging import get_logger
from pawnctl.settings import Settings

logger = get_logger(__name__)

REQUIRED_FIELDS = ("name", "version", "description", "author", "license")
ENTRY_CANDIDATES = ("__init__.py", "addon.py")
EXPORT_NAMES = ("addon", "Addon")

ContextFactory = Callable[[str], Any]

_counter = itertools.count()


@dataclass
class AddonRecord:
    """One entry of the addon table.

    ``addon`` is None for addons that are known but not loaded (disabled,
    or failed to load).
    """

    info: AddonInfo
    addon: Any | None = None

    @property
    def loaded(self) -> bool:
        return self.addon is not None


def read_package_metadata(directory: Path) -> dict[str, Any] | None:
    """Read addon metadata from ``pyproject.toml`` in *directory*.

    Returns None unless the file carries a ``[tool.pawnctl]`` table. Fields
    missing from that table fall back to ``[project]``.
    """
    pyproject = directory / "pyproject.toml"
    if not pyproject.is_file():
        return None
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.debug("addon_metadata_unreadable", path=str(pyproject), error=str(e))
        return None

    table = data.get("tool", {}).get("pawnctl")
    if not isinstance(table, dict):
        return None
    project = data.get("project", {})

    author = table.get("author")
    if not author:
        authors = project.get("authors") or []
        author = authors[0].get("name", "") if authors and isinstance(authors[0], dict) else ""
    license_ = table.get("license") or project.get("license") or ""
    if isinstance(license_, dict):
        license_ = license_.get("text", "")

    return {
        "name": table.get("name") or project.get("name") or directory.name,
        "version": table.get("version") or project.get("version") or "",
        "description": table.get("description") or project.get("description") or "",
        "author": author,
        "license": license_,
        "main": table.get("main"),
    }


def resolve_entry_module(path: Path) -> Path:
    """Find the Python file to execute for an addon at *path*."""
    if path.is_file():
        return path
    if not path.exists():
        raise FileNotFoundError(f"ENOENT: addon path does not exist: {path}")

    metadata = read_package_metadata(path)
    if metadata and metadata.get("main"):
        entry = path / metadata["main"]
        if not entry.is_file():
            raise FileNotFoundError(f"ENOENT: addon entry module not found: {entry}")
        return entry

    for candidate in ENTRY_CANDIDATES:
        entry = path / candidate
        if entry.is_file():
            return entry
    raise AddonValidationError(f"No entry module found in {path} (expected {' or '.join(ENTRY_CANDIDATES)})")


def _import_entry(entry: Path) -> ModuleType:
    stem = re.sub(r"\W", "_", entry.parent.name if entry.name in ENTRY_CANDIDATES else entry.stem)
    module_name = f"pawnctl_addon_{next(_counter)}_{stem}"
    search_locations = [str(entry.parent)] if entry.name == "__init__.py" else None
    spec = importlib.util.spec_from_file_location(module_name, entry, submodule_search_locations=search_locations)
    if spec is None or spec.loader is None:
        raise AddonValidationError(f"Cannot import addon module from {entry}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def instantiate_addon(module: ModuleType) -> Any:
    for export_name in EXPORT_NAMES:
        export = getattr(module, export_name, None)
        if export is None:
            continue
        return export() if inspect.isclass(export) else export
    return module


def validate_addon(addon: Any) -> None:
    """Check the structure of a freshly instantiated addon.

    Raises:
        AddonValidationError: If a required field is missing or a hook or
            command is malformed
    """
    for field_name in REQUIRED_FIELDS:
        value = getattr(addon, field_name, None)
        if not isinstance(value, str) or not value.strip():
            raise AddonValidationError(f"Addon is missing required field '{field_name}'")

    name = addon.name
    hooks = getattr(addon, "hooks", None)
    if not isinstance(hooks, (AddonHooks, Mapping)):
        raise AddonValidationError(f"Addon '{name}' must define 'hooks'")
    for event, handler in hooks_to_mapping(hooks).items():
        if not callable(handler):
            raise AddonValidationError(f"Addon '{name}' hook '{event}' is not callable")

    commands = getattr(addon, "commands", None)
    if commands is None:
        return
    if not isinstance(commands, (list, tuple)):
        raise AddonValidationError(f"Addon '{name}' commands must be a list")
    for command in commands:
        if isinstance(command, AddonCommand):
            command_name, handler = command.name, command.handler
        elif isinstance(command, Mapping):
            command_name, handler = command.get("name"), command.get("handler")
        else:
            raise AddonValidationError(f"Addon '{name}' has a malformed command declaration")
        if not isinstance(command_name, str) or not command_name.strip():
            raise AddonValidationError(f"Addon '{name}' has a command without a name")
        if not callable(handler):
            raise AddonValidationError(f"Addon '{name}' command '{command_name}' has no callable handler")


async def deactivate_addon(addon: Any) -> None:
    """Call the addon's optional ``deactivate``; failures are logged."""
    deactivate = getattr(addon, "deactivate", None)
    if not callable(deactivate):
        return
    try:
        await maybe_await(deactivate())
    except Exception as e:
        logger.warning("addon_deactivate_failed", addon=getattr(addon, "name", None), error=str(e))


def recovery_hints(error: BaseException) -> list[str]:
    """Human-readable suggestions for a failed addon load."""
    message = str(error)
    if isinstance(error, ModuleNotFoundError) and error.name:
        return [
            f"The addon needs the '{error.name}' package: pip install {error.name}",
            "Check the addon's documentation for its runtime requirements",
        ]
    if isinstance(error, SyntaxError):
        return ["Fix the syntax error reported above in the addon source", "Reinstall the addon if it was downloaded"]
    if isinstance(error, FileNotFoundError) or "ENOENT" in message:
        return ["Check that the addon path exists", "Reinstall the addon: pawnctl addon install <source>"]
    if isinstance(error, PermissionError) or "EACCES" in message or "EPERM" in message:
        return ["Check file permissions on the addon directory", "Avoid installing addons into system directories"]
    if "EMFILE" in message or "ENFILE" in message:
        return ["Too many open files: close other programs or raise the open file limit"]
    if isinstance(error, MemoryError) or "ENOMEM" in message:
        return ["The system is low on memory: close other programs and retry"]
    if isinstance(error, TimeoutError) or "ETIMEDOUT" in message:
        return ["The operation timed out: check disk and network responsiveness"]
    if isinstance(error, ConnectionResetError) or "ECONNRESET" in message:
        return ["The connection was reset: check your network connection and retry"]
    return ["Run with PAWNCTL_LOG_LEVEL=DEBUG for details", "Reinstall the addon or report the problem to its author"]


class AddonLoader:
    """Turns filesystem paths into activated addons and keeps the addon table."""

    def __init__(self, settings: Settings | None = None, context_factory: ContextFactory | None = None) -> None:
        self.settings = settings or Settings()
        self.context_factory = context_factory
        self._records: dict[str, AddonRecord] = {}

    async def load_addon(self, path: str | Path) -> Any:
        """Load, validate and activate the addon at *path*.

        The addon is not added to the table; callers follow up with
        :meth:`register_addon`.

        Raises:
            AddonValidationError: If the addon is malformed
            AddonLoadError: If loading failed, after retrying transient errors
        """
        addon_path = Path(path).expanduser()
        attempts = 0

        async def attempt() -> Any:
            nonlocal attempts
            attempts += 1
            return await self._load_once(addon_path)

        logger.debug("addon_loading", path=str(addon_path))
        try:
            addon = await retry_with_backoff(
                attempt,
                max_attempts=self.settings.load_max_attempts,
                delay=self.settings.load_retry_delay_seconds,
            )
        except AddonValidationError:
            raise
        except Exception as e:
            hints = recovery_hints(e)
            logger.error("addon_load_failed", path=str(addon_path), attempts=attempts, error=str(e), hints=hints)
            raise AddonLoadError(
                f"Failed to load addon from {addon_path}: {e}", attempts=attempts, hints=hints
            ) from e

        logger.info("addon_loaded", addon=addon.name, version=addon.version, path=str(addon_path))
        return addon

    async def _load_once(self, path: Path) -> Any:
        entry = resolve_entry_module(path)
        module = _import_entry(entry)
        try:
            addon = instantiate_addon(module)
            validate_addon(addon)

            activate = getattr(addon, "activate", None)
            if callable(activate):
                context = self.context_factory(addon.name) if self.context_factory else None
                await maybe_await(activate(context))
        except BaseException:
            sys.modules.pop(module.__name__, None)
            raise
        return addon

    async def unload_addon(self, name: str, keep_info: bool = False) -> None:
        """Deactivate and evict an addon.

        With ``keep_info`` the metadata record stays in the table so the
        addon remains listed (and persisted) while not loaded.
        """
        record = self._records.get(name)
        if record is None:
            raise AddonNotFoundError(f"Addon '{name}' not found")

        if record.addon is not None:
            await deactivate_addon(record.addon)

        if keep_info:
            record.addon = None
        else:
            del self._records[name]
        logger.info("addon_unloaded", addon=name, keep_info=keep_info)

    def register_addon(self, addon: Any, info_overrides: Mapping[str, Any] | None = None) -> AddonInfo:
        """Insert or replace the record for a loaded addon."""
        info = AddonInfo(
            name=addon.name,
            version=addon.version,
            description=addon.description,
            author=addon.author,
            license=addon.license,
            dependencies=addon_dependencies(addon),
            dependency_constraints=addon_dependency_constraints(addon),
        )
        if info_overrides:
            info = info.model_copy(update=dict(info_overrides))
        self._records[addon.name] = AddonRecord(info=info, addon=addon)
        return info

    def register_info(self, info: AddonInfo) -> None:
        """Record an addon that is known but not loaded."""
        existing = self._records.get(info.name)
        self._records[info.name] = AddonRecord(info=info, addon=existing.addon if existing else None)

    def update_addon_info(self, name: str, **fields: Any) -> AddonInfo:
        record = self._records.get(name)
        if record is None:
            raise AddonNotFoundError(f"Addon '{name}' not found")
        record.info = record.info.model_copy(update=fields)
        return record.info

    def get_addon(self, name: str) -> Any | None:
        record = self._records.get(name)
        return record.addon if record else None

    def get_all_addons(self) -> list[Any]:
        return [record.addon for record in self._records.values() if record.addon is not None]

    def get_enabled_addons(self) -> list[Any]:
        return [record.addon for record in self._records.values() if record.addon is not None and record.info.enabled]

    def get_addon_info(self, name: str) -> AddonInfo | None:
        record = self._records.get(name)
        return record.info.model_copy() if record else None

    def get_all_addon_info(self) -> list[AddonInfo]:
        return [record.info.model_copy() for record in self._records.values()]

    def has_addon(self, name: str) -> bool:
        return name in self._records

    def is_loaded(self, name: str) -> bool:
        record = self._records.get(name)
        return record is not None and record.loaded

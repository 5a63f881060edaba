# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Persisted addon registry (``addons.json``)."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from pawnctl.addons.exceptions import AddonError
from pawnctl.addons.loader import AddonLoader
from pawnctl.addons.models import AddonInfo, RegistryDocument
from pawnctl.logging import get_logger
from pawnctl.paths import ensure_dir

logger = get_logger(__name__)

# Stored state that wins over what the addon declares when reloading it.
STORED_FIELDS = {"path", "source", "github_url", "installed", "enabled", "last_error", "last_error_time"}


@dataclass
class RegistryLoadResult:
    loaded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class AddonRegistry:
    """Reads and writes the registry file.

    The file holds metadata only. A full save rewrites it from the loader
    table; the targeted updates patch one entry and leave the rest of the
    document untouched.
    """

    def __init__(self, loader: AddonLoader, registry_file: Path) -> None:
        self.loader = loader
        self.path = Path(registry_file)

    def exists(self) -> bool:
        return self.path.is_file()

    def _read(self) -> dict[str, Any]:
        if not self.exists():
            return {"addons": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("registry_unreadable", path=str(self.path), error=str(e))
            return {"addons": []}
        if not isinstance(data, dict) or not isinstance(data.get("addons"), list):
            logger.error("registry_malformed", path=str(self.path))
            return {"addons": []}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        ensure_dir(self.path.parent)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def get_raw_data(self) -> dict[str, Any]:
        return self._read()

    async def load_from_registry(self) -> RegistryLoadResult:
        """Load every enabled entry whose path still exists.

        Entries that cannot be loaded are kept in the loader table as
        unloaded records carrying the error, so they are not lost on the
        next save.
        """
        result = RegistryLoadResult()
        for raw in self._read()["addons"]:
            try:
                info = AddonInfo.model_validate(raw)
            except ValidationError as e:
                logger.warning("registry_entry_invalid", entry=raw, error=str(e))
                continue

            if self.loader.is_loaded(info.name):
                continue
            if not info.enabled:
                self.loader.register_info(info)
                continue
            if not info.path or not Path(info.path).exists():
                self._record_failure(info, f"Addon path not found: {info.path}")
                result.failed.append(info.name)
                logger.warning("registry_addon_missing", addon=info.name, path=info.path)
                continue

            try:
                addon = await self.loader.load_addon(info.path)
            except AddonError as e:
                self._record_failure(info, str(e))
                result.failed.append(info.name)
                continue

            self.loader.register_addon(addon, info.model_dump(include=STORED_FIELDS))
            result.loaded.append(addon.name)

        logger.info("registry_loaded", loaded=len(result.loaded), failed=len(result.failed))
        return result

    def _record_failure(self, info: AddonInfo, error: str) -> None:
        self.loader.register_info(info.model_copy(update={"last_error": error, "last_error_time": utc_timestamp()}))

    async def save_to_registry(self) -> None:
        """Overwrite the file with every record in the loader table."""
        document = RegistryDocument(addons=self.loader.get_all_addon_info())
        self._write({"addons": [info.to_registry() for info in document.addons]})
        logger.debug("registry_saved", path=str(self.path), addons=len(document.addons))

    def _patch(self, name: str, updates: dict[str, Any]) -> bool:
        data = self._read()
        for entry in data["addons"]:
            if isinstance(entry, dict) and entry.get("name") == name:
                for key, value in updates.items():
                    if value is None:
                        entry.pop(key, None)
                    else:
                        entry[key] = value
                self._write(data)
                return True
        return False

    async def disable_addon_in_registry(self, name: str, error: str | None = None) -> bool:
        updates: dict[str, Any] = {"enabled": False}
        if error:
            updates["lastError"] = error
            updates["lastErrorTime"] = utc_timestamp()
        found = self._patch(name, updates)
        if found:
            logger.info("registry_addon_disabled", addon=name)
        return found

    async def update_addon_in_registry(self, name: str, updates: dict[str, Any]) -> bool:
        """Patch fields of one entry; keys may be snake_case or camelCase."""
        return self._patch(name, {to_camel(key): value for key, value in updates.items()})

    async def remove_addon_from_registry(self, name: str) -> bool:
        data = self._read()
        remaining = [entry for entry in data["addons"] if not (isinstance(entry, dict) and entry.get("name") == name)]
        if len(remaining) == len(data["addons"]):
            return False
        data["addons"] = remaining
        self._write(data)
        logger.info("registry_addon_removed", addon=name)
        return True

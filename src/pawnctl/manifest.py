# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Project manifest (``pawn.json``) access with save hooks."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pawnctl.logging import get_logger

if TYPE_CHECKING:
    from pawnctl.addons.hooks import HookManager

logger = get_logger(__name__)


class ManifestError(Exception):
    """Manifest file exists but cannot be parsed."""

    pass


class ProjectManifest:
    """Whole-document manifest with dotted-path field access.

    ``save`` fires ``pre_manifest_save`` and ``post_manifest_save`` around
    the write. Hooks receive ``{"path": ..., "manifest": ...}`` and may
    modify the manifest dict in ``pre_manifest_save``.
    """

    def __init__(self, path: Path, hooks: HookManager | None = None) -> None:
        self.path = Path(path)
        self.hooks = hooks
        self._data: dict[str, Any] | None = None

    def load(self) -> dict[str, Any]:
        if not self.path.is_file():
            self._data = {}
            return self._data
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid manifest {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"Invalid manifest {self.path}: expected a JSON object")
        self._data = data
        return data

    @property
    def data(self) -> dict[str, Any]:
        if self._data is None:
            self.load()
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        current: Any = self.data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        current = self.data
        for part in parts[:-1]:
            child = current.get(part)
            if not isinstance(child, dict):
                child = current[part] = {}
            current = child
        current[parts[-1]] = value

    async def save(self) -> None:
        context = {"path": str(self.path), "manifest": self.data}
        if self.hooks is not None:
            await self.hooks.pre_manifest_save(context)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(self.data, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("manifest_saved", path=str(self.path))

        if self.hooks is not None:
            await self.hooks.post_manifest_save(context)

    async def update(self, key: str, value: Any) -> None:
        self.set(key, value)
        await self.save()

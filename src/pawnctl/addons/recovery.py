# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Per-addon error ledger and quarantine."""

from __future__ import annotations

from pawnctl.addons.registry import AddonRegistry
from pawnctl.logging import get_logger

logger = get_logger(__name__)

MAX_HISTORY = 50


class AddonRecovery:
    """Bookkeeping only: records errors and quarantines, never repairs."""

    def __init__(self, registry: AddonRegistry, max_errors: int = 3) -> None:
        self.registry = registry
        self.max_errors = max_errors
        self._errors: dict[str, list[str]] = {}

    def record_addon_error(self, name: str, error: str | BaseException) -> int:
        errors = self._errors.setdefault(name, [])
        errors.append(str(error))
        del errors[:-MAX_HISTORY]
        logger.debug("addon_error_recorded", addon=name, count=len(errors))
        return len(errors)

    def get_addon_errors(self, name: str) -> list[str]:
        return list(self._errors.get(name, []))

    def clear_addon_errors(self, name: str) -> None:
        self._errors.pop(name, None)

    def get_all_addon_errors(self) -> dict[str, list[str]]:
        return {name: list(errors) for name, errors in self._errors.items() if errors}

    def should_quarantine(self, name: str) -> bool:
        return len(self._errors.get(name, [])) >= self.max_errors

    async def attempt_addon_recovery(self, name: str) -> bool:
        """Disable *name* in the registry with its latest error attached."""
        errors = self._errors.get(name)
        last_error = errors[-1] if errors else "Unknown error"
        disabled = await self.registry.disable_addon_in_registry(name, last_error)
        logger.warning("addon_quarantined", addon=name, error=last_error, persisted=disabled)
        return disabled

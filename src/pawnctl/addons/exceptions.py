# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exception hierarchy for addon operations."""

from __future__ import annotations


class AddonError(Exception):
    """Base exception for addon operations."""

    pass


class AddonValidationError(AddonError):
    """Addon structure is malformed. Never retried."""

    pass


class AddonNotFoundError(AddonError):
    """Addon is not known to the runtime."""

    pass


class AddonLoadError(AddonError):
    """Addon could not be loaded after all attempts."""

    def __init__(self, message: str, *, attempts: int = 1, hints: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.hints = hints or []


class AddonSourceError(AddonError):
    """Install source is unsupported or malformed."""

    pass


class AddonDownloadError(AddonError):
    """Remote archive could not be fetched or unpacked."""

    pass


class AddonUpdateError(AddonError):
    """Update failed; the previous install was restored."""

    pass


class CommandNotFoundError(AddonError):
    """No addon provides the requested command."""

    pass


class CommandExecutionError(AddonError):
    """Addon command failed and no fallback could recover it."""

    pass


class InvalidVersionError(AddonError, ValueError):
    """Version string is not a valid semantic version."""

    pass

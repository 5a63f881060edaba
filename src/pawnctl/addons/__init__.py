# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Addon runtime.

Addons are Python packages that hook into the pawnctl lifecycle, add or
override commands and depend on other addons.

Public API:
    - AddonManager: facade for install, enable, disable, update and commands
    - Addon, AddonHooks, AddonCommand: what an addon exposes
    - AddonInfo: persisted metadata
    - AddonContext, HostAPI, HostServices: what an addon receives
    - Exception hierarchy
"""

from pawnctl.addons.api import AddonContext, EventBus, HostAPI, HostServices
from pawnctl.addons.base import (
    Addon,
    AddonCommand,
    AddonHooks,
    BuildContext,
    CommandOption,
    PackageInfo,
    ServerConfig,
)
from pawnctl.addons.exceptions import (
    AddonDownloadError,
    AddonError,
    AddonLoadError,
    AddonNotFoundError,
    AddonSourceError,
    AddonUpdateError,
    AddonValidationError,
    CommandExecutionError,
    CommandNotFoundError,
    InvalidVersionError,
)
from pawnctl.addons.manager import AddonManager
from pawnctl.addons.models import AddonInfo

__all__ = [
    # Core
    "AddonManager",
    "AddonInfo",
    # Addon interface
    "Addon",
    "AddonHooks",
    "AddonCommand",
    "CommandOption",
    "BuildContext",
    "PackageInfo",
    "ServerConfig",
    # Host API
    "AddonContext",
    "EventBus",
    "HostAPI",
    "HostServices",
    # Exceptions
    "AddonError",
    "AddonValidationError",
    "AddonNotFoundError",
    "AddonLoadError",
    "AddonSourceError",
    "AddonDownloadError",
    "AddonUpdateError",
    "CommandNotFoundError",
    "CommandExecutionError",
    "InvalidVersionError",
]

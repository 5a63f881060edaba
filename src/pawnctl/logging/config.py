# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""structlog setup for the pawnctl CLI and the addon runtime.

Command output (addon listings, ``--json`` records, addon command output)
goes to stdout through ``click.echo``. Everything logged here goes to
stderr, so ``pawnctl addon list --json`` stays machine readable at any
``PAWNCTL_LOG_LEVEL``.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pawnctl.settings import Settings

__all__ = ["get_logger", "configure_logging"]


def _level(name: str) -> int:
    # Unknown names fall back to the quiet default.
    return getattr(logging, name.upper(), logging.WARNING)


def configure_logging(settings: Settings | None = None) -> None:
    """Install the stderr console pipeline at ``settings.log_level``.

    Called by ``pawnctl.cli.main`` before the addon manager starts. Calling
    it again (tests do) replaces the previous configuration.
    """
    if settings is None:
        from pawnctl.settings import Settings

        settings = Settings()

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level(settings.log_level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Logger for a pawnctl module, or ``pawnctl.addon.<name>`` for an addon context."""
    return structlog.get_logger(name)

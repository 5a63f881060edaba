# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Filesystem paths for the pawnctl home and addon directories."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_data_dir

ENV_HOME = "PAWNCTL_HOME"

REGISTRY_FILENAME = "addons.json"
ADDONS_DIRNAME = "addons"
PROJECT_DIRNAME = ".pawnctl"
MANIFEST_FILENAME = "pawn.json"


def default_home() -> Path:
    """Get the default pawnctl home directory."""
    env_home = os.getenv(ENV_HOME)
    if env_home:
        return Path(env_home)
    return Path(user_data_dir("pawnctl", "pawnctl"))


def project_addons_dir(project_root: Path) -> Path:
    """Addon install directory local to a project."""
    return project_root / PROJECT_DIRNAME / ADDONS_DIRNAME


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def is_local_path(source: str) -> bool:
    """Return True when *source* is written as a filesystem path.

    Relative markers (``./``, ``../`` and their Windows forms), a leading
    ``~`` and absolute paths all count; bare ``owner/repo`` does not.
    """
    if source.startswith(("./", "../", ".\\", "..\\", "~")):
        return True
    return Path(source).is_absolute()

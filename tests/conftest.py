# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import textwrap
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from pawnctl.addons.loader import AddonLoader
from pawnctl.logging import configure_logging
from pawnctl.settings import Settings

ADDON_TEMPLATE = '''\
from pathlib import Path

_EVENTS = Path(__file__).with_name("events.log")


def _record(event):
    with _EVENTS.open("a") as fh:
        fh.write(event + "\\n")


class Addon:
    name = {name!r}
    version = {version!r}
    description = {description!r}
    author = "Test Author"
    license = "MIT"
    dependencies = {dependencies!r}
    dependency_constraints = {constraints!r}

    def __init__(self):
        self.hooks = {{}}
        self.commands = []
        self.context = None

    def activate(self, context):
        self.context = context
        _record("activate")

    def deactivate(self):
        _record("deactivate")
'''

PYPROJECT_TEMPLATE = """\
[project]
name = "{name}"
version = "{version}"
description = "{description}"

[tool.pawnctl]
name = "{name}"
"""

AddonWriter = Callable[..., Path]


def render_addon(
    name: str,
    version: str = "1.0.0",
    description: str | None = None,
    dependencies: list[str] | None = None,
    constraints: dict[str, str] | None = None,
) -> str:
    return ADDON_TEMPLATE.format(
        name=name,
        version=version,
        description=description or f"Test addon {name}",
        dependencies=list(dependencies or []),
        constraints=dict(constraints or {}),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary home and project."""
    project_root = tmp_path / "project"
    project_root.mkdir()
    return Settings(
        home=tmp_path / "home",
        project_root=project_root,
        log_level="WARNING",
        load_retry_delay_seconds=0.0,
        discovery_paths=[],
    )


@pytest.fixture
def loader(settings: Settings) -> AddonLoader:
    return AddonLoader(settings)


@pytest.fixture
def addons_root(tmp_path: Path) -> Path:
    """Directory holding locally written test addons."""
    root = tmp_path / "local-addons"
    root.mkdir()
    return root


@pytest.fixture
def write_addon(addons_root: Path) -> AddonWriter:
    """Write an addon package and return its directory.

    ``source`` replaces the generated module body; ``pyproject`` adds a
    ``[tool.pawnctl]`` table so discovery can find the package.
    """

    def _write(
        name: str,
        version: str = "1.0.0",
        *,
        description: str | None = None,
        dependencies: list[str] | None = None,
        constraints: dict[str, str] | None = None,
        source: str | None = None,
        parent: Path | None = None,
        dirname: str | None = None,
        pyproject: bool = False,
    ) -> Path:
        description = description or f"Test addon {name}"
        directory = (parent or addons_root) / (dirname or name)
        directory.mkdir(parents=True, exist_ok=True)
        if source is None:
            source = render_addon(name, version, description, dependencies, constraints)
        else:
            source = textwrap.dedent(source)
        (directory / "__init__.py").write_text(source)
        if pyproject:
            (directory / "pyproject.toml").write_text(
                PYPROJECT_TEMPLATE.format(name=name, version=version, description=description)
            )
        return directory

    return _write


@pytest.fixture
def read_events() -> Callable[[Path], list[str]]:
    """Lifecycle events recorded by a generated addon."""

    def _read(directory: Path) -> list[str]:
        events = directory / "events.log"
        if not events.exists():
            return []
        return events.read_text().splitlines()

    return _read


@pytest.fixture
def make_archive() -> Callable[..., bytes]:
    """Build a GitHub-style zip: every file under one top-level folder."""

    def _make(files: dict[str, str], top: str = "repo-main") -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr(f"{top}/", "")
            for name, content in files.items():
                zf.writestr(f"{top}/{name}", content)
        return buffer.getvalue()

    return _make


@pytest.fixture
def addon_source() -> Callable[..., str]:
    """Source text of a generated addon, for archives served over HTTP."""
    return render_addon


@pytest.fixture(autouse=True)
def _configure_logging(settings: Settings) -> None:
    configure_logging(settings)

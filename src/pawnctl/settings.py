# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Application settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pawnctl.paths import (
    ADDONS_DIRNAME,
    MANIFEST_FILENAME,
    REGISTRY_FILENAME,
    default_home,
    project_addons_dir,
)


class Settings(BaseSettings):
    home: Path = Field(default_factory=default_home)
    project_root: Path = Field(default_factory=Path.cwd)
    log_level: str = "WARNING"

    # Addon loading
    load_max_attempts: int = Field(default=3, ge=1)
    load_retry_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_addon_errors: int = Field(default=3, ge=1)

    # Remote sources
    github_base_url: str = "https://github.com"
    download_timeout_seconds: float = 60.0

    discovery_paths: list[Path] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="PAWNCTL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @property
    def registry_file(self) -> Path:
        return self.home / REGISTRY_FILENAME

    @property
    def global_addons_dir(self) -> Path:
        return self.home / ADDONS_DIRNAME

    @property
    def project_addons_dir(self) -> Path:
        return project_addons_dir(self.project_root)

    @property
    def manifest_file(self) -> Path:
        return self.project_root / MANIFEST_FILENAME

# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Persisted addon metadata."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AddonSource = Literal["github", "local", "discovered"]


class AddonInfo(BaseModel):
    """Metadata record for a known addon. Never holds code.

    Serialised with camelCase keys (``githubUrl``, ``lastError``) so the
    registry file matches what addon tooling already writes.
    """

    name: str
    version: str = ""
    description: str = ""
    author: str = ""
    license: str = ""
    installed: bool = True
    enabled: bool = True
    path: str | None = None
    source: AddonSource | None = None
    github_url: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    dependency_constraints: dict[str, str] = Field(default_factory=dict)
    last_error: str | None = None
    last_error_time: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_registry(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RegistryDocument(BaseModel):
    addons: list[AddonInfo] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

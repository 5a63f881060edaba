# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Download and unpack addon source archives from GitHub."""

from __future__ import annotations

import asyncio
import re
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from pawnctl.addons.exceptions import AddonDownloadError, AddonSourceError
from pawnctl.logging import get_logger
from pawnctl.paths import ensure_dir, is_local_path

logger = get_logger(__name__)

DEFAULT_REF = "HEAD"
EXTRACT_DIRNAME = ".pawnctl-extract"
ARCHIVE_FILENAME = ".pawnctl-download.zip"

_NAME = r"[A-Za-z0-9_.-]+"
_SHORTHAND_RE = re.compile(rf"^({_NAME})/({_NAME})(?:@(.+))?$")
_URL_RE = re.compile(
    rf"^(?:https?://)?(?:www\.)?github\.com/({_NAME})/({_NAME}?)(?:\.git)?"
    r"(?:/(?:tree|archive|releases/tag|releases)/([^?#]+?))?/?$"
)
_ARCHIVE_SUFFIXES = (".zip", ".tar.gz")


@dataclass(frozen=True)
class RepoSpec:
    owner: str
    repo: str
    ref: str | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def install_name(self) -> str:
        """Directory name used for the install: ``owner-repo``."""
        return f"{self.owner}-{self.repo}"

    def url(self, base_url: str = "https://github.com") -> str:
        return f"{base_url.rstrip('/')}/{self.owner}/{self.repo}"


def parse_repo_spec(source: str) -> RepoSpec | None:
    """Parse ``owner/repo``, ``owner/repo@ref`` or a repository URL."""
    text = source.strip()
    if is_local_path(text):
        return None
    match = _URL_RE.match(text)
    if match:
        owner, repo, ref = match.groups()
        if ref:
            for suffix in _ARCHIVE_SUFFIXES:
                if ref.endswith(suffix):
                    ref = ref[: -len(suffix)]
        return RepoSpec(owner, repo, ref or None)
    if "://" in text:
        return None
    match = _SHORTHAND_RE.match(text)
    if match:
        owner, repo, ref = match.groups()
        return RepoSpec(owner, repo, ref or None)
    return None


class GitHubDownloader:
    """Fetches ``/archive/<ref>.zip`` and unpacks it into a target directory."""

    def __init__(
        self,
        base_url: str = "https://github.com",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def archive_url(self, owner: str, repo: str, ref: str | None = None) -> str:
        return f"{self.base_url}/{owner}/{repo}/archive/{ref or DEFAULT_REF}.zip"

    async def download_repo(self, owner: str, repo: str, target: Path, ref: str | None = None) -> Path:
        """Download *owner/repo* at *ref* and unpack it into *target*.

        Raises:
            AddonDownloadError: On HTTP failure or an unusable archive
        """
        target = ensure_dir(Path(target))
        url = self.archive_url(owner, repo, ref)
        logger.info("addon_download_start", repo=f"{owner}/{repo}", ref=ref or DEFAULT_REF, url=url)

        async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url)
            except httpx.HTTPError as e:
                raise AddonDownloadError(f"Failed to download {owner}/{repo}: {e}") from e

        if response.status_code != 200:
            raise AddonDownloadError(f"Failed to download {owner}/{repo}: HTTP {response.status_code}")

        archive = target / ARCHIVE_FILENAME
        archive.write_bytes(response.content)
        try:
            await asyncio.to_thread(self._extract, archive, target)
        finally:
            archive.unlink(missing_ok=True)

        logger.info("addon_download_complete", repo=f"{owner}/{repo}", target=str(target))
        return target

    async def download_from_spec(self, spec: str, target: Path) -> Path:
        parsed = parse_repo_spec(spec)
        if parsed is None:
            raise AddonSourceError(f"Invalid repository specification: {spec}")
        return await self.download_repo(parsed.owner, parsed.repo, target, parsed.ref)

    def _extract(self, archive: Path, target: Path) -> None:
        extract_dir = target / EXTRACT_DIRNAME
        if extract_dir.exists():
            shutil.rmtree(extract_dir)
        extract_dir.mkdir()
        try:
            try:
                with zipfile.ZipFile(archive) as zf:
                    root = extract_dir.resolve()
                    for member in zf.namelist():
                        if not (extract_dir / member).resolve().is_relative_to(root):
                            raise AddonDownloadError(f"Archive entry escapes the target directory: {member}")
                    zf.extractall(extract_dir)
            except zipfile.BadZipFile as e:
                raise AddonDownloadError(f"Invalid archive: {e}") from e

            entries = list(extract_dir.iterdir())
            if len(entries) != 1 or not entries[0].is_dir():
                raise AddonDownloadError("Archive must contain a single top-level folder")

            for item in entries[0].iterdir():
                destination = target / item.name
                if destination.is_dir() and not destination.is_symlink():
                    shutil.rmtree(destination)
                elif destination.exists() or destination.is_symlink():
                    destination.unlink()
                shutil.move(str(item), str(destination))
        finally:
            shutil.rmtree(extract_dir, ignore_errors=True)

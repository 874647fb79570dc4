"""Package -> directory mapping under the artifact root.

A package's pages are written all-or-nothing: everything is staged in a
hidden sibling directory and swapped into place with ``os.replace``. On any
failure the staging directory is removed and a previous copy, if any, is
restored.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import tempfile
import uuid
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from docsfetcher.atomic import fsync_directory
from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.documents import PageRecord

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.models.documents import PageArtifact

ASSET_DIRS = ("css", "images")
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9\-_.]")


def sanitize_package_name(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", name.strip())


class DirectoryManager:
    def __init__(self, root: Path | str, *, logger: FilteringBoundLogger | None = None) -> None:
        self.root = Path(root)
        self._log = logger or structlog.get_logger()

    def package_dir(self, name: str) -> Path:
        """Return ``<root>/<sanitized name>``; never a path outside the root."""
        sanitized = sanitize_package_name(name)
        if sanitized in ("", ".", ".."):
            raise DocsFetcherError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Invalid package name: {name!r}",
                suggestion="Pass an npm package name such as 'react' or '@scope/name'.",
            )
        return self.root / sanitized

    async def write_package(
        self,
        name: str,
        pages: Sequence[PageArtifact],
        assets: Mapping[str, bytes] | None = None,
    ) -> Path:
        """Replace the package directory with *pages* and *assets*.

        Asset keys are paths relative to the package directory and must live
        under ``css/`` or ``images/``. Raises FILE_WRITE_ERROR with nothing
        left behind on failure.
        """
        target = self.package_dir(name)
        for rel_path in assets or {}:
            _check_asset_path(rel_path)
        try:
            await asyncio.to_thread(self._write_package_sync, target, pages, assets or {})
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.FILE_WRITE_ERROR,
                message=f"Failed to write documentation for {name}: {exc}",
                suggestion="Check free disk space and permissions on the cache directory.",
            ) from exc
        self._log.info(
            "package_written",
            package=name,
            path=str(target),
            pages=len(pages),
            assets=len(assets or {}),
        )
        return target

    def _write_package_sync(
        self,
        target: Path,
        pages: Sequence[PageArtifact],
        assets: Mapping[str, bytes],
    ) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.root))
        backup: Path | None = None
        try:
            for page in pages:
                (staging / page.filename).write_text(page.html, encoding="utf-8")
                record_path = (staging / page.filename).with_suffix(".json")
                record_path.write_text(
                    page.record.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
                )
            for rel_path, data in assets.items():
                asset_path = staging / rel_path
                asset_path.parent.mkdir(parents=True, exist_ok=True)
                asset_path.write_bytes(data)

            if target.exists():
                backup = self.root / f".old-{target.name}-{uuid.uuid4().hex[:8]}"
                os.replace(target, backup)
            try:
                os.replace(staging, target)
            except OSError:
                if backup is not None:
                    os.replace(backup, target)
                    backup = None
                raise
            fsync_directory(self.root)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            if backup is not None:
                shutil.rmtree(backup, ignore_errors=True)

    async def read_records(self, name: str) -> list[PageRecord]:
        """Load the PageRecords saved for a package, sorted by file name."""
        directory = self.package_dir(name)
        try:
            return await asyncio.to_thread(self._read_records_sync, directory)
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.FILE_READ_ERROR,
                message=f"Failed to read documentation for {name}: {exc}",
            ) from exc

    def _read_records_sync(self, directory: Path) -> list[PageRecord]:
        if not directory.is_dir():
            return []
        records: list[PageRecord] = []
        for path in sorted(directory.glob("*.json")):
            try:
                records.append(PageRecord.model_validate_json(path.read_bytes()))
            except ValidationError:
                self._log.warning("page_record_invalid", path=str(path))
        return records

    async def list_packages(self) -> list[str]:
        """Directory names of every stored package."""

        def _list() -> list[str]:
            if not self.root.is_dir():
                return []
            return sorted(
                p.name for p in self.root.iterdir() if p.is_dir() and not p.name.startswith(".")
            )

        try:
            return await asyncio.to_thread(_list)
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.DIRECTORY_ERROR,
                message=f"Failed to list {self.root}: {exc}",
            ) from exc

    async def remove_package(self, name: str) -> bool:
        """Delete a package directory. Returns False when it did not exist."""
        directory = self.package_dir(name)
        if not directory.exists():
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, directory)
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.DIRECTORY_ERROR,
                message=f"Failed to remove documentation for {name}: {exc}",
            ) from exc
        self._log.info("package_removed", package=name, path=str(directory))
        return True


def _check_asset_path(rel_path: str) -> None:
    parts = PurePosixPath(rel_path).parts
    if len(parts) < 2 or parts[0] not in ASSET_DIRS or ".." in parts or rel_path.startswith("/"):
        raise DocsFetcherError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Asset path must live under css/ or images/: {rel_path!r}",
        )

"""JSON-file key/value cache bounded by TTL and total size.

Each key lives in its own ``<sanitized key>.json`` file holding a CacheEntry
envelope; running counters are persisted in ``.stats``. All file I/O runs in a
worker thread and mutations are serialized by a single asyncio lock, so
concurrent writers to the same key resolve as last-writer-wins.

Reads never delete: an expired entry is reported as a miss and stays on disk
(and in ``entries``) until ``cleanup()`` removes it.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from docsfetcher.atomic import write_bytes_atomic
from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.cache import CacheEntry, CacheStats, DirectoryInfo

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

STATS_FILE_NAME = ".stats"
ENTRY_SUFFIX = ".json"


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def entry_file_name(key: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", key) + ENTRY_SUFFIX


def _read_entry(path: Path) -> CacheEntry:
    return CacheEntry.model_validate_json(path.read_bytes())


def _entry_paths(cache_dir: Path) -> list[Path]:
    return sorted(p for p in cache_dir.glob(f"*{ENTRY_SUFFIX}") if p.is_file())


def _existing_size(path: Path) -> int | None:
    """Size recorded in the entry at *path*, or None when there is no readable entry."""
    try:
        return _read_entry(path).size
    except (FileNotFoundError, ValidationError):
        return None


class CacheManager:
    """Cache implementing CacheProtocol."""

    def __init__(
        self,
        cache_dir: Path | str,
        max_size: int,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.time,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        if not str(cache_dir):
            raise DocsFetcherError(
                code=ErrorCode.CONFIG_LOAD_ERROR,
                message="Cache directory must be provided",
                suggestion="Set cache.dir in docs-fetcher.yaml or DOCSFETCHER__CACHE__DIR.",
            )
        self.cache_dir = Path(cache_dir)
        self.max_size = max_size
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._log = logger or structlog.get_logger()
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

    @property
    def _stats_path(self) -> Path:
        return self.cache_dir / STATS_FILE_NAME

    def _entry_path(self, key: str) -> Path:
        return self.cache_dir / entry_file_name(key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Create the cache directory and reconcile persisted stats with the files present."""
        try:
            async with self._lock:
                self._stats = await asyncio.to_thread(self._load_and_reconcile_stats)
                await self._save_stats()
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_INIT_ERROR,
                message=f"Failed to initialize cache: {exc}",
                suggestion="Check that the cache directory is writable.",
            ) from exc
        self._log.info(
            "cache_initialized",
            path=str(self.cache_dir),
            entries=self._stats.entries,
            size=self._stats.size,
        )

    def _load_and_reconcile_stats(self) -> CacheStats:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        stats = CacheStats()
        if self._stats_path.is_file():
            try:
                stats = CacheStats.model_validate_json(self._stats_path.read_bytes())
            except ValidationError:
                self._log.warning("cache_stats_invalid", path=str(self._stats_path))

        actual_size = 0
        actual_entries = 0
        for path in _entry_paths(self.cache_dir):
            try:
                entry = _read_entry(path)
            except ValidationError:
                self._log.warning("cache_entry_unreadable", file=path.name)
                continue
            actual_size += entry.size
            actual_entries += 1
        return stats.model_copy(update={"size": actual_size, "entries": actual_entries})

    async def close(self) -> None:
        async with self._lock:
            await self._save_stats()

    async def _save_stats(self) -> None:
        """Persist counters. Non-fatal: the entry files stay authoritative."""
        payload = self._stats.model_dump_json().encode("utf-8")
        try:
            await asyncio.to_thread(write_bytes_atomic, self._stats_path, payload)
        except OSError:
            self._log.warning("cache_stats_write_error", path=str(self._stats_path), exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing or expired."""
        path = self._entry_path(key)
        async with self._lock:
            try:
                entry = await asyncio.to_thread(_read_entry, path)
            except FileNotFoundError:
                entry = None
            except ValidationError:
                self._log.warning("cache_entry_unreadable", key=key)
                entry = None
            except OSError as exc:
                raise DocsFetcherError(
                    code=ErrorCode.CACHE_GET_ERROR,
                    message=f"Failed to read cache entry {key!r}: {exc}",
                ) from exc

            if entry is None or entry.is_expired(_now_ms(self._clock)):
                self._stats.misses += 1
                await self._save_stats()
                self._log.debug("cache_miss", key=key, expired=entry is not None)
                return None

            self._stats.hits += 1
            await self._save_stats()
            self._log.debug("cache_hit", key=key)
            return entry.data

    async def get_stats(self) -> CacheStats:
        return self._stats.model_copy()

    async def get_directory_info(self) -> DirectoryInfo:
        try:
            return await asyncio.to_thread(self._directory_info)
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_INFO_ERROR,
                message=f"Failed to get cache directory info: {exc}",
            ) from exc

    def _directory_info(self) -> DirectoryInfo:
        if not self.cache_dir.is_dir():
            return DirectoryInfo(path=str(self.cache_dir), exists=False)
        entries = _entry_paths(self.cache_dir)
        return DirectoryInfo(
            path=str(self.cache_dir),
            exists=True,
            is_writable=os.access(self.cache_dir, os.W_OK),
            size=sum(p.stat().st_size for p in entries),
            files=len(entries),
            last_modified=datetime.fromtimestamp(self.cache_dir.stat().st_mtime, tz=UTC),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_new(self, key: str, data: Any) -> None:
        """Store *data* under *key*, replacing any previous value.

        Raises CACHE_SIZE_ERROR, leaving the cache untouched, when the entry
        cannot fit even after expired entries are swept.
        """
        try:
            size = len(json.dumps(data).encode("utf-8"))
        except (TypeError, ValueError) as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_SET_ERROR,
                message=f"Cache value for {key!r} is not JSON serializable: {exc}",
            ) from exc

        if size > self.max_size:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_SIZE_ERROR,
                message=(
                    f"Entry size ({size} bytes) exceeds maximum cache size "
                    f"({self.max_size} bytes)"
                ),
                suggestion="Raise cache.max_size_bytes or fetch fewer pages per package.",
            )

        path = self._entry_path(key)
        async with self._lock:
            try:
                existing = await asyncio.to_thread(_existing_size, path)
                if self._stats.size - (existing or 0) + size > self.max_size:
                    await self._cleanup_locked()
                    existing = await asyncio.to_thread(_existing_size, path)
                    if self._stats.size - (existing or 0) + size > self.max_size:
                        raise DocsFetcherError(
                            code=ErrorCode.CACHE_SIZE_ERROR,
                            message=(
                                f"Cache is full: {self._stats.size} of {self.max_size} bytes "
                                f"used, entry needs {size}"
                            ),
                            suggestion="Run 'docs-fetcher cache clear' or raise the size limit.",
                        )

                entry = CacheEntry(
                    data=data,
                    timestamp=_now_ms(self._clock),
                    size=size,
                    ttl=self.ttl_ms,
                )
                await asyncio.to_thread(
                    write_bytes_atomic, path, entry.model_dump_json().encode("utf-8")
                )
            except OSError as exc:
                raise DocsFetcherError(
                    code=ErrorCode.CACHE_SET_ERROR,
                    message=f"Failed to set cache entry {key!r}: {exc}",
                ) from exc

            self._stats.size = self._stats.size - (existing or 0) + size
            if existing is None:
                self._stats.entries += 1
            await self._save_stats()
        self._log.debug("cache_set", key=key, size=size)

    async def delete(self, key: str) -> None:
        path = self._entry_path(key)
        async with self._lock:
            try:
                removed = await asyncio.to_thread(_existing_size, path)
                existed = await asyncio.to_thread(path.exists)
                if existed:
                    await asyncio.to_thread(path.unlink)
            except OSError as exc:
                raise DocsFetcherError(
                    code=ErrorCode.CACHE_DELETE_ERROR,
                    message=f"Failed to delete cache entry {key!r}: {exc}",
                ) from exc
            if existed:
                self._stats.size = max(0, self._stats.size - (removed or 0))
                if removed is not None:
                    self._stats.entries = max(0, self._stats.entries - 1)
                await self._save_stats()
                self._log.debug("cache_deleted", key=key)

    async def clear(self) -> None:
        """Remove every entry and reset all counters."""
        async with self._lock:
            try:
                for path in await asyncio.to_thread(_entry_paths, self.cache_dir):
                    await asyncio.to_thread(path.unlink, True)
            except OSError as exc:
                raise DocsFetcherError(
                    code=ErrorCode.CACHE_CLEAR_ERROR,
                    message=f"Failed to clear cache: {exc}",
                ) from exc
            self._stats = CacheStats(last_cleanup=_now_ms(self._clock))
            await self._save_stats()
        self._log.info("cache_cleared", path=str(self.cache_dir))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup(self) -> int:
        """Remove expired and unreadable entries. Returns the number removed."""
        async with self._lock:
            return await self._cleanup_locked()

    async def cleanup_if_due(self, interval_seconds: float) -> None:
        """Run cleanup only if *interval_seconds* have elapsed since the last run."""
        elapsed_ms = _now_ms(self._clock) - self._stats.last_cleanup
        if self._stats.last_cleanup and elapsed_ms < interval_seconds * 1000:
            self._log.debug("cache_cleanup_skipped", reason="not_due")
            return
        await self.cleanup()

    async def _cleanup_locked(self) -> int:
        try:
            removed, remaining, remaining_size = await asyncio.to_thread(
                self._sweep_expired, _now_ms(self._clock)
            )
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_CLEANUP_ERROR,
                message=f"Failed to cleanup cache: {exc}",
            ) from exc
        self._stats.entries = remaining
        self._stats.size = remaining_size
        self._stats.last_cleanup = _now_ms(self._clock)
        await self._save_stats()
        self._log.info(
            "cache_cleanup_complete",
            removed=removed,
            remaining=remaining,
            size=remaining_size,
        )
        return removed

    def _sweep_expired(self, now_ms: int) -> tuple[int, int, int]:
        removed = 0
        remaining = 0
        remaining_size = 0
        for path in _entry_paths(self.cache_dir):
            try:
                entry = _read_entry(path)
            except ValidationError:
                self._log.warning("cache_entry_unreadable", file=path.name)
                path.unlink(missing_ok=True)
                removed += 1
                continue
            if entry.is_expired(now_ms):
                path.unlink(missing_ok=True)
                removed += 1
            else:
                remaining += 1
                remaining_size += entry.size
        return removed, remaining, remaining_size

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """On-disk envelope for one cached value."""

    data: Any
    timestamp: int  # epoch milliseconds at write time
    size: int  # bytes of the serialized entry
    ttl: int  # milliseconds

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.timestamp > self.ttl


class CacheStats(BaseModel):
    size: int = 0  # bytes across all entries
    entries: int = 0
    hits: int = 0
    misses: int = 0
    last_cleanup: int = 0  # epoch milliseconds, 0 if never


class DirectoryInfo(BaseModel):
    path: str
    exists: bool
    is_writable: bool = False
    size: int = 0
    files: int = 0
    last_modified: datetime | None = None

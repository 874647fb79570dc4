"""Crawl frontier for a single fetch run.

Normalizes discovered URLs, keeps the crawl inside the allowed domains and
hands URLs out in FIFO order. A URL moves Discovered -> Queued -> Visited and
never goes back; nothing here is persisted or shared between runs.
"""

from __future__ import annotations

import re
from collections import deque
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit, urlunsplit

import structlog

from docsfetcher.models.registry import CrawlQueueEntry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structlog.typing import FilteringBoundLogger

DEFAULT_MAX_DEPTH = 15

_DOC_SEGMENT_RE = re.compile(
    r"docs?|documentation|guide|tutorial|manual|reference|api|readme|getting-started",
    re.IGNORECASE,
)


class UrlManager:
    def __init__(
        self,
        base_url: str,
        *,
        allowed_domains: Iterable[str] | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._log = logger or structlog.get_logger()
        self._base_url = base_url
        self.base_url = self.normalize_url(base_url)
        self._base_url = self.base_url or base_url

        host = urlsplit(self.base_url).hostname or ""
        domains = {d.lower() for d in allowed_domains or ()}
        self.allowed_domains: frozenset[str] = frozenset(domains or {host})
        self.max_depth = max_depth

        self._queue: deque[CrawlQueueEntry] = deque()
        self._queued: set[str] = set()
        self._visited: list[str] = []
        self._visited_set: set[str] = set()

        self.add_to_queue(self.base_url)

    def normalize_url(self, url: str) -> str:
        """Absolute URL without fragment, query or trailing slashes.

        Returns "" for anything that cannot be crawled.
        """
        try:
            absolute = urljoin(self._base_url, url.strip())
            parts = urlsplit(absolute)
            if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
                raise ValueError(f"not an http(s) URL: {url!r}")
            path = parts.path.rstrip("/")
            return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))
        except ValueError:
            self._log.debug("url_rejected", url=url)
            return ""

    def _is_allowed(self, url: str) -> bool:
        host = (urlsplit(url).hostname or "").lower()
        return any(host == d or host.endswith(f".{d}") for d in self.allowed_domains)

    def add_to_queue(self, url: str, depth: int = 0) -> bool:
        """Queue *url* if it is new, in scope and the page budget allows it."""
        normalized = self.normalize_url(url)
        if (
            not normalized
            or normalized in self._visited_set
            or normalized in self._queued
            or not self._is_allowed(normalized)
            or len(self._visited) >= self.max_depth
        ):
            return False
        self._queue.append(CrawlQueueEntry(url=normalized, depth=depth))
        self._queued.add(normalized)
        self._log.debug("url_queued", url=normalized, depth=depth)
        return True

    def has_next(self) -> bool:
        return bool(self._queue)

    def get_next(self) -> CrawlQueueEntry | None:
        if not self._queue:
            return None
        entry = self._queue.popleft()
        self._queued.discard(entry.url)
        self._visited_set.add(entry.url)
        self._visited.append(entry.url)
        return entry

    @property
    def visited_urls(self) -> list[str]:
        return list(self._visited)

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    def clear_queue(self) -> None:
        self._queue.clear()
        self._queued.clear()

    @staticmethod
    def is_documentation_url(url: str) -> bool:
        try:
            path = urlsplit(url).path
        except ValueError:
            return False
        return any(_DOC_SEGMENT_RE.search(segment) for segment in path.split("/") if segment)

    @staticmethod
    def url_to_filename(url: str) -> str:
        """Map a page URL to the file it is saved under in a package directory."""
        try:
            path = urlsplit(url).path
        except ValueError:
            return "unknown.html"
        path = path.strip("/")
        if not path:
            return "index.html"
        name = re.sub(r"[^a-z0-9-]", "-", path.lower())
        name = re.sub(r"-+", "-", name)
        if not name.endswith(".html"):
            name = f"{name}.html"
        return name

"""Fetch orchestrator: package name in, stored and cached documentation out.

The DocsFetcher owns every long-lived resource of a run: the shared httpx
client, the browser, the cache and the cleanup scheduler. Each package fetch
walks Resolving -> Crawling -> Parsing -> Persisting; the crawl queue and the
visited set belong to that single fetch and are discarded afterwards.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from contextlib import suppress
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Self
from urllib.parse import urljoin, urlsplit

import httpx
import structlog

from docsfetcher.cache import CacheManager
from docsfetcher.config import Settings
from docsfetcher.directory import DirectoryManager
from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.link_validator import LinkValidator
from docsfetcher.models.documents import FetchResult, PageArtifact, PageRecord
from docsfetcher.parser import parse_html
from docsfetcher.registry import PACKAGE_INFO_FILE_NAME, PackageInfoFetcher
from docsfetcher.renderer import PlaywrightRenderer
from docsfetcher.resolver import DocsUrlResolver
from docsfetcher.retry import RetryPolicy, with_retry
from docsfetcher.schedulers import run_cache_cleanup_scheduler
from docsfetcher.scorer import DocumentationScorer
from docsfetcher.url_manager import UrlManager

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.models.documents import DocumentationScore, ParsedDocument, RenderedPage
    from docsfetcher.models.registry import PackageDocsTarget
    from docsfetcher.protocols import RendererProtocol, RenderSession

CACHE_DIR_NAME = ".cache"
SEED_FILENAME = "index.html"


class FetcherState(StrEnum):
    IDLE = "idle"
    INITIALIZED = "initialized"
    CLOSED = "closed"
    FAILED = "failed"


class FetchPhase(StrEnum):
    RESOLVING = "resolving"
    CRAWLING = "crawling"
    PARSING = "parsing"
    PERSISTING = "persisting"


def cache_key(name: str) -> str:
    return f"docs:{name}"


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared httpx client used for registry lookups and link checks."""
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=settings.validator.max_redirects,
        timeout=httpx.Timeout(settings.registry.timeout_seconds),
        headers={"User-Agent": settings.renderer.user_agent},
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        ),
    )


def _asset_path(folder: str, url: str, used: set[str]) -> str:
    """Relative path for a downloaded asset, unique within one package."""
    name = PurePosixPath(urlsplit(url).path).name
    name = re.sub(r"[^A-Za-z0-9\-_.]", "_", name).lstrip(".")
    if not name:
        name = hashlib.sha256(url.encode()).hexdigest()[:16]
    candidate = f"{folder}/{name}"
    if candidate in used:
        candidate = f"{folder}/{hashlib.sha256(url.encode()).hexdigest()[:8]}-{name}"
    used.add(candidate)
    return candidate


def _unique_filename(filename: str, used: set[str]) -> str:
    candidate = filename
    counter = 2
    while candidate in used:
        stem = filename.removesuffix(".html")
        candidate = f"{stem}-{counter}.html"
        counter += 1
    used.add(candidate)
    return candidate


class _CrawledPage:
    __slots__ = ("url", "rendered", "document")

    def __init__(self, url: str, rendered: RenderedPage, document: ParsedDocument) -> None:
        self.url = url
        self.rendered = rendered
        self.document = document


class DocsFetcher:
    """Drives resolution, crawling, parsing, scoring and persistence."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        renderer: RendererProtocol | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._log = logger or structlog.get_logger()
        self.state = FetcherState.IDLE

        root = self.settings.cache_root
        self._owns_client = http_client is None
        self.http_client = http_client or build_http_client(self.settings)
        self._retry = RetryPolicy.from_settings(self.settings.retry)

        self.cache = CacheManager(
            root / CACHE_DIR_NAME,
            self.settings.cache.max_size_bytes,
            self.settings.cache.ttl_hours * 3600,
            logger=self._log,
        )
        self.directory = DirectoryManager(root, logger=self._log)
        self.registry = PackageInfoFetcher(
            self.http_client,
            root / PACKAGE_INFO_FILE_NAME,
            registry_url=self.settings.registry.url,
            package_page_base=self.settings.registry.package_page_url,
            timeout=self.settings.registry.timeout_seconds,
            retry=self._retry,
            logger=self._log,
        )
        self.resolver = DocsUrlResolver(
            self.registry,
            max_depth=self.settings.fetcher.max_depth,
            extra_allowed_domains=self.settings.fetcher.allowed_domains,
            package_page_base=self.settings.registry.package_page_url,
            logger=self._log,
        )
        self.validator = LinkValidator(
            self.http_client,
            timeout=self.settings.validator.timeout_seconds,
            allowed_content_types=self.settings.validator.allowed_content_types,
            logger=self._log,
        )
        self.scorer = DocumentationScorer(self.settings.scorer)
        self.renderer: RendererProtocol = renderer or PlaywrightRenderer(
            self.settings.renderer, logger=self._log
        )

        self._renderer_started = False
        self._renderer_lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Initialize the cache and registry and start the cleanup scheduler.

        The browser is launched lazily, on the first crawl.
        """
        if self.state is FetcherState.INITIALIZED:
            return
        try:
            await self.cache.init()
            await self.registry.init()
        except DocsFetcherError:
            self.state = FetcherState.FAILED
            raise
        self._cleanup_task = asyncio.create_task(
            run_cache_cleanup_scheduler(
                self.cache,
                self.settings.cache.cleanup_interval_hours * 3600,
                logger=self._log,
            )
        )
        self.state = FetcherState.INITIALIZED
        self._log.info("fetcher_started", root=str(self.settings.cache_root))

    async def close(self) -> None:
        if self.state is FetcherState.CLOSED:
            return
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
        try:
            if self._renderer_started:
                await self.renderer.close()
                self._renderer_started = False
            if self.state is FetcherState.INITIALIZED:
                await self.cache.close()
        finally:
            if self._owns_client:
                await self.http_client.aclose()
            self.state = FetcherState.CLOSED
        self._log.info("fetcher_closed")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _require_started(self) -> None:
        if self.state is not FetcherState.INITIALIZED:
            raise DocsFetcherError(
                code=ErrorCode.INIT_ERROR,
                message=f"DocsFetcher is {self.state}; call start() first",
            )

    async def _ensure_renderer(self) -> None:
        async with self._renderer_lock:
            if not self._renderer_started:
                await self.renderer.start()
                self._renderer_started = True

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch_docs(self, name: str, *, force: bool = False) -> FetchResult:
        """Fetch, store and cache the documentation for one package."""
        self._require_started()
        log = self._log.bind(package=name)
        key = cache_key(name)

        if not force:
            cached = await self.cache.get(key)
            if cached is not None:
                log.info("fetch_cache_hit")
                return FetchResult.model_validate(cached).model_copy(update={"from_cache": True})

        log.info("fetch_phase", phase=FetchPhase.RESOLVING)
        target = await self.resolver.resolve(name)

        log.info("fetch_phase", phase=FetchPhase.CRAWLING, url=target.resolved_url)
        await self._ensure_renderer()
        async with self.renderer.session() as session:
            crawled = await self._crawl(target, session, log)
            assets = await self._download_assets(crawled, session, log)

        log.info("fetch_phase", phase=FetchPhase.PERSISTING, pages=len(crawled))
        fetched_at = datetime.now(UTC)
        directory = await self.directory.write_package(
            name, self._artifacts(crawled, fetched_at), assets
        )

        seed = crawled[0]
        result = FetchResult(
            package=name,
            url=seed.rendered.url,
            title=seed.document.title or seed.rendered.title,
            content=seed.document.main_content,
            markdown=seed.document.markdown,
            links=seed.document.links,
            pages=[page.url for page in crawled],
            directory=str(directory),
            fetched_at=fetched_at,
        )
        try:
            await self.cache.set_new(key, result.model_dump(mode="json"))
        except DocsFetcherError:
            await self.directory.remove_package(name)
            raise

        log.info("fetch_complete", url=result.url, pages=len(result.pages))
        return result

    async def _crawl(
        self,
        target: PackageDocsTarget,
        session: RenderSession,
        log: FilteringBoundLogger,
    ) -> list[_CrawledPage]:
        if not target.resolved_url:
            raise DocsFetcherError(
                code=ErrorCode.DOCUMENTATION_NOT_FOUND,
                message=f"No documentation URL found for {target.name}",
            )
        urls = UrlManager(
            target.resolved_url,
            allowed_domains=target.allowed_domains,
            max_depth=target.max_depth,
            logger=log,
        )
        crawled: list[_CrawledPage] = []

        # Pages already queued when the budget fills are left unvisited.
        while len(urls.visited_urls) < target.max_depth:
            entry = urls.get_next()
            if entry is None:
                break
            is_seed = not crawled
            try:
                rendered = await with_retry(
                    lambda url=entry.url: session.navigate(url),
                    self._retry,
                    context=f"render:{entry.url}",
                    logger=log,
                )
                log.debug("fetch_phase", phase=FetchPhase.PARSING, url=entry.url)
                document = parse_html(rendered.html, logger=log)
            except DocsFetcherError as exc:
                if is_seed:
                    raise DocsFetcherError(
                        code=ErrorCode.DOCUMENTATION_FETCH_ERROR,
                        message=(
                            f"Failed to fetch documentation for {target.name} "
                            f"from {entry.url}: {exc.message}"
                        ),
                        suggestion=exc.suggestion,
                    ) from exc
                log.warning("page_skipped", url=entry.url, code=exc.code, error=exc.message)
                continue

            crawled.append(_CrawledPage(entry.url, rendered, document))
            for link in document.links:
                absolute = urljoin(rendered.url, link)
                if urls.is_documentation_url(absolute):
                    urls.add_to_queue(absolute, entry.depth + 1)

        if not crawled:
            raise DocsFetcherError(
                code=ErrorCode.DOCUMENTATION_FETCH_ERROR,
                message=(
                    f"Documentation URL for {target.name} is not crawlable: "
                    f"{target.resolved_url}"
                ),
            )
        return crawled

    async def _download_assets(
        self,
        crawled: Sequence[_CrawledPage],
        session: RenderSession,
        log: FilteringBoundLogger,
    ) -> dict[str, bytes]:
        """Best-effort download of stylesheets and images; failures are skipped."""
        if not self.settings.fetcher.save_assets:
            return {}
        wanted: dict[str, str] = {}
        used: set[str] = set()
        for page in crawled:
            kinds = (("css", page.rendered.stylesheets), ("images", page.rendered.images))
            for folder, sources in kinds:
                for src in sources:
                    url = urljoin(page.rendered.url, src)
                    if urlsplit(url).scheme not in ("http", "https") or url in wanted:
                        continue
                    if len(wanted) >= self.settings.fetcher.max_assets:
                        break
                    wanted[url] = _asset_path(folder, url, used)

        assets: dict[str, bytes] = {}
        for url, rel_path in wanted.items():
            try:
                assets[rel_path] = await session.fetch_subresource(url)
            except DocsFetcherError as exc:
                log.debug("asset_skipped", url=url, error=exc.message)
        return assets

    @staticmethod
    def _artifacts(crawled: Sequence[_CrawledPage], fetched_at: datetime) -> list[PageArtifact]:
        used: set[str] = set()
        artifacts: list[PageArtifact] = []
        for index, page in enumerate(crawled):
            filename = SEED_FILENAME if index == 0 else UrlManager.url_to_filename(page.url)
            artifacts.append(
                PageArtifact(
                    filename=_unique_filename(filename, used),
                    html=page.rendered.html,
                    record=PageRecord(
                        url=page.url,
                        title=page.document.title or page.rendered.title,
                        content=page.document.main_content,
                        links=page.document.links,
                        fetched_at=fetched_at,
                    ),
                )
            )
        return artifacts

    async def fetch_docs_for_packages(
        self,
        names: Sequence[str],
        *,
        limit: int | None = None,
        force: bool = False,
    ) -> list[FetchResult]:
        """Fetch many packages in batches of *limit*.

        A batch settles completely before the next one starts, and a failing
        package never cancels its siblings. Failures are reported together
        once every batch has run.
        """
        self._require_started()
        unique = list(dict.fromkeys(n.strip() for n in names if n.strip()))
        if not unique:
            raise DocsFetcherError(
                code=ErrorCode.INVALID_INPUT,
                message="No package names given",
                suggestion="Pass a package name or use --all inside a project.",
            )
        batch_size = limit if limit is not None else self.settings.fetcher.limit
        if batch_size < 1:
            raise DocsFetcherError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Batch limit must be at least 1, got {batch_size}",
            )

        results: list[FetchResult] = []
        failures: dict[str, Exception] = {}
        for start in range(0, len(unique), batch_size):
            batch = unique[start : start + batch_size]
            self._log.info(
                "fetch_batch_started",
                batch=start // batch_size + 1,
                packages=batch,
            )
            outcomes = await asyncio.gather(
                *(self.fetch_docs(name, force=force) for name in batch),
                return_exceptions=True,
            )
            for name, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, FetchResult):
                    results.append(outcome)
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                failures[name] = outcome
                if isinstance(outcome, DocsFetcherError):
                    self._log.warning(
                        "fetch_failed", package=name, code=outcome.code, error=outcome.message
                    )
                else:
                    self._log.error("fetch_failed", package=name, exc_info=outcome)

        if failures:
            details = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
            raise DocsFetcherError(
                code=ErrorCode.DOCUMENTATION_FETCH_ERROR,
                message=f"Failed to fetch documentation for {len(failures)} package(s): {details}",
                suggestion="Re-run with --force for the failed packages once the cause is fixed.",
            )
        return results

    async def score_documentation(self, name: str, *, force: bool = False) -> DocumentationScore:
        """Fetch a package's docs, validate its URL and score the page content."""
        result = await self.fetch_docs(name, force=force)
        validation = await self.validator.validate_link(result.url)
        score = self.scorer.score_documentation(
            result.url, result.markdown or result.content, validation
        )
        self._log.info(
            "documentation_scored",
            package=name,
            url=result.url,
            score=round(score.score, 3),
            link_valid=validation.is_valid,
        )
        return score

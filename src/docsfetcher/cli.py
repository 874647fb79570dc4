"""docs-fetcher command line interface.

Usage:
    docs-fetcher fetch react
    docs-fetcher fetch --all --limit 5
    docs-fetcher score react --details
    docs-fetcher search "use state" --package react
    docs-fetcher cache stats

This module is the only place that catches DocsFetcherError: it prints
``Error: <message>`` on stderr and exits with status 1.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import structlog
import typer
from pydantic import ValidationError

from docsfetcher import __version__
from docsfetcher.cache import CacheManager
from docsfetcher.config import Settings
from docsfetcher.directory import DirectoryManager
from docsfetcher.errors import DocsFetcherError
from docsfetcher.fetcher import CACHE_DIR_NAME, DocsFetcher
from docsfetcher.package_analyzer import discover_packages
from docsfetcher.search import DocumentationSearch, format_results

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.models.documents import DocumentationScore, FetchResult

T = TypeVar("T")

app = typer.Typer(
    name="docs-fetcher",
    help="Fetch, store and score npm package documentation.",
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect and maintain the documentation cache.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")


def setup_logging(settings: Settings) -> FilteringBoundLogger:
    """Configure structlog once per process and return the logger handed to components."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout carries command output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger()


def _fail(message: str, suggestion: str = "") -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    if suggestion:
        typer.echo(f"Hint: {suggestion}", err=True)
    return typer.Exit(code=1)


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise _fail(f"Invalid configuration: {exc}") from exc


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except DocsFetcherError as exc:
        raise _fail(exc.message, exc.suggestion) from exc


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docs-fetcher {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version."
    ),
) -> None:
    """Fetch, store and score npm package documentation."""


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@app.command("fetch")
def fetch(
    package: str | None = typer.Argument(None, help="npm package name, e.g. 'react'."),
    all_packages: bool = typer.Option(
        False, "--all", help="Fetch every dependency found in package.json files under cwd."
    ),
    force: bool = typer.Option(False, "--force", help="Ignore cached results."),
    limit: int | None = typer.Option(
        None, "--limit", min=1, help="Packages fetched concurrently per batch."
    ),
) -> None:
    """Fetch documentation for one package, or for all project dependencies."""
    if not package and not all_packages:
        raise _fail("Please provide a package name")

    settings = _load_settings()
    log = setup_logging(settings)

    if all_packages:
        names = discover_packages(Path.cwd(), logger=log)
        if not names:
            raise _fail(f"No dependencies found in package.json files under {Path.cwd()}")
        results = _run(_fetch_many(settings, log, names, limit=limit, force=force))
        for result in results:
            source = "cache" if result.from_cache else f"{len(result.pages)} page(s)"
            typer.echo(f"{result.package}: {result.url} ({source})")
    elif package:
        result = _run(_fetch_one(settings, log, package, force=force))
        typer.echo(f"Documentation URL: {result.url}")
        if result.from_cache:
            typer.echo(f"Served from cache: {result.directory}")
        else:
            typer.echo(f"Saved {len(result.pages)} page(s) to {result.directory}")
    typer.echo("Documentation fetching completed successfully")


async def _fetch_one(
    settings: Settings, log: FilteringBoundLogger, name: str, *, force: bool
) -> FetchResult:
    async with DocsFetcher(settings, logger=log) as fetcher:
        return await fetcher.fetch_docs(name, force=force)


async def _fetch_many(
    settings: Settings,
    log: FilteringBoundLogger,
    names: list[str],
    *,
    limit: int | None,
    force: bool,
) -> list[FetchResult]:
    async with DocsFetcher(settings, logger=log) as fetcher:
        return await fetcher.fetch_docs_for_packages(names, limit=limit, force=force)


# ---------------------------------------------------------------------------
# score
# ---------------------------------------------------------------------------


def _percent(value: float) -> str:
    return f"{round(value * 100)}%"


@app.command("score")
def score(
    package: str = typer.Argument(..., help="npm package name."),
    details: bool = typer.Option(False, "--details", "-d", help="Show the scoring breakdown."),
    threshold: float | None = typer.Option(
        None, "--threshold", "-t", min=0.0, max=1.0, help="Only report scores at or above this."
    ),
    force: bool = typer.Option(False, "--force", help="Re-fetch instead of using the cache."),
) -> None:
    """Score the documentation quality of a package."""
    settings = _load_settings()
    log = setup_logging(settings)
    result = _run(_score(settings, log, package, force=force))

    if threshold is not None and result.score < threshold:
        typer.echo(
            f"Documentation for {package} scored {_percent(result.score)}, "
            f"below the {_percent(threshold)} threshold"
        )
        return

    typer.echo(f"URL: {result.url}")
    typer.echo(f"Score: {_percent(result.score)}")
    if details:
        d = result.details
        typer.echo("Detailed Breakdown:")
        typer.echo(f"  Freshness:    {_percent(d.freshness)}")
        typer.echo(f"  Size:         {_percent(d.size)}")
        typer.echo(f"  Language:     {d.detected_language}")
        typer.echo(f"  Readability:  {_percent(d.readability)}")
        typer.echo(f"  Completeness: {_percent(d.completeness)}")
        typer.echo(
            f"  Words: {d.word_count}  Code blocks: {d.code_block_count}  "
            f"Headings: {d.heading_count}"
        )


async def _score(
    settings: Settings, log: FilteringBoundLogger, name: str, *, force: bool
) -> DocumentationScore:
    async with DocsFetcher(settings, logger=log) as fetcher:
        return await fetcher.score_documentation(name, force=force)


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Keywords to look for."),
    package: str | None = typer.Option(None, "--package", "-p", help="Limit to one package."),
    max_results: int = typer.Option(10, "--max-results", "-n", min=1),
) -> None:
    """Search the documentation pages fetched so far."""
    settings = _load_settings()
    log = setup_logging(settings)
    directory = DirectoryManager(settings.cache_root, logger=log)

    async def _search():
        index = DocumentationSearch(logger=log)
        await index.load_from_directory(directory, package=package)
        return index.search(query, max_results=max_results)

    typer.echo(format_results(_run(_search())))


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


def _cache_manager(settings: Settings, log: FilteringBoundLogger) -> CacheManager:
    return CacheManager(
        settings.cache_root / CACHE_DIR_NAME,
        settings.cache.max_size_bytes,
        settings.cache.ttl_hours * 3600,
        logger=log,
    )


@cache_app.command("stats")
def cache_stats() -> None:
    """Show entry counts, hit rates and on-disk size."""
    settings = _load_settings()
    cache = _cache_manager(settings, setup_logging(settings))

    async def _stats():
        await cache.init()
        return await cache.get_stats(), await cache.get_directory_info()

    stats, info = _run(_stats())
    typer.echo(f"Cache directory: {info.path}")
    typer.echo(f"Entries: {stats.entries}")
    typer.echo(f"Size: {stats.size} bytes (max {settings.cache.max_size_bytes})")
    typer.echo(f"Hits: {stats.hits}  Misses: {stats.misses}")
    typer.echo(f"Files on disk: {info.files} ({info.size} bytes)")


@cache_app.command("cleanup")
def cache_cleanup() -> None:
    """Remove expired cache entries."""
    settings = _load_settings()
    cache = _cache_manager(settings, setup_logging(settings))

    async def _cleanup() -> int:
        await cache.init()
        return await cache.cleanup()

    removed = _run(_cleanup())
    typer.echo(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'}")


@cache_app.command("clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete every cache entry."""
    if not yes:
        typer.confirm("Delete all cached documentation entries?", abort=True)
    settings = _load_settings()
    cache = _cache_manager(settings, setup_logging(settings))

    async def _clear() -> None:
        await cache.init()
        await cache.clear()

    _run(_clear())
    typer.echo("Cache cleared")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

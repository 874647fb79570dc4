"""Background scheduler coroutine for cache cleanup."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from docsfetcher.errors import DocsFetcherError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from docsfetcher.protocols import CacheProtocol


async def run_cache_cleanup_scheduler(
    cache: CacheProtocol,
    interval_seconds: float,
    *,
    logger: FilteringBoundLogger | None = None,
) -> None:
    """Sweep expired entries at startup (if due) and then on every interval.

    Runs until cancelled. A failed sweep is logged and retried on the next tick.
    """
    log = logger or structlog.get_logger()

    while True:
        try:
            await cache.cleanup_if_due(interval_seconds)
        except DocsFetcherError as exc:
            log.warning("cache_cleanup_scheduler_error", code=exc.code, error=exc.message)
        await asyncio.sleep(interval_seconds)

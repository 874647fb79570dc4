"""HEAD-request link validation over the shared httpx client.

Validation never raises for network problems: every failure is reported in
the returned LinkValidationResult.
"""

from __future__ import annotations

import asyncio
import time
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

import httpx
import structlog

from docsfetcher.models.documents import LinkValidationResult

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from structlog.typing import FilteringBoundLogger

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_ALLOWED_CONTENT_TYPES = ("text/html", "text/plain", "application/json")


def _parse_last_modified(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def content_type_allowed(content_type: str | None, allowed: Sequence[str]) -> bool:
    """Case-insensitive substring match; an empty allow-list accepts anything."""
    if not allowed:
        return True
    if not content_type:
        return False
    lowered = content_type.lower()
    return any(t.lower() in lowered for t in allowed)


class LinkValidator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        allowed_content_types: Sequence[str] = DEFAULT_ALLOWED_CONTENT_TYPES,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._allowed_content_types = list(allowed_content_types)
        self._log = logger or structlog.get_logger()

    async def validate_link(
        self,
        url: str,
        *,
        timeout: float | None = None,
        allowed_content_types: Sequence[str] | None = None,
    ) -> LinkValidationResult:
        """Issue a HEAD request for *url* and classify the response.

        ``allowed_content_types=None`` uses the validator's configured list;
        an empty sequence disables the content-type check.
        """
        allowed = (
            self._allowed_content_types
            if allowed_content_types is None
            else list(allowed_content_types)
        )
        started = time.monotonic()
        try:
            response = await self._client.head(
                url,
                follow_redirects=True,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException:
            self._log.warning("link_validation_failed", url=url, reason="timeout")
            return LinkValidationResult(
                url=url,
                is_valid=False,
                response_time_ms=_elapsed_ms(started),
                error="Request timed out",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self._log.warning("link_validation_failed", url=url, reason=str(exc))
            return LinkValidationResult(
                url=url,
                is_valid=False,
                response_time_ms=_elapsed_ms(started),
                error=str(exc) or type(exc).__name__,
            )

        content_type = response.headers.get("content-type")
        is_valid = True
        error: str | None = None
        if not content_type_allowed(content_type, allowed):
            is_valid = False
            error = "Invalid content type"
        # HTTP status takes precedence over the content-type verdict.
        if response.status_code >= 400:
            is_valid = False
            error = f"HTTP error: {response.status_code}"

        result = LinkValidationResult(
            url=url,
            is_valid=is_valid,
            status_code=response.status_code,
            content_type=content_type,
            response_time_ms=_elapsed_ms(started),
            last_modified=_parse_last_modified(response.headers.get("last-modified")),
            error=error,
        )
        self._log.debug(
            "link_validated",
            url=url,
            is_valid=result.is_valid,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
        )
        return result

    async def validate_links(
        self,
        urls: Sequence[str],
        *,
        timeout: float | None = None,
        allowed_content_types: Sequence[str] | None = None,
    ) -> list[LinkValidationResult]:
        """Validate every URL concurrently; results follow input order."""
        return list(
            await asyncio.gather(
                *(
                    self.validate_link(
                        url, timeout=timeout, allowed_content_types=allowed_content_types
                    )
                    for url in urls
                )
            )
        )


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)

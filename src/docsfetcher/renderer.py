"""Headless Chromium renderer built on async Playwright.

One browser is launched per orchestrator; every crawl run gets its own
browser context, which is closed when the run ends however it ends.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from docsfetcher.config import RendererSettings
from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.documents import RenderedPage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from playwright.async_api import Browser, BrowserContext, Playwright
    from structlog.typing import FilteringBoundLogger

_STYLESHEETS_JS = "els => els.map(e => e.href).filter(Boolean)"
_IMAGES_JS = "els => els.map(e => e.currentSrc || e.src).filter(Boolean)"


def status_error(url: str, status: int) -> DocsFetcherError | None:
    """Map a page's HTTP status onto the error taxonomy; None for success."""
    if status < 400:
        return None
    if status == 404:
        return DocsFetcherError(
            code=ErrorCode.DOCUMENTATION_NOT_FOUND,
            message=f"HTTP 404 fetching {url}",
            suggestion="The documentation page does not exist at this URL.",
        )
    if status == 429:
        return DocsFetcherError(
            code=ErrorCode.RATE_LIMIT,
            message=f"Rate limited fetching {url}",
        )
    if status >= 500:
        return DocsFetcherError(
            code=ErrorCode.NETWORK_ERROR,
            message=f"HTTP {status} fetching {url}",
            suggestion="The documentation site may be temporarily unavailable.",
        )
    return DocsFetcherError(
        code=ErrorCode.DOCUMENTATION_FETCH_ERROR,
        message=f"HTTP {status} fetching {url}",
    )


class PlaywrightSession:
    """RenderSession over a single Playwright browser context."""

    def __init__(
        self,
        context: BrowserContext,
        settings: RendererSettings,
        logger: FilteringBoundLogger,
    ) -> None:
        self._context = context
        self._settings = settings
        self._log = logger

    @property
    def _timeout_ms(self) -> float:
        return self._settings.timeout_seconds * 1000

    async def navigate(self, url: str) -> RenderedPage:
        page = await self._context.new_page()
        try:
            response = await page.goto(
                url, wait_until=self._settings.wait_until, timeout=self._timeout_ms
            )
            if response is None:
                raise DocsFetcherError(
                    code=ErrorCode.DOCUMENTATION_FETCH_ERROR,
                    message=f"No response received for {url}",
                )
            if (error := status_error(url, response.status)) is not None:
                raise error

            rendered = RenderedPage(
                url=page.url,
                status_code=response.status,
                html=await page.content(),
                title=await page.title(),
                stylesheets=await page.eval_on_selector_all(
                    'link[rel="stylesheet"][href]', _STYLESHEETS_JS
                ),
                images=await page.eval_on_selector_all("img[src]", _IMAGES_JS),
            )
        except PlaywrightTimeoutError as exc:
            raise DocsFetcherError(
                code=ErrorCode.TIMEOUT,
                message=f"Timed out rendering {url}",
                suggestion="Raise renderer.timeout_seconds for slow documentation sites.",
            ) from exc
        except PlaywrightError as exc:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Browser error rendering {url}: {exc.message}",
            ) from exc
        finally:
            await page.close()

        self._log.debug("page_rendered", url=url, final_url=rendered.url, bytes=len(rendered.html))
        return rendered

    async def fetch_subresource(self, url: str) -> bytes:
        try:
            response = await self._context.request.get(url, timeout=self._timeout_ms)
        except PlaywrightError as exc:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Failed to download {url}: {exc.message}",
            ) from exc
        if not response.ok:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"HTTP {response.status} downloading {url}",
            )
        return await response.body()


class PlaywrightRenderer:
    """RendererProtocol implementation driving headless Chromium."""

    def __init__(
        self,
        settings: RendererSettings | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._settings = settings or RendererSettings()
        self._log = logger or structlog.get_logger()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._settings.headless
            )
        except PlaywrightError as exc:
            await self.close()
            raise DocsFetcherError(
                code=ErrorCode.INIT_ERROR,
                message=f"Failed to launch browser: {exc.message}",
                suggestion="Run 'playwright install chromium' to install the browser.",
            ) from exc
        self._log.info("renderer_started", headless=self._settings.headless)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PlaywrightSession]:
        if self._browser is None:
            raise DocsFetcherError(
                code=ErrorCode.INIT_ERROR,
                message="Renderer used before start()",
            )
        context = await self._browser.new_context(
            user_agent=self._settings.user_agent,
            viewport={
                "width": self._settings.viewport_width,
                "height": self._settings.viewport_height,
            },
        )
        try:
            yield PlaywrightSession(context, self._settings, self._log)
        finally:
            await context.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._log.debug("renderer_closed")

"""Integration test fixtures.

Provides a DocsFetcher wired to a temporary artifact root, a real httpx
client (mocked per test with respx) and an in-memory renderer serving a
small set of documentation sites in place of the Playwright browser.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
import pytest

from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.fetcher import DocsFetcher
from docsfetcher.models.documents import RenderedPage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from docsfetcher.config import Settings

REACT_SEED = "https://react.dev/reference/react"
REACT_USE_STATE = "https://react.dev/reference/react/useState"
VUE_SEED = "https://vuejs.org/guide/introduction.html"
SVELTE_SEED = "https://svelte.dev/docs"


def _html(title: str, body: str) -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


SITE_PAGES: dict[str, str] = {
    REACT_SEED: _html(
        "React Reference",
        "<h1>React Reference Overview</h1>"
        "<p>This section provides detailed reference documentation for working with React.</p>"
        "<pre><code>import { useState } from 'react';</code></pre>"
        '<a href="/reference/react/useState">useState</a>'
        '<a href="/blog/2024/react-19">Blog</a>'
        '<a href="https://github.com/facebook/react/docs">GitHub docs</a>',
    ),
    REACT_USE_STATE: _html(
        "useState",
        "<h1>useState</h1><p>useState is a React Hook that lets you add a state variable.</p>"
        '<a href="/reference/react">Back</a>',
    ),
    VUE_SEED: _html("Introduction | Vue.js", "<h1>Introduction</h1><p>What is Vue?</p>"),
    SVELTE_SEED: _html("Docs | Svelte", "<h1>Svelte docs</h1><p>Getting started.</p>"),
}


class FakeRenderSession:
    def __init__(self, renderer: FakeRenderer) -> None:
        self._renderer = renderer

    async def navigate(self, url: str) -> RenderedPage:
        renderer = self._renderer
        renderer.events.append(("start", url))
        await asyncio.sleep(renderer.delay)
        renderer.events.append(("end", url))

        html = renderer.pages.get(url)
        if html is None:
            raise DocsFetcherError(
                code=ErrorCode.DOCUMENTATION_NOT_FOUND,
                message=f"HTTP 404 fetching {url}",
            )
        return RenderedPage(
            url=url,
            status_code=200,
            html=html,
            title=url,
            stylesheets=renderer.stylesheets.get(url, []),
            images=renderer.images.get(url, []),
        )

    async def fetch_subresource(self, url: str) -> bytes:
        if url not in self._renderer.assets:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"HTTP 404 downloading {url}",
            )
        return self._renderer.assets[url]


class FakeRenderer:
    """RendererProtocol serving pages from a dict, recording every navigation."""

    def __init__(self, pages: dict[str, str] | None = None, delay: float = 0.01) -> None:
        self.pages = dict(SITE_PAGES if pages is None else pages)
        self.delay = delay
        self.stylesheets: dict[str, list[str]] = {}
        self.images: dict[str, list[str]] = {}
        self.assets: dict[str, bytes] = {}
        self.events: list[tuple[str, str]] = []
        self.started = 0
        self.closed = 0
        self.open_sessions = 0

    @property
    def navigated(self) -> list[str]:
        return [url for kind, url in self.events if kind == "start"]

    async def start(self) -> None:
        self.started += 1

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeRenderSession]:
        self.open_sessions += 1
        try:
            yield FakeRenderSession(self)
        finally:
            self.open_sessions -= 1

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
async def fetcher(
    settings: Settings, renderer: FakeRenderer, http_client: httpx.AsyncClient
) -> AsyncIterator[DocsFetcher]:
    async with DocsFetcher(settings, renderer=renderer, http_client=http_client) as docs:
        yield docs

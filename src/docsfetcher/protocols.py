"""Protocol interfaces for swappable components.

The orchestrator references these protocols, not the concrete
implementations. Tests drive the pipeline with an in-memory renderer instead
of a real browser.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from docsfetcher.models.cache import CacheStats, DirectoryInfo
    from docsfetcher.models.documents import RenderedPage
    from docsfetcher.models.registry import PackageInfo, PackageLinks


class RenderSession(Protocol):
    """One isolated browsing context; lives for a single crawl run."""

    async def navigate(self, url: str) -> RenderedPage: ...

    async def fetch_subresource(self, url: str) -> bytes: ...


class RendererProtocol(Protocol):
    """Interface for the headless page renderer."""

    async def start(self) -> None: ...

    def session(self) -> AbstractAsyncContextManager[RenderSession]: ...

    async def close(self) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the key/value documentation cache."""

    async def init(self) -> None: ...

    async def get(self, key: str) -> Any | None: ...

    async def set_new(self, key: str, data: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def cleanup(self) -> int: ...

    async def cleanup_if_due(self, interval_seconds: float) -> None: ...

    async def get_stats(self) -> CacheStats: ...

    async def get_directory_info(self) -> DirectoryInfo: ...


class PackageRegistryProtocol(Protocol):
    """Interface for package metadata lookup."""

    async def get_package_info(self, name: str) -> PackageInfo: ...

    async def get_documentation_urls(self, name: str) -> PackageLinks: ...

"""npm registry lookup with a flat on-disk info cache.

Package metadata is fetched from ``<registry>/<name>`` and remembered in a
single JSON file (an array of ``[name, PackageInfo]`` pairs). The file has no
expiry; delete it to force fresh lookups.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from docsfetcher.atomic import write_bytes_atomic
from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.registry import PackageInfo, PackageLinks, Repository
from docsfetcher.retry import RetryPolicy, with_retry

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
PACKAGE_PAGE_URL = "https://www.npmjs.com/package"
PACKAGE_INFO_FILE_NAME = ".package-info.json"


def package_page_url(name: str, base: str = PACKAGE_PAGE_URL) -> str:
    return f"{base.rstrip('/')}/{name}"


def repository_web_url(url: str) -> str:
    """Turn an npm ``repository.url`` into a browsable https URL.

    ``git+https://github.com/a/b.git`` -> ``https://github.com/a/b``
    """
    url = re.sub(r"^git\+", "", url.strip())
    url = re.sub(r"\.git$", "", url)
    url = re.sub(r"^git://", "https://", url)
    url = re.sub(r"^ssh://git@", "https://", url)
    return url


def readme_url(repository_url: str) -> str:
    return repository_web_url(repository_url) + "/blob/main/README.md"


def _string(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_package_info(data: dict[str, Any]) -> PackageInfo:
    """Build PackageInfo from a registry document, preferring the latest version's fields."""
    dist_tags = data.get("dist-tags") if isinstance(data.get("dist-tags"), dict) else {}
    latest_version = _string(dist_tags.get("latest"))
    versions = data.get("versions") if isinstance(data.get("versions"), dict) else {}
    latest = versions.get(latest_version or "", {})
    if not isinstance(latest, dict):
        latest = {}

    author = latest.get("author", data.get("author"))
    if isinstance(author, dict):
        author = author.get("name")

    bugs = latest.get("bugs", data.get("bugs"))
    if isinstance(bugs, dict):
        bugs = bugs.get("url")

    return PackageInfo(
        name=data["name"],
        version=latest_version or _string(data.get("version")) or "latest",
        description=_string(latest.get("description")) or _string(data.get("description")) or "",
        author=_string(author),
        homepage=_string(latest.get("homepage")) or _string(data.get("homepage")),
        repository=_parse_repository(latest.get("repository", data.get("repository"))),
        bugs_url=_string(bugs),
        documentation_urls=_documentation_urls(data, latest),
        readme=_string(data.get("readme")),
    )


def _parse_repository(repo: Any) -> Repository | None:
    if not isinstance(repo, dict):
        return None
    type_, url = repo.get("type"), repo.get("url")
    if not isinstance(type_, str) or not isinstance(url, str):
        return None
    return Repository(type=type_, url=url)


def _documentation_urls(data: dict[str, Any], latest: dict[str, Any]) -> list[str]:
    urls: list[str] = []
    if homepage := _string(data.get("homepage")):
        urls.append(homepage)
    repo = data.get("repository")
    if isinstance(repo, dict) and (repo_url := _string(repo.get("url"))):
        urls.append(readme_url(repo_url))
    if docs := _string(latest.get("documentation")):
        urls.append(docs)
    return list(dict.fromkeys(urls))


class PackageInfoFetcher:
    """npm registry client implementing PackageRegistryProtocol."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache_file: Path,
        *,
        registry_url: str = DEFAULT_REGISTRY_URL,
        package_page_base: str = PACKAGE_PAGE_URL,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._client = client
        self.cache_file = cache_file
        self.registry_url = registry_url.rstrip("/")
        self._package_page_base = package_page_base
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._log = logger or structlog.get_logger()
        self._cache: dict[str, PackageInfo] = {}
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Load the info cache file; a missing file starts an empty cache."""
        try:
            self._cache = await asyncio.to_thread(self._load_cache)
        except (OSError, ValueError, ValidationError) as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_INIT_ERROR,
                message=f"Failed to load package info cache {self.cache_file}: {exc}",
                suggestion=f"Delete {self.cache_file} to rebuild it.",
            ) from exc
        self._log.debug("package_info_cache_loaded", entries=len(self._cache))

    def _load_cache(self) -> dict[str, PackageInfo]:
        if not self.cache_file.is_file():
            return {}
        pairs = json.loads(self.cache_file.read_text(encoding="utf-8"))
        if not isinstance(pairs, list):
            raise ValueError("expected a JSON array of [name, info] pairs")
        return {name: PackageInfo.model_validate(info) for name, info in pairs}

    async def _save_cache(self) -> None:
        payload = json.dumps(
            [[name, info.model_dump(mode="json")] for name, info in self._cache.items()]
        ).encode("utf-8")
        try:
            await asyncio.to_thread(write_bytes_atomic, self.cache_file, payload)
        except OSError as exc:
            raise DocsFetcherError(
                code=ErrorCode.CACHE_SET_ERROR,
                message=f"Failed to save package info cache: {exc}",
            ) from exc

    async def get_package_info(self, name: str) -> PackageInfo:
        cached = self._cache.get(name)
        if cached is not None:
            self._log.debug("package_info_cache_hit", package=name)
            return cached

        info = await with_retry(
            lambda: self._fetch_package_info(name),
            self._retry,
            context=f"registry:{name}",
            logger=self._log,
        )
        async with self._lock:
            self._cache[name] = info
            await self._save_cache()
        return info

    async def _fetch_package_info(self, name: str) -> PackageInfo:
        url = f"{self.registry_url}/{quote(name, safe='@')}"
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise DocsFetcherError(
                code=ErrorCode.TIMEOUT,
                message=f"Timeout fetching package info for {name}",
                suggestion="The npm registry may be slow; try again shortly.",
            ) from exc
        except httpx.HTTPError as exc:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error fetching package info for {name}: {exc}",
            ) from exc

        if response.status_code == 404:
            raise DocsFetcherError(
                code=ErrorCode.PACKAGE_NOT_FOUND,
                message=f"Package '{name}' not found",
                suggestion="Check the package name on npmjs.com.",
            )
        if response.status_code == 429:
            raise DocsFetcherError(
                code=ErrorCode.RATE_LIMIT,
                message=f"Rate limited by the registry while fetching {name}",
            )
        if not response.is_success:
            raise DocsFetcherError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Failed to fetch package info for {name}: HTTP {response.status_code}",
            )

        try:
            data = response.json()
            if not isinstance(data, dict) or not _string(data.get("name")):
                raise ValueError("missing package name")
            info = parse_package_info(data)
        except (ValueError, ValidationError) as exc:
            raise DocsFetcherError(
                code=ErrorCode.INVALID_DATA,
                message=f"Invalid package data received for {name}: {exc}",
            ) from exc

        self._log.info("package_info_fetched", package=name, version=info.version)
        return info

    async def get_documentation_urls(self, name: str) -> PackageLinks:
        info = await self.get_package_info(name)
        return PackageLinks(
            npm=package_page_url(name, self._package_page_base),
            homepage=info.homepage,
            repository=info.repository.url if info.repository else None,
            documentation=info.documentation_urls,
        )

"""Unit tests for docsfetcher.registry."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest
import respx

from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.registry import (
    PackageInfoFetcher,
    package_page_url,
    parse_package_info,
    readme_url,
    repository_web_url,
)
from docsfetcher.retry import NO_RETRY, RetryPolicy

if TYPE_CHECKING:
    from pathlib import Path

REGISTRY = "https://registry.npmjs.org"

REACT_DOC: dict[str, Any] = {
    "name": "react",
    "description": "React is a JavaScript library for building user interfaces.",
    "dist-tags": {"latest": "18.2.0"},
    "versions": {
        "18.2.0": {
            "name": "react",
            "version": "18.2.0",
            "description": "React latest",
            "homepage": "https://react.dev/",
            "repository": {"type": "git", "url": "git+https://github.com/facebook/react.git"},
            "author": {"name": "Meta"},
            "bugs": {"url": "https://github.com/facebook/react/issues"},
        }
    },
    "homepage": "https://react.dev/",
    "repository": {"type": "git", "url": "git+https://github.com/facebook/react.git"},
    "readme": "# React",
}


def _fetcher(
    client: httpx.AsyncClient, tmp_path: Path, retry: RetryPolicy = NO_RETRY
) -> PackageInfoFetcher:
    return PackageInfoFetcher(client, tmp_path / ".package-info.json", retry=retry)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


class TestUrlHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("git+https://github.com/facebook/react.git", "https://github.com/facebook/react"),
            ("git://github.com/lodash/lodash.git", "https://github.com/lodash/lodash"),
            ("ssh://git@github.com/vuejs/core.git", "https://github.com/vuejs/core"),
            ("https://gitlab.com/a/b", "https://gitlab.com/a/b"),
        ],
    )
    def test_repository_web_url(self, raw: str, expected: str) -> None:
        assert repository_web_url(raw) == expected

    def test_readme_url(self) -> None:
        assert (
            readme_url("git+https://github.com/facebook/react.git")
            == "https://github.com/facebook/react/blob/main/README.md"
        )

    def test_package_page_url(self) -> None:
        assert package_page_url("@types/node") == "https://www.npmjs.com/package/@types/node"


class TestParsePackageInfo:
    def test_prefers_latest_version_fields(self) -> None:
        info = parse_package_info(REACT_DOC)
        assert info.name == "react"
        assert info.version == "18.2.0"
        assert info.description == "React latest"
        assert info.author == "Meta"
        assert info.homepage == "https://react.dev/"
        assert info.repository is not None
        assert info.repository.url == "git+https://github.com/facebook/react.git"
        assert info.bugs_url == "https://github.com/facebook/react/issues"
        assert info.readme == "# React"

    def test_documentation_urls_deduplicated(self) -> None:
        doc = {**REACT_DOC, "versions": {"18.2.0": {"documentation": "https://react.dev/"}}}
        info = parse_package_info(doc)
        assert info.documentation_urls == [
            "https://react.dev/",
            "https://github.com/facebook/react/blob/main/README.md",
        ]

    def test_minimal_document(self) -> None:
        info = parse_package_info({"name": "tiny"})
        assert info.version == "latest"
        assert info.description == ""
        assert info.repository is None
        assert info.documentation_urls == []

    def test_string_author_kept(self) -> None:
        info = parse_package_info({"name": "tiny", "author": "Jane Doe"})
        assert info.author == "Jane Doe"


# ---------------------------------------------------------------------------
# PackageInfoFetcher
# ---------------------------------------------------------------------------


class TestPackageInfoFetcher:
    async def test_fetch_and_persist(self, tmp_path: Path) -> None:
        with respx.mock:
            route = respx.get(f"{REGISTRY}/react").mock(
                return_value=httpx.Response(200, json=REACT_DOC)
            )
            async with httpx.AsyncClient() as client:
                fetcher = _fetcher(client, tmp_path)
                await fetcher.init()
                first = await fetcher.get_package_info("react")
                second = await fetcher.get_package_info("react")

        assert first == second
        assert route.call_count == 1
        pairs = json.loads((tmp_path / ".package-info.json").read_text(encoding="utf-8"))
        assert pairs[0][0] == "react"
        assert pairs[0][1]["version"] == "18.2.0"

    async def test_init_loads_saved_entries(self, tmp_path: Path) -> None:
        with respx.mock:
            route = respx.get(f"{REGISTRY}/react").mock(
                return_value=httpx.Response(200, json=REACT_DOC)
            )
            async with httpx.AsyncClient() as client:
                await _fetcher(client, tmp_path).get_package_info("react")

                reloaded = _fetcher(client, tmp_path)
                await reloaded.init()
                info = await reloaded.get_package_info("react")

        assert info.version == "18.2.0"
        assert route.call_count == 1

    async def test_corrupt_cache_file(self, tmp_path: Path) -> None:
        (tmp_path / ".package-info.json").write_text("{not json", encoding="utf-8")
        async with httpx.AsyncClient() as client:
            fetcher = _fetcher(client, tmp_path)
            with pytest.raises(DocsFetcherError) as exc_info:
                await fetcher.init()
        assert exc_info.value.code == ErrorCode.CACHE_INIT_ERROR

    async def test_scoped_name_encoded(self, tmp_path: Path) -> None:
        with respx.mock:
            route = respx.get(url__regex=r"https://registry\.npmjs\.org/@types%2Fnode").mock(
                return_value=httpx.Response(200, json={"name": "@types/node"})
            )
            async with httpx.AsyncClient() as client:
                info = await _fetcher(client, tmp_path).get_package_info("@types/node")

        assert info.name == "@types/node"
        assert route.called

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (404, ErrorCode.PACKAGE_NOT_FOUND),
            (429, ErrorCode.RATE_LIMIT),
            (503, ErrorCode.NETWORK_ERROR),
        ],
    )
    async def test_status_mapping(self, tmp_path: Path, status: int, code: ErrorCode) -> None:
        with respx.mock:
            respx.get(f"{REGISTRY}/react").mock(return_value=httpx.Response(status))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DocsFetcherError) as exc_info:
                    await _fetcher(client, tmp_path).get_package_info("react")
        assert exc_info.value.code == code

    async def test_timeout(self, tmp_path: Path) -> None:
        with respx.mock:
            respx.get(f"{REGISTRY}/react").mock(side_effect=httpx.ReadTimeout("slow"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DocsFetcherError) as exc_info:
                    await _fetcher(client, tmp_path).get_package_info("react")
        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert exc_info.value.recoverable is True

    async def test_connect_error(self, tmp_path: Path) -> None:
        with respx.mock:
            respx.get(f"{REGISTRY}/react").mock(side_effect=httpx.ConnectError("refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DocsFetcherError) as exc_info:
                    await _fetcher(client, tmp_path).get_package_info("react")
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR

    @pytest.mark.parametrize("body", ["not json", json.dumps({"description": "no name"})])
    async def test_invalid_data(self, tmp_path: Path, body: str) -> None:
        with respx.mock:
            respx.get(f"{REGISTRY}/react").mock(return_value=httpx.Response(200, text=body))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DocsFetcherError) as exc_info:
                    await _fetcher(client, tmp_path).get_package_info("react")
        assert exc_info.value.code == ErrorCode.INVALID_DATA

    async def test_transient_error_retried(self, tmp_path: Path) -> None:
        policy = RetryPolicy(max_attempts=3, initial_delay=0.0, jitter=False)
        with respx.mock:
            route = respx.get(f"{REGISTRY}/react").mock(
                side_effect=[httpx.Response(503), httpx.Response(200, json=REACT_DOC)]
            )
            async with httpx.AsyncClient() as client:
                info = await _fetcher(client, tmp_path, policy).get_package_info("react")

        assert info.version == "18.2.0"
        assert route.call_count == 2

    async def test_not_found_not_retried(self, tmp_path: Path) -> None:
        policy = RetryPolicy(max_attempts=3, initial_delay=0.0, jitter=False)
        with respx.mock:
            route = respx.get(f"{REGISTRY}/left-padd").mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DocsFetcherError):
                    await _fetcher(client, tmp_path, policy).get_package_info("left-padd")
        assert route.call_count == 1

    async def test_documentation_urls(self, tmp_path: Path) -> None:
        with respx.mock:
            respx.get(f"{REGISTRY}/react").mock(return_value=httpx.Response(200, json=REACT_DOC))
            async with httpx.AsyncClient() as client:
                links = await _fetcher(client, tmp_path).get_documentation_urls("react")

        assert links.npm == "https://www.npmjs.com/package/react"
        assert links.homepage == "https://react.dev/"
        assert links.repository == "git+https://github.com/facebook/react.git"
        assert "https://github.com/facebook/react/blob/main/README.md" in links.documentation

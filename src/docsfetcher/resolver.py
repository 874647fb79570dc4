"""Documentation URL resolution.

Given a package name, pick the URL the crawl starts from:
  1. Known-package table (exact name, alias, then a strict fuzzy match), no network
  2. First registry link that looks like documentation
  3. Registry homepage
  4. Repository README
  5. The package's page on npmjs.com
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import structlog
from rapidfuzz import fuzz, process

from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.registry import PackageDocsTarget
from docsfetcher.registry import PACKAGE_PAGE_URL, package_page_url, readme_url

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.models.registry import PackageInfo
    from docsfetcher.protocols import PackageRegistryProtocol

KNOWN_DOCS: dict[str, str] = {
    "next": "https://nextjs.org/docs",
    "react": "https://react.dev/reference/react",
    "vue": "https://vuejs.org/guide/introduction.html",
    "angular": "https://angular.io/docs",
    "svelte": "https://svelte.dev/docs",
    "typescript": "https://www.typescriptlang.org/docs/",
}

KNOWN_ALIASES: dict[str, str] = {
    "nextjs": "next",
    "next.js": "next",
    "reactjs": "react",
    "react.js": "react",
    "vuejs": "vue",
    "vue.js": "vue",
    "angularjs": "angular",
    "@angular/core": "angular",
    "sveltejs": "svelte",
    "ts": "typescript",
}

FUZZY_SCORE_CUTOFF = 92  # keeps "preact" from matching "react"

_DOC_HOST_MARKERS = (
    "docs.",
    "documentation.",
    "developer.",
    "developers.",
    "wiki.",
    "github.io",
    "githubusercontent.com",
    "readthedocs.io",
    "gitbook.io",
)
_DOC_PATH_MARKERS = ("/docs/", "/documentation/", "/wiki/", "/guide/", "/manual/")


def normalise_query(raw: str) -> str:
    """Normalise a package name for lookup.

    Steps (order matters):
      1. Trim whitespace
      2. Strip a version suffix:  "react@18.2.0" -> "react", "@scope/pkg@1" -> "@scope/pkg"
      3. Lowercase
    """
    query = raw.strip()
    at = query.rfind("@")
    if at > 0:
        query = query[:at]
    return query.lower()


def known_docs_url(name: str) -> str | None:
    """Look *name* up in the known-package table without touching the network."""
    query = normalise_query(name)
    if not query:
        return None
    if query in KNOWN_DOCS:
        return KNOWN_DOCS[query]
    if query in KNOWN_ALIASES:
        return KNOWN_DOCS[KNOWN_ALIASES[query]]

    corpus = list(KNOWN_DOCS) + list(KNOWN_ALIASES)
    match = process.extractOne(
        query, corpus, scorer=fuzz.ratio, score_cutoff=FUZZY_SCORE_CUTOFF
    )
    if match is None:
        return None
    term = match[0]
    return KNOWN_DOCS[KNOWN_ALIASES.get(term, term)]


def is_valid_docs_url(url: str) -> bool:
    """True when the hostname or path looks like a documentation site."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return any(m in host for m in _DOC_HOST_MARKERS) or any(m in path for m in _DOC_PATH_MARKERS)


def _http_url(url: str | None) -> str | None:
    if not url:
        return None
    return url if urlsplit(url).scheme in ("http", "https") else None


def docs_url_from_package_info(
    info: PackageInfo, *, package_page_base: str = PACKAGE_PAGE_URL
) -> tuple[str, str]:
    """Pick a starting URL from registry metadata. Returns ``(url, source)``."""
    candidates = [
        info.homepage,
        info.repository.url if info.repository else None,
        *info.documentation_urls,
        info.bugs_url,
    ]
    for candidate in candidates:
        if candidate and is_valid_docs_url(candidate):
            return candidate, "registry"

    if homepage := _http_url(info.homepage):
        return homepage, "homepage"
    if info.repository is not None:
        readme = readme_url(info.repository.url)
        if _http_url(readme):
            return readme, "readme"
    return package_page_url(info.name, package_page_base), "package_page"


def _host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


class DocsUrlResolver:
    def __init__(
        self,
        registry: PackageRegistryProtocol,
        *,
        max_depth: int = 3,
        extra_allowed_domains: Iterable[str] = (),
        package_page_base: str = PACKAGE_PAGE_URL,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._registry = registry
        self._max_depth = max_depth
        self._extra_domains = frozenset(d.lower() for d in extra_allowed_domains)
        self._package_page_base = package_page_base
        self._log = logger or structlog.get_logger()

    async def resolve(self, name: str) -> PackageDocsTarget:
        """Resolve *name* to a frozen crawl target.

        Raises DOCUMENTATION_NOT_FOUND when the registry has no such package.
        """
        if not normalise_query(name):
            raise DocsFetcherError(
                code=ErrorCode.INVALID_INPUT,
                message="Package name must not be empty",
            )

        url = known_docs_url(name)
        source = "known"
        if url is None:
            try:
                info = await self._registry.get_package_info(normalise_query(name))
            except DocsFetcherError as exc:
                if exc.code in (ErrorCode.PACKAGE_NOT_FOUND, ErrorCode.NOT_FOUND):
                    raise DocsFetcherError(
                        code=ErrorCode.DOCUMENTATION_NOT_FOUND,
                        message=f"No documentation URL found for {name}",
                        suggestion="Check the package name or fetch a known package.",
                    ) from exc
                raise
            url, source = docs_url_from_package_info(
                info, package_page_base=self._package_page_base
            )

        target = PackageDocsTarget(
            name=name,
            resolved_url=url,
            allowed_domains=frozenset({_host(url)}) | self._extra_domains,
            max_depth=self._max_depth,
            source=source,
        )
        self._log.info("docs_url_resolved", package=name, url=url, source=source)
        return target

"""HTML extraction for rendered documentation pages.

Pure and synchronous: receives the page HTML, returns a ParsedDocument.
``<script>`` and ``<style>`` elements are dropped before anything is read.
A field whose extraction fails comes back empty instead of failing the page.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import structlog
from bs4 import BeautifulSoup
from markdownify import markdownify as md

from docsfetcher.errors import DocsFetcherError, ErrorCode
from docsfetcher.models.documents import ParsedDocument

if TYPE_CHECKING:
    from collections.abc import Callable

    from bs4 import Tag
    from structlog.typing import FilteringBoundLogger

T = TypeVar("T")

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")
_SKIPPED_LINK_PREFIXES = ("#", "javascript:", "data:", "vbscript:", "file:")


def parse_html(html: str, *, logger: FilteringBoundLogger | None = None) -> ParsedDocument:
    """Parse *html* into a ParsedDocument.

    Raises DocsFetcherError(INVALID_INPUT) for empty or whitespace-only input.
    """
    if not html or not html.strip():
        raise DocsFetcherError(
            code=ErrorCode.INVALID_INPUT,
            message="HTML content cannot be empty",
            suggestion="The page rendered without any markup.",
        )

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()

    log = logger or structlog.get_logger()

    def _safe(field: str, extract: Callable[[], T], default: T) -> T:
        try:
            return extract()
        except Exception:
            log.debug("parse_field_failed", field=field, exc_info=True)
            return default

    return ParsedDocument(
        title=_safe("title", lambda: _extract_title(soup), ""),
        headings=_safe("headings", lambda: _extract_headings(soup), _empty_headings()),
        main_content=_safe("main_content", lambda: _main_content(soup), ""),
        description=_safe("description", lambda: _meta_content(soup, "description"), ""),
        keywords=_safe("keywords", lambda: _extract_keywords(soup), []),
        code_blocks=_safe("code_blocks", lambda: _extract_code_blocks(soup), []),
        links=_safe("links", lambda: _extract_links(soup), []),
        api_references=_safe("api_references", lambda: _extract_api_references(soup), []),
        markdown=_safe("markdown", lambda: _to_markdown(soup), ""),
    )


def _empty_headings() -> dict[str, list[str]]:
    return {level: [] for level in HEADING_LEVELS}


def _content_root(soup: BeautifulSoup) -> BeautifulSoup | Tag:
    return soup.body or soup


def _main_content(soup: BeautifulSoup) -> str:
    return _content_root(soup).get_text(" ", strip=True)


def _to_markdown(soup: BeautifulSoup) -> str:
    return md(str(_content_root(soup)), heading_style="ATX").strip()


def _extract_title(soup: BeautifulSoup) -> str:
    tag = soup.find("title")
    return tag.get_text().strip() if tag else ""


def _extract_headings(soup: BeautifulSoup) -> dict[str, list[str]]:
    headings = _empty_headings()
    for level in HEADING_LEVELS:
        for tag in soup.find_all(level):
            text = tag.get_text(" ", strip=True)
            if text:
                headings[level].append(text)
    return headings


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"name": name})
    if tag is None:
        return ""
    content = tag.get("content") or ""
    return content.strip() if isinstance(content, str) else ""


def _extract_keywords(soup: BeautifulSoup) -> list[str]:
    raw = _meta_content(soup, "keywords")
    return [k.strip() for k in raw.split(",") if k.strip()]


def _extract_code_blocks(soup: BeautifulSoup) -> list[str]:
    blocks: list[str] = []
    for pre in soup.find_all("pre"):
        for code in pre.find_all("code"):
            text = code.get_text().strip()
            if text:
                blocks.append(text)
    return blocks


def _hrefs(soup: BeautifulSoup) -> list[str]:
    hrefs: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if isinstance(href, str) and href.strip():
            hrefs.append(href.strip())
    return hrefs


def _extract_links(soup: BeautifulSoup) -> list[str]:
    return [h for h in _hrefs(soup) if not h.lower().startswith(_SKIPPED_LINK_PREFIXES)]


def _extract_api_references(soup: BeautifulSoup) -> list[str]:
    return [h for h in _hrefs(soup) if "api" in h.lower()]

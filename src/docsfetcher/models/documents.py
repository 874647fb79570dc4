from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ParsedDocument(BaseModel):
    """Fields extracted from one rendered HTML page."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    headings: dict[str, list[str]] = {}  # "h1".."h6" -> heading texts
    main_content: str = ""
    description: str = ""
    keywords: list[str] = []
    code_blocks: list[str] = []
    links: list[str] = []
    api_references: list[str] = []
    markdown: str = ""  # ATX markdown rendition of the body


class LinkValidationResult(BaseModel):
    url: str
    is_valid: bool
    status_code: int | None = None
    content_type: str | None = None
    response_time_ms: float = 0.0
    last_modified: datetime | None = None
    error: str | None = None


class ScoreDetails(BaseModel):
    freshness: float = 0.0
    size: float = 0.0
    language: float = 0.0  # 1.0 for English content, 0.3 otherwise
    readability: float = 0.0
    completeness: float = 0.0
    detected_language: str = "unknown"
    word_count: int = 0
    code_block_count: int = 0
    heading_count: int = 0
    last_modified: datetime | None = None


class DocumentationScore(BaseModel):
    url: str
    score: float  # 0.0–1.0
    details: ScoreDetails


class RenderedPage(BaseModel):
    """A page as returned by the browser after scripts have settled."""

    url: str  # final URL after redirects
    status_code: int | None = None
    html: str
    title: str = ""
    stylesheets: list[str] = []
    images: list[str] = []


class PageRecord(BaseModel):
    """JSON metadata stored next to each saved page."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    title: str
    content: str
    links: list[str] = []
    fetched_at: datetime = Field(alias="fetchedAt")


class PageArtifact(BaseModel):
    """One page ready to be written into a package directory."""

    filename: str  # e.g. "index.html", "guide-install.html"
    html: str
    record: PageRecord


class FetchResult(BaseModel):
    """Outcome of fetching one package's documentation; also the cached value."""

    package: str
    url: str
    title: str = ""
    content: str = ""
    markdown: str = ""
    links: list[str] = []
    pages: list[str] = []  # URLs crawled, in visit order
    directory: str
    fetched_at: datetime
    from_cache: bool = False

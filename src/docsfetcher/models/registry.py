from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict


class Repository(BaseModel):
    type: str = "git"
    url: str


class PackageInfo(BaseModel):
    """Registry metadata for the latest published version of a package."""

    name: str
    version: str
    description: str = ""
    author: str | None = None
    homepage: str | None = None
    repository: Repository | None = None
    bugs_url: str | None = None
    documentation_urls: list[str] = []
    readme: str | None = None


class PackageLinks(BaseModel):
    npm: str
    homepage: str | None = None
    repository: str | None = None
    documentation: list[str] = []


class PackageDocsTarget(BaseModel):
    """Where and how far to crawl for one package. Frozen once resolved."""

    model_config = ConfigDict(frozen=True)

    name: str
    resolved_url: str | None = None
    allowed_domains: frozenset[str] = frozenset()
    max_depth: int = 3
    source: str = "registry"  # "known" | "registry" | "homepage" | "readme" | "package_page"


@dataclass(frozen=True)
class CrawlQueueEntry:
    url: str  # normalized
    depth: int = 0

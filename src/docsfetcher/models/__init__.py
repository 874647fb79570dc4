from __future__ import annotations

from docsfetcher.models.cache import CacheEntry, CacheStats, DirectoryInfo
from docsfetcher.models.documents import (
    DocumentationScore,
    FetchResult,
    LinkValidationResult,
    PageArtifact,
    PageRecord,
    ParsedDocument,
    RenderedPage,
    ScoreDetails,
)
from docsfetcher.models.registry import (
    CrawlQueueEntry,
    PackageDocsTarget,
    PackageInfo,
    PackageLinks,
    Repository,
)

__all__ = [
    # registry
    "PackageInfo",
    "PackageLinks",
    "Repository",
    "PackageDocsTarget",
    "CrawlQueueEntry",
    # cache
    "CacheEntry",
    "CacheStats",
    "DirectoryInfo",
    # documents
    "ParsedDocument",
    "LinkValidationResult",
    "ScoreDetails",
    "DocumentationScore",
    "RenderedPage",
    "PageRecord",
    "PageArtifact",
    "FetchResult",
]

"""Keyword search over fetched documentation pages.

Relevance per document is the average term score across the query terms,
where a term scores 3 for a title hit plus ``log2(hits + 1)`` for content
hits. Documents matching every term get a 1.5x boost.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.directory import DirectoryManager
    from docsfetcher.models.documents import PageRecord

STOP_WORDS = frozenset(
    "a an and are as at be by for from has he in is it its of on "
    "that the to was were will with".split()
)
SNIPPET_LENGTH = 150
TITLE_WEIGHT = 3.0
ALL_TERMS_BOOST = 1.5


class SearchResult(BaseModel):
    url: str
    title: str
    snippet: str
    score: float
    package: str | None = None


def tokenize(text: str, *, case_sensitive: bool = False) -> list[str]:
    words = re.split(r"\W+", text if case_sensitive else text.lower())
    return [w for w in words if w and w.lower() not in STOP_WORDS]


class DocumentationSearch:
    def __init__(self, *, logger: FilteringBoundLogger | None = None) -> None:
        self._log = logger or structlog.get_logger()
        self._documents: dict[str, tuple[PageRecord, str | None]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def add_document(self, record: PageRecord, *, package: str | None = None) -> None:
        self._documents[record.url] = (record, package)

    def clear(self) -> None:
        self._documents.clear()

    async def load_from_directory(
        self, directory: DirectoryManager, *, package: str | None = None
    ) -> int:
        """Index the stored pages of one package, or of every package. Returns pages added."""
        packages = [package] if package else await directory.list_packages()
        added = 0
        for name in packages:
            for record in await directory.read_records(name):
                self.add_document(record, package=name)
                added += 1
        self._log.debug("search_index_loaded", packages=len(packages), documents=added)
        return added

    def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        min_score: float = 0.3,
        case_sensitive: bool = False,
    ) -> list[SearchResult]:
        terms = tokenize(query, case_sensitive=case_sensitive)
        if not terms:
            return []

        results: list[SearchResult] = []
        for url, (record, package) in self._documents.items():
            score = self._relevance(terms, record, case_sensitive)
            if score >= min_score:
                results.append(
                    SearchResult(
                        url=url,
                        title=record.title,
                        snippet=extract_snippet(record.content, [t.lower() for t in terms]),
                        score=score,
                        package=package,
                    )
                )
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:max_results]

    @staticmethod
    def _relevance(terms: Sequence[str], record: PageRecord, case_sensitive: bool) -> float:
        content = record.content if case_sensitive else record.content.lower()
        title = record.title if case_sensitive else record.title.lower()

        total = 0.0
        matched = 0
        for term in terms:
            term_score = 0.0
            if term in title:
                term_score += TITLE_WEIGHT
            hits = content.count(term)
            if hits:
                term_score += math.log2(hits + 1)
            if term_score > 0:
                matched += 1
                total += term_score

        if matched == len(terms):
            total *= ALL_TERMS_BOOST
        return total / len(terms)


def extract_snippet(content: str, terms: Sequence[str], length: int = SNIPPET_LENGTH) -> str:
    """The *length*-character window of *content* containing the most distinct terms."""
    if len(content) <= length:
        return content
    lowered = content.lower()
    last_start = len(content) - length

    starts = {0}
    for term in terms:
        index = lowered.find(term)
        while index != -1:
            starts.add(min(index, last_start))
            index = lowered.find(term, index + 1)

    best_start, best_hits = 0, -1
    for start in sorted(starts):
        window = lowered[start : start + length]
        hits = sum(1 for term in terms if term in window)
        if hits > best_hits:
            best_start, best_hits = start, hits
    return content[best_start : best_start + length]


def format_results(results: Sequence[SearchResult]) -> str:
    if not results:
        return "No results found."
    blocks = []
    for index, result in enumerate(results, start=1):
        blocks.append(
            f"Result {index}:\n"
            f"  Title: {result.title}\n"
            f"  URL: {result.url}\n"
            f"  Relevance: {result.score * 100:.2f}%\n"
            f"  Snippet: {result.snippet}\n"
        )
    return "\n".join(blocks)

"""Heuristic quality score for a documentation page.

Operates on the markdown rendition of a page: code blocks are fenced
```` ``` ```` blocks and headings are ATX ``#`` lines. Every sub-score and the
total stay within [0, 1].
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from docsfetcher.config import ScorerSettings
from docsfetcher.models.documents import DocumentationScore, ScoreDetails

if TYPE_CHECKING:
    from collections.abc import Callable

    from docsfetcher.models.documents import LinkValidationResult

ENGLISH_RATIO_THRESHOLD = 0.05
UNKNOWN_FRESHNESS = 0.5
NON_ENGLISH_FACTOR = 0.3
MIN_WORDS = 50  # below this the page counts as a stub

_COMMON_ENGLISH_WORDS = frozenset(
    "the be to of and a in that have i it for not on with he as you do at "
    "this but his by from they we say her or will my all would there their "
    "what so up if about who get which go when make can like no".split()
)

_WORD_SPLIT_RE = re.compile(r"\W+", re.ASCII)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_HEADING_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)
_LIST_ITEM_RE = re.compile(r"^[-*+]\s", re.MULTILINE)
_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _words(content: str) -> list[str]:
    return [w for w in _WORD_SPLIT_RE.split(content) if w]


def word_count(content: str) -> int:
    return len(_words(content))


def code_block_count(content: str) -> int:
    return len(_CODE_BLOCK_RE.findall(content))


def heading_count(content: str) -> int:
    return len(_HEADING_RE.findall(content))


def detect_language(content: str) -> str:
    """Return ``"en"`` when enough tokens are common English words, else ``"unknown"``."""
    tokens = _words(content.lower())
    if not tokens:
        return "unknown"
    english = sum(1 for t in tokens if t in _COMMON_ENGLISH_WORDS)
    return "en" if english / len(tokens) >= ENGLISH_RATIO_THRESHOLD else "unknown"


class DocumentationScorer:
    def __init__(
        self,
        options: ScorerSettings | None = None,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.options = options or ScorerSettings()
        self._now = now or (lambda: datetime.now(UTC))

    def score_documentation(
        self,
        url: str,
        content: str,
        validation: LinkValidationResult,
    ) -> DocumentationScore:
        if not content.strip():
            return DocumentationScore(
                url=url,
                score=0.0,
                details=ScoreDetails(last_modified=validation.last_modified),
            )

        language = detect_language(content)
        details = ScoreDetails(
            freshness=self.freshness_score(validation.last_modified),
            size=self.size_score(content),
            language=1.0 if language == "en" else NON_ENGLISH_FACTOR,
            readability=self.readability_score(content),
            completeness=self.completeness_score(content),
            detected_language=language,
            word_count=word_count(content),
            code_block_count=code_block_count(content),
            heading_count=heading_count(content),
            last_modified=validation.last_modified,
        )
        return DocumentationScore(url=url, score=self.total_score(details), details=details)

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def freshness_score(self, last_modified: datetime | None) -> float:
        if last_modified is None:
            return UNKNOWN_FRESHNESS
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=UTC)
        age_days = (self._now() - last_modified).total_seconds() / 86400
        return _clamp(1 - age_days / self.options.max_age_days)

    def size_score(self, content: str) -> float:
        if not content.strip():
            return 0.0
        size = len(content.encode("utf-8"))
        if size < self.options.min_size:
            return 0.3
        if size > self.options.max_size:
            return 0.5
        return _clamp(1 - abs(size - self.options.min_size * 2) / self.options.max_size)

    def readability_score(self, content: str) -> float:
        if not content.strip():
            return 0.0
        sentences = [s for s in _SENTENCE_SPLIT_RE.split(content) if s.strip()]
        words = _words(content)
        if not sentences or not words:
            return 0.0

        avg_sentence_length = len(words) / len(sentences)
        avg_word_length = sum(len(w) for w in words) / len(words)

        score = 1.0
        score *= max(0.4, 1 - abs(avg_sentence_length - 17.5) / 35)
        score *= max(0.4, 1 - abs(avg_word_length - 5.5) / 11)
        if _HEADING_RE.search(content):
            score *= 1.4
        if _LIST_ITEM_RE.search(content):
            score *= 1.3
        if len(_PARAGRAPH_SPLIT_RE.split(content)) > 1:
            score *= 1.2
        score *= max(0.5, min(1.0, len(words) / 200))
        return _clamp(score)

    def completeness_score(self, content: str) -> float:
        if not content.strip():
            return 0.0
        min_words = self.options.min_word_count
        code_blocks = code_block_count(content)
        headings = heading_count(content)
        words = word_count(content)
        paragraphs = len(_PARAGRAPH_SPLIT_RE.split(content))
        lists = len(_LIST_ITEM_RE.findall(content))

        score = min(1.0, code_blocks / 2) * 0.25
        structure = (
            min(1.0, headings / 3) * 0.5
            + min(1.0, paragraphs / 4) * 0.3
            + min(1.0, lists / 2) * 0.2
        )
        score += structure * 0.35
        score += min(1.0, words / (min_words * 0.75)) * 0.25
        score += min(1.0, (words / max(1, headings)) / 50) * 0.15

        if code_blocks >= 3 and headings >= 4 and words >= min_words * 1.5:
            score *= 1.5
        elif code_blocks >= 2 and headings >= 3 and words >= min_words:
            score *= 1.3

        if words < MIN_WORDS or code_blocks == 0 or headings == 0:
            score *= 0.1
        return _clamp(score)

    def total_score(self, details: ScoreDetails) -> float:
        if details.word_count == 0:
            return 0.0
        w = self.options.weights
        score = (
            details.freshness * w.freshness
            + details.size * w.size
            + details.language * w.language
            + details.readability * w.readability
            + details.completeness * w.completeness
        )
        score = max(0.0, score) ** 0.7
        if (
            details.word_count < MIN_WORDS
            or details.code_block_count == 0
            or details.heading_count == 0
        ):
            score *= 0.3
        return _clamp(score)

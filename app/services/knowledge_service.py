"""
Knowledge matching: fuzzy lookup of a question in the static FAQ table.

Responsibility: Score a query against every stored question and return the
best answer when it clears the confidence threshold. No provider calls, no I/O.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from app.core.config import FAQ_MATCH_THRESHOLD
from app.services.text_processing import bigram_similarity, normalize_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeEntry:
    question: str
    answer: str


@dataclass(frozen=True)
class KnowledgeMatch:
    """Best-scoring entry for a query, whether or not it cleared the threshold."""

    index: int
    entry: KnowledgeEntry
    score: float


class KnowledgeMatcher:
    """
    Read-only matcher over an ordered KnowledgeEntry table.

    Every entry is scored; the highest score wins and ties go to the entry that
    appears first. Safe to share between threads: nothing is mutated after init.
    """

    def __init__(self, entries: Iterable[KnowledgeEntry] = (), threshold: float = FAQ_MATCH_THRESHOLD) -> None:
        self._entries: tuple[KnowledgeEntry, ...] = tuple(entries)
        self._questions: tuple[str, ...] = tuple(normalize_text(e.question) for e in self._entries)
        self.threshold = threshold

    def __len__(self) -> int:
        return len(self._entries)

    def best_match(self, query: str) -> KnowledgeMatch | None:
        """Highest-scoring entry regardless of threshold, or None for an empty table."""
        if not self._entries:
            return None
        q = normalize_text(query)
        best_index = 0
        best_score = -1.0
        for i, question in enumerate(self._questions):
            score = bigram_similarity(q, question)
            if score > best_score:
                best_index, best_score = i, score
        return KnowledgeMatch(index=best_index, entry=self._entries[best_index], score=best_score)

    def match(self, query: str) -> str | None:
        """Answer of the best entry if its score is at least the threshold, else None."""
        best = self.best_match(query)
        if best is None:
            logger.info("[knowledge:match] empty knowledge base, no match")
            return None
        if best.score >= self.threshold:
            logger.info(
                "[knowledge:match] OUT query=%r -> %r score=%.2f",
                query, best.entry.question, best.score,
            )
            return best.entry.answer
        logger.info("[knowledge:match] OUT no match score=%.2f query=%r", best.score, query)
        return None

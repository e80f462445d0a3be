"""
Term-overlap reranking for precision boost.

Cheap lexical reranker applied after candidate generation:
- Fraction of query key terms found in the chunk (whole-word, accent-insensitive)
- Small contribution from the upstream signal score
- Bonus when the chunk contains the query verbatim

Term coverage dominates; the signal score only orders candidates with the
same coverage.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from shared.config import RerankConfig
from shared.query_processor import extract_key_terms, strip_diacritics
from shared.schemas import RankedCandidate

logger = logging.getLogger(__name__)


@dataclass
class RerankResult:
    """Reranked candidate with scores."""

    candidate: RankedCandidate
    match_ratio: float
    signal_score: float  # clamped
    phrase_match: bool
    final_score: float

    @property
    def chunk_id(self) -> int:
        return self.candidate.chunk_id


def _fold(text: str) -> str:
    return strip_diacritics(text).lower()


class TermOverlapReranker:
    """
    Rerank candidates by query term coverage.

    final = match_ratio * match_weight + signal_score * signal_weight
            (+ phrase_bonus if the chunk contains the whole query)

    Usage:
        reranker = TermOverlapReranker()
        results = reranker.rerank(query, candidates, top_k=10)
    """

    def __init__(self, config: Optional[RerankConfig] = None):
        self.config = config or RerankConfig()

    def _clamp_signal(self, candidate: RankedCandidate) -> float:
        low, high = self.config.signal_range
        score = candidate.signal_score
        if score < low or score > high:
            logger.debug(
                f"Signal score {score:.4f} for chunk {candidate.chunk_id} outside [{low}, {high}], clamping"
            )
            score = min(max(score, low), high)
        return score

    def match_ratio(self, terms: Sequence[str], content: str) -> float:
        """Fraction of terms occurring as whole words in content."""
        if not terms:
            return 0.0
        folded = _fold(content)
        matched = sum(1 for term in terms if re.search(rf"\b{re.escape(term)}\b", folded))
        return matched / len(terms)

    def rerank(
        self,
        query: str,
        candidates: List[RankedCandidate],
        top_k: Optional[int] = None,
    ) -> List[RerankResult]:
        """
        Rerank candidates for a query.

        Args:
            query: Raw user query
            candidates: Candidate pool with signal scores in [0, 1]
            top_k: Results to return (defaults to the configured pool cap)

        Returns:
            Results sorted by final score descending. Ties keep input order.
            Candidates matching no term are kept, ordered by signal score.
        """
        if not candidates:
            return []

        limit = top_k if top_k is not None else self.config.pool_cap
        terms = [_fold(t) for t in extract_key_terms(query)]
        phrase = query.strip().lower()
        if not terms:
            logger.debug(f"No key terms in query {query!r}; ranking by signal score only")

        results = []
        for candidate in candidates:
            ratio = self.match_ratio(terms, candidate.content)
            signal = self._clamp_signal(candidate)
            phrase_match = bool(phrase) and phrase in candidate.content.lower()

            final = ratio * self.config.match_weight + signal * self.config.signal_weight
            if phrase_match:
                final += self.config.phrase_bonus

            results.append(
                RerankResult(
                    candidate=candidate,
                    match_ratio=ratio,
                    signal_score=signal,
                    phrase_match=phrase_match,
                    final_score=final,
                )
            )

        # sorted() is stable
        results = sorted(results, key=lambda r: r.final_score, reverse=True)

        logger.debug(
            f"Reranked {len(candidates)} candidates with {len(terms)} terms, "
            f"returning {min(limit, len(results))}"
        )
        return results[:limit]

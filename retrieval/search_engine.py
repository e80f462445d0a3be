"""
Search over the dual index: vector, lexical, or hybrid.

Hybrid retrieval:
- Vector and lexical candidate generation run concurrently
- Candidates are fused with Reciprocal Rank Fusion
- The fused pool is reranked by query term coverage
- If one signal fails the other carries the search alone
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Union

from embeddings.embedding_client import EmbeddingClient
from reranking.term_reranker import RerankResult, TermOverlapReranker
from shared.config import RetrievalConfig
from shared.errors import InputError, PartialSignalFailure, RetrievalEngineError, SearchError
from shared.query_processor import sanitize_lexical_query
from shared.schemas import RankedCandidate, SearchMode, SearchResult
from storage.dual_index_store import DualIndexStore

from .score_fusion import reciprocal_rank_fusion

logger = logging.getLogger(__name__)

VECTOR = "vector"
LEXICAL = "lexical"


def distance_to_score(distance: float) -> float:
    """Cosine distance -> similarity in [0, 1]."""
    return min(1.0, max(0.0, 1.0 - distance))


def lexical_pseudo_distance(score: float, scale: float = 10.0) -> float:
    """Map a bm25 magnitude to a distance-like value in [0, 1]; 0 = strongest match."""
    return 1.0 - min(1.0, abs(score) / scale)


class SearchEngine:
    """
    Query-time retrieval over a DualIndexStore.

    Usage:
        engine = SearchEngine(store, embedder)
        results = await engine.search("What are the payment terms?", SearchMode.HYBRID)
    """

    def __init__(
        self,
        store: DualIndexStore,
        embedder: EmbeddingClient,
        reranker: Optional[TermOverlapReranker] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.reranker = reranker or TermOverlapReranker()
        self.config = config or RetrievalConfig()

    async def search(
        self,
        query: str,
        mode: Union[SearchMode, str] = SearchMode.HYBRID,
    ) -> List[SearchResult]:
        """
        Search the index.

        Args:
            query: Free-text query
            mode: vector, lexical (alias "fts") or hybrid

        Returns:
            Results ordered best-first; empty if nothing matched

        Raises:
            InputError: blank query or unknown mode
            SearchError: every signal failed in hybrid mode
        """
        if not query or not query.strip():
            raise InputError("Query must not be empty", stage="search")
        try:
            mode = SearchMode.parse(mode)
        except ValueError as e:
            raise InputError(f"Unknown search mode: {mode!r}", stage="search") from e

        start_time = time.perf_counter()
        if mode == SearchMode.VECTOR:
            results = await self.vector_search(query)
        elif mode == SearchMode.LEXICAL:
            results = await self.lexical_search(query)
        else:
            results = await self.hybrid_search(query)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"{mode.value} search returned {len(results)} results in {elapsed_ms:.0f}ms")
        return results

    # Candidate generation ------------------------------------------------

    async def _vector_candidates(self, query: str) -> List[RankedCandidate]:
        vector = await self.embedder.embed(query)
        matches = await asyncio.to_thread(self.store.vector_search, vector, self.config.vector_limit)
        return [
            RankedCandidate(
                chunk_id=m.chunk.id,
                content=m.chunk.content,
                source_filename=m.chunk.source,
                signal_score=distance_to_score(m.distance),
            )
            for m in matches
        ]

    async def _lexical_candidates(self, query: str) -> List[RankedCandidate]:
        expression = sanitize_lexical_query(query)
        if not expression:
            return []
        logger.debug(f"Lexical expression: {expression}")

        matches = await asyncio.to_thread(self.store.lexical_search, expression, self.config.lexical_limit)
        return [
            RankedCandidate(
                chunk_id=m.chunk.id,
                content=m.chunk.content,
                source_filename=m.chunk.source,
                signal_score=1.0 - lexical_pseudo_distance(m.score, self.config.lexical_score_scale),
            )
            for m in matches
        ]

    # Modes ---------------------------------------------------------------

    def _to_results(self, reranked: List[RerankResult]) -> List[SearchResult]:
        return [
            SearchResult(
                content=r.candidate.content,
                source_filename=r.candidate.source_filename,
                relevance_score=r.final_score,
            )
            for r in reranked
        ]

    async def vector_search(self, query: str) -> List[SearchResult]:
        """Nearest-neighbour search, reranked by term coverage."""
        candidates = await self._vector_candidates(query)
        reranked = self.reranker.rerank(query, candidates, top_k=self.config.final_top_k)
        return self._to_results(reranked)

    async def lexical_search(self, query: str) -> List[SearchResult]:
        """Full-text search in bm25 order; relevance is 1 - pseudo-distance."""
        candidates = await self._lexical_candidates(query)
        return [
            SearchResult(
                content=c.content,
                source_filename=c.source_filename,
                relevance_score=c.signal_score,
            )
            for c in candidates
        ]

    async def hybrid_search(self, query: str) -> List[SearchResult]:
        """
        Concurrent vector + lexical search, fused with RRF and reranked.

        A failing signal is logged and dropped; the search fails only when
        both signals fail.
        """
        outputs = await asyncio.gather(
            self._vector_candidates(query),
            self._lexical_candidates(query),
            return_exceptions=True,
        )

        ranked: Dict[str, List[RankedCandidate]] = {}
        failures: List[PartialSignalFailure] = []
        for signal, output in zip((VECTOR, LEXICAL), outputs):
            if isinstance(output, RetrievalEngineError):
                failure = PartialSignalFailure(signal, output)
                logger.warning(f"Hybrid search degraded: {failure}")
                failures.append(failure)
            elif isinstance(output, BaseException):
                raise output
            else:
                ranked[signal] = output

        if not ranked:
            raise SearchError(
                "All retrieval signals failed: " + "; ".join(str(f.cause) for f in failures),
                stage="search",
            ) from failures[0].cause

        by_id: Dict[int, RankedCandidate] = {}
        for candidates in ranked.values():
            for c in candidates:
                by_id.setdefault(c.chunk_id, c)

        if not by_id:
            logger.info(f"No candidates for query {query!r}")
            return []

        fused = reciprocal_rank_fusion(
            {signal: [c.chunk_id for c in candidates] for signal, candidates in ranked.items()},
            k=self.config.rrf_k,
            cross_signal_boost=self.config.cross_signal_boost,
        )
        pool = [
            RankedCandidate(
                chunk_id=f.key,
                content=by_id[f.key].content,
                source_filename=by_id[f.key].source_filename,
                signal_score=f.normalized_score,
            )
            for f in fused
        ]
        logger.debug(
            f"Fused {len(pool)} candidates "
            f"(vector={len(ranked.get(VECTOR, []))}, lexical={len(ranked.get(LEXICAL, []))})"
        )

        reranked = self.reranker.rerank(query, pool, top_k=self.config.final_top_k)
        return self._to_results(reranked)

"""
Hybrid Retrieval Module.

This module implements:
- Vector retrieval (cosine nearest neighbours)
- Lexical retrieval (FTS5 bm25)
- Hybrid retrieval (Reciprocal Rank Fusion + term-overlap reranking)

Usage:
    from retrieval import SearchEngine

    engine = SearchEngine(store, embedder)
    results = await engine.search("What are the payment terms?", "hybrid")
"""

from .score_fusion import (
    CROSS_SIGNAL_BOOST,
    DEFAULT_RRF_K,
    FusedResult,
    max_fused_score,
    reciprocal_rank_fusion,
    rrf_contribution,
)
from .search_engine import SearchEngine, distance_to_score, lexical_pseudo_distance

__all__ = [
    "SearchEngine",
    "distance_to_score",
    "lexical_pseudo_distance",
    "FusedResult",
    "reciprocal_rank_fusion",
    "rrf_contribution",
    "max_fused_score",
    "DEFAULT_RRF_K",
    "CROSS_SIGNAL_BOOST",
]

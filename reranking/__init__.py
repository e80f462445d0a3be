"""
Reranking Module.

Term-overlap reranking of the candidate pool:
- Query key-term coverage dominates
- Upstream signal score orders candidates with equal coverage
- Verbatim query matches get a bonus

Usage:
    from reranking import TermOverlapReranker

    reranker = TermOverlapReranker()
    results = reranker.rerank(query, candidates, top_k=10)
"""

from .term_reranker import RerankResult, TermOverlapReranker

__all__ = [
    "TermOverlapReranker",
    "RerankResult",
]

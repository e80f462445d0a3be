"""Tests for term-overlap reranking."""

import pytest

from reranking.term_reranker import TermOverlapReranker
from shared.config import RerankConfig
from shared.schemas import RankedCandidate


def candidate(chunk_id, content, score=0.5):
    return RankedCandidate(chunk_id=chunk_id, content=content, source_filename="doc.txt", signal_score=score)


@pytest.fixture
def reranker():
    return TermOverlapReranker()


def test_whole_word_matches_rank_higher(reranker):
    candidates = [
        candidate(1, "Learning machines are different"),
        candidate(2, "Machine learning is powerful"),
    ]

    results = reranker.rerank("machine learning", candidates)

    assert [r.chunk_id for r in results] == [2, 1]
    assert results[0].match_ratio == 1.0
    assert results[1].match_ratio == 0.5


def test_composite_score(reranker):
    results = reranker.rerank("vector search", [candidate(1, "We use vector search here", score=0.8)])

    assert results[0].phrase_match
    assert results[0].final_score == pytest.approx(10.0 + 0.08 + 1.0)


def test_phrase_bonus_breaks_equal_coverage(reranker):
    candidates = [
        candidate(1, "search the vector space"),
        candidate(2, "fast vector search engines"),
    ]

    results = reranker.rerank("vector search", candidates)

    assert [r.chunk_id for r in results] == [2, 1]


def test_matching_ignores_case_and_accents(reranker):
    results = reranker.rerank("cafe culture", [candidate(1, "CAFÉ Culture in Paris")])

    assert results[0].match_ratio == 1.0


def test_unmatched_candidates_are_kept_in_signal_order(reranker):
    candidates = [
        candidate(1, "nothing relevant", score=0.2),
        candidate(2, "still nothing", score=0.9),
        candidate(3, "kubernetes deployment", score=0.1),
    ]

    results = reranker.rerank("kubernetes", candidates)

    assert [r.chunk_id for r in results] == [3, 2, 1]


def test_query_without_terms_ranks_by_signal(reranker):
    candidates = [candidate(1, "alpha", score=0.1), candidate(2, "beta", score=0.7)]

    results = reranker.rerank("what is it", candidates)

    assert [r.chunk_id for r in results] == [2, 1]
    assert all(r.match_ratio == 0.0 for r in results)


def test_out_of_range_signal_is_clamped(reranker):
    results = reranker.rerank("term", [candidate(1, "no match", score=5.0), candidate(2, "no", score=-1.0)])

    assert results[0].signal_score == 1.0
    assert results[1].signal_score == 0.0


def test_ties_keep_input_order_and_are_deterministic(reranker):
    candidates = [candidate(i, "identical content") for i in range(5)]

    first = reranker.rerank("content", candidates)
    second = reranker.rerank("content", candidates)

    assert [r.chunk_id for r in first] == [0, 1, 2, 3, 4]
    assert [r.chunk_id for r in first] == [r.chunk_id for r in second]


def test_pool_is_capped():
    reranker = TermOverlapReranker(RerankConfig(pool_cap=15))
    candidates = [candidate(i, f"chunk {i}") for i in range(20)]

    assert len(reranker.rerank("chunk", candidates)) == 15
    assert len(reranker.rerank("chunk", candidates, top_k=10)) == 10


def test_empty_pool(reranker):
    assert reranker.rerank("anything", []) == []

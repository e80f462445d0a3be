"""Tests for Reciprocal Rank Fusion."""

import pytest

from retrieval.score_fusion import (
    CROSS_SIGNAL_BOOST,
    max_fused_score,
    reciprocal_rank_fusion,
    rrf_contribution,
)


def test_contribution_strictly_decreases_with_rank():
    scores = [rrf_contribution(rank, k=60) for rank in range(100)]

    assert scores[0] == pytest.approx(1 / 61)
    assert all(a > b for a, b in zip(scores, scores[1:]))


def test_item_in_both_lists_ranks_first():
    fused = reciprocal_rank_fusion({"vector": ["A", "B"], "lexical": ["B", "C"]}, k=60)

    assert [r.key for r in fused] == ["B", "A", "C"]
    assert fused[0].fused_score == pytest.approx((1 / 62 + 1 / 61) * CROSS_SIGNAL_BOOST)
    assert fused[0].ranks == {"vector": 1, "lexical": 0}
    assert [r.rank for r in fused] == [1, 2, 3]


def test_normalized_scores_are_bounded():
    fused = reciprocal_rank_fusion({"vector": ["A", "B", "C"], "lexical": ["A", "C"]})

    assert fused[0].key == "A"
    assert fused[0].normalized_score == pytest.approx(1.0)
    assert all(0.0 <= r.normalized_score <= 1.0 for r in fused)


def test_single_list_top_hit_normalizes_to_one():
    fused = reciprocal_rank_fusion({"vector": ["A", "B"]})

    assert fused[0].normalized_score == pytest.approx(1.0)
    assert fused[1].normalized_score == pytest.approx(61 / 62)


def test_ties_break_by_first_appearance():
    fused = reciprocal_rank_fusion({"vector": ["A"], "lexical": ["C"]})

    assert [r.key for r in fused] == ["A", "C"]


def test_weights_shift_ranking():
    fused = reciprocal_rank_fusion({"vector": ["A"], "lexical": ["C"]}, weights={"lexical": 2.0})

    assert [r.key for r in fused] == ["C", "A"]


def test_duplicate_keys_count_once_per_list():
    fused = reciprocal_rank_fusion({"vector": ["A", "A", "B"]})

    assert fused[0].key == "A"
    assert fused[0].fused_score == pytest.approx(1 / 61)
    assert fused[1].ranks == {"vector": 2}


def test_empty_lists():
    assert reciprocal_rank_fusion({}) == []
    assert reciprocal_rank_fusion({"vector": [], "lexical": []}) == []


def test_max_fused_score_includes_boost_for_multiple_signals():
    assert max_fused_score(["vector"], k=60) == pytest.approx(1 / 61)
    assert max_fused_score(["vector", "lexical"], k=60) == pytest.approx(2 / 61 * CROSS_SIGNAL_BOOST)

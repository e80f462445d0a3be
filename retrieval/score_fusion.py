"""
Score fusion utilities for hybrid retrieval.

Reciprocal Rank Fusion (RRF) over any number of ranked lists:
- Each list contributes weight / (k + rank + 1) for every item it ranks
- Items ranked by two or more lists get a cross-signal boost
- Raw RRF scores are rank-based and not comparable across queries, so each
  result also carries a score normalized to [0, 1]
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_RRF_K = 60
CROSS_SIGNAL_BOOST = 1.5


@dataclass
class FusedResult:
    """Result after score fusion."""

    key: Hashable
    fused_score: float
    normalized_score: float
    ranks: Dict[str, int] = field(default_factory=dict)  # signal -> 0-based rank
    rank: int = 0

    @property
    def best_rank(self) -> int:
        return min(self.ranks.values())


def rrf_contribution(rank: int, k: int = DEFAULT_RRF_K, weight: float = 1.0) -> float:
    """RRF contribution of a 0-based rank: weight / (k + rank + 1)."""
    return weight / (k + rank + 1)


def max_fused_score(
    signals: Sequence[str],
    k: int = DEFAULT_RRF_K,
    cross_signal_boost: float = CROSS_SIGNAL_BOOST,
    weights: Optional[Mapping[str, float]] = None,
) -> float:
    """Score of an item ranked first by every signal; the normalization ceiling."""
    weights = weights or {}
    total = sum(rrf_contribution(0, k, weights.get(s, 1.0)) for s in signals)
    if len(signals) >= 2:
        total *= cross_signal_boost
    return total


def reciprocal_rank_fusion(
    ranked_lists: Mapping[str, Sequence[Hashable]],
    k: int = DEFAULT_RRF_K,
    cross_signal_boost: float = CROSS_SIGNAL_BOOST,
    weights: Optional[Mapping[str, float]] = None,
) -> List[FusedResult]:
    """
    Fuse ranked lists of item keys with RRF.

    Args:
        ranked_lists: {signal_name: [key, ...]} ordered best-first
        k: RRF constant
        cross_signal_boost: Multiplier for items found by 2+ signals
        weights: Optional per-signal weights (default 1.0)

    Returns:
        Results sorted by fused score descending. Ties are broken by best
        single-signal rank, then by first appearance.
    """
    if k < 0:
        raise ValueError(f"k must be non-negative, got {k}")
    weights = weights or {}

    results: Dict[Hashable, FusedResult] = {}
    for signal, keys in ranked_lists.items():
        weight = weights.get(signal, 1.0)
        for rank, key in enumerate(keys):
            result = results.get(key)
            if result is None:
                result = results[key] = FusedResult(key=key, fused_score=0.0, normalized_score=0.0)
            if signal in result.ranks:
                # Duplicate within one list: the best rank counts
                continue
            result.ranks[signal] = rank
            result.fused_score += rrf_contribution(rank, k, weight)

    if not results:
        return []

    ceiling = max_fused_score(list(ranked_lists.keys()), k, cross_signal_boost, weights)
    for result in results.values():
        if len(result.ranks) >= 2:
            result.fused_score *= cross_signal_boost
        result.normalized_score = min(1.0, result.fused_score / ceiling) if ceiling > 0 else 0.0

    # dicts keep insertion order, so enumerate() gives first appearance
    ordered = sorted(
        enumerate(results.values()),
        key=lambda item: (-item[1].fused_score, item[1].best_rank, item[0]),
    )

    fused = []
    for i, (_, result) in enumerate(ordered):
        result.rank = i + 1
        fused.append(result)

    multi = sum(1 for r in fused if len(r.ranks) >= 2)
    logger.debug(f"Fused {len(fused)} items from {len(ranked_lists)} signals ({multi} multi-signal)")
    return fused

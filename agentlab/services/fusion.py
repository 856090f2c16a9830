# =============================================================================
# Reciprocal Rank Fusion
# =============================================================================
#
# Merges several ranked lists (e.g. BM25 and embedding similarity) into one:
#
#     score(item) = Σ over lists   1 / (k + rank)
#
# where rank is the item's 0-based position in a list. Only positions
# matter, never raw scores, so BM25 scores (unbounded) and cosine
# similarities (-1..1) can be fused without normalisation.
#
# DESIGN DECISION: 0-based ranks with k = 60.
# The top item of a list contributes 1/60. Items missing from a list
# simply receive no contribution from it.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from typing import TypeVar

from agentlab.config import settings

T = TypeVar("T")


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[T]],
    key: Callable[[T], Hashable],
    k: int | None = None,
) -> list[tuple[T, float]]:
    """
    Fuse ranked lists with Reciprocal Rank Fusion.

    Args:
        rankings: Ranked lists, best first.
        key: Identifies the same item across lists.
        k: RRF constant (defaults to settings.rrf_k).

    Returns:
        (item, fused score) pairs sorted by score, highest first. When an
        item appears in several lists, the object from the last list wins.
        Equal scores keep first-seen order.
    """
    k = settings.rrf_k if k is None else k

    scores: dict[Hashable, float] = {}
    items: dict[Hashable, T] = {}

    for ranking in rankings:
        for rank, item in enumerate(ranking):
            item_key = key(item)
            scores[item_key] = scores.get(item_key, 0.0) + 1.0 / (k + rank)
            items[item_key] = item

    ranked = sorted(scores.items(), key=lambda pair: pair[1], reverse=True)
    return [(items[item_key], score) for item_key, score in ranked]

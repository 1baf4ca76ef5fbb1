"""Maximal Marginal Relevance selection.

Greedily picks items that are relevant to the query but dissimilar to the
items already chosen::

    mmr = lambda * relevance - (1 - lambda) * max_similarity_to_selected

Items without a vector contribute a similarity of 0, so when no vectors are
available the selection degenerates to plain relevance order.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Sequence, TypeVar

from ragengine.models import ScoredCandidate

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Far above any reachable combined score or cosine penalty.
EXACT_MATCH_BOOST = 1e6

RelevanceFn = Callable[[T], float]
VectorFn = Callable[[T], Optional[Sequence[float]]]


def cosine_similarity(left: Sequence[float] | None, right: Sequence[float] | None) -> float:
    """Cosine similarity; empty or zero-norm vectors yield 0.0."""

    if not left or not right:
        return 0.0
    length = min(len(left), len(right))
    dot = 0.0
    left_norm = 0.0
    right_norm = 0.0
    for i in range(length):
        a = left[i]
        b = right[i]
        dot += a * b
        left_norm += a * a
        right_norm += b * b
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot / (math.sqrt(left_norm) * math.sqrt(right_norm))


def combined_relevance(candidate: ScoredCandidate) -> float:
    return candidate.combined_score


def ranked_relevance(candidate: ScoredCandidate) -> float:
    """Combined score, with every exact match placed above every non-exact one."""

    return candidate.combined_score + (EXACT_MATCH_BOOST if candidate.exact_match else 0.0)


def semantic_relevance(candidate: ScoredCandidate) -> float:
    return candidate.semantic_similarity


def candidate_vector(candidate: ScoredCandidate) -> Sequence[float] | None:
    return candidate.vector


def diversify(
    candidates: Sequence[T],
    k: int,
    lambda_mult: float = 0.5,
    *,
    relevance: RelevanceFn = combined_relevance,
    vector: VectorFn = candidate_vector,
) -> List[T]:
    """Select ``min(k, len(candidates))`` items by MMR, in selection order."""

    if k < 0:
        raise ValueError("k must be non-negative")
    if not 0.0 <= lambda_mult <= 1.0:
        raise ValueError("lambda_mult must be within [0, 1]")
    if len(candidates) <= k:
        return list(candidates)
    if k == 0:
        return []

    remaining = sorted(candidates, key=relevance, reverse=True)
    selected: List[T] = [remaining.pop(0)]
    # max similarity of each remaining item to the selected set, updated incrementally
    max_sims = [cosine_similarity(vector(item), vector(selected[0])) for item in remaining]

    while len(selected) < k and remaining:
        best_pos = 0
        best_score = -math.inf
        for pos, item in enumerate(remaining):
            score = lambda_mult * relevance(item) - (1.0 - lambda_mult) * max_sims[pos]
            if score > best_score:
                best_score = score
                best_pos = pos
        chosen = remaining.pop(best_pos)
        max_sims.pop(best_pos)
        selected.append(chosen)
        chosen_vector = vector(chosen)
        for pos, item in enumerate(remaining):
            max_sims[pos] = max(max_sims[pos], cosine_similarity(vector(item), chosen_vector))

    LOGGER.debug("MMR selected %d of %d candidates (lambda=%.2f)", len(selected), len(candidates), lambda_mult)
    return selected

"""Retrieval components."""

from .context import ContextAssembler, ContextConfig, topic_key
from .mmr import (
    candidate_vector,
    combined_relevance,
    cosine_similarity,
    diversify,
    ranked_relevance,
    semantic_relevance,
)
from .scoring import HybridScorer, HybridScoringConfig

__all__ = [
    "ContextAssembler",
    "ContextConfig",
    "HybridScorer",
    "HybridScoringConfig",
    "candidate_vector",
    "combined_relevance",
    "cosine_similarity",
    "diversify",
    "ranked_relevance",
    "semantic_relevance",
    "topic_key",
]

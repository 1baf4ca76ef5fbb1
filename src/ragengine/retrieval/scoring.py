"""Hybrid lexical + semantic scoring of retrieval candidates."""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, replace
from typing import List, Sequence

from ragengine.models import ScoredCandidate

_WHITESPACE = re.compile(r"\s+")
# Hebrew geresh/gershayim and typographic quotes count as punctuation around words.
_STRIP_CHARS = string.punctuation + "״׳“”‘’«»…"


@dataclass(frozen=True)
class HybridScoringConfig:
    """Weights for the additive keyword score and the candidate filter."""

    title_phrase_weight: float = 20.0
    title_word_weight: float = 5.0
    body_phrase_weight: float = 10.0
    body_word_weight: float = 1.0
    keyword_multiplier: float = 2.0
    min_word_length: int = 3
    semantic_floor: float = 0.6
    context_threshold: float = 1.0


def _normalize_phrase(text: str) -> str:
    return _WHITESPACE.sub(" ", text.lower()).strip()


def _split_title(text: str) -> tuple[str, str]:
    title, _, body = text.partition("\n")
    return title.lower(), body.lower()


class HybridScorer:
    """Fuse keyword evidence with embedding similarity into one ranking score."""

    def __init__(self, config: HybridScoringConfig | None = None) -> None:
        self._config = config or HybridScoringConfig()

    @property
    def config(self) -> HybridScoringConfig:
        return self._config

    def query_words(self, query: str) -> List[str]:
        words: List[str] = []
        for token in query.lower().split():
            word = token.strip(_STRIP_CHARS)
            if len(word) >= self._config.min_word_length and word not in words:
                words.append(word)
        return words

    def is_exact_match(self, text: str, words: Sequence[str]) -> bool:
        if not words:
            return False
        lowered = text.lower()
        return all(word in lowered for word in words)

    def keyword_score(self, text: str, phrase: str, words: Sequence[str]) -> float:
        cfg = self._config
        title, body = _split_title(text)
        score = 0.0
        if phrase and phrase in _normalize_phrase(title):
            score += cfg.title_phrase_weight
        score += cfg.title_word_weight * sum(1 for word in words if word in title)
        if phrase and phrase in _normalize_phrase(body):
            score += cfg.body_phrase_weight
        score += cfg.body_word_weight * sum(1 for word in words if word in body)
        return score

    def score(self, query: str, candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
        """Fill keyword score, exact-match flag and combined score, keeping input order."""

        phrase = _normalize_phrase(query)
        words = self.query_words(query)
        scored: List[ScoredCandidate] = []
        for candidate in candidates:
            text = candidate.chunk.text
            keyword = self.keyword_score(text, phrase, words)
            scored.append(
                replace(
                    candidate,
                    keyword_score=keyword,
                    exact_match=self.is_exact_match(text, words),
                    combined_score=keyword * self._config.keyword_multiplier + candidate.semantic_similarity,
                ),
            )
        return scored

    def filter(self, candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
        floor = self._config.semantic_floor
        return [c for c in candidates if c.keyword_score > 0 or c.semantic_similarity > floor]

    @staticmethod
    def rank(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
        # sorted() is stable, so ties keep their retrieval order.
        return sorted(candidates, key=lambda c: (not c.exact_match, -c.combined_score))

    def has_relevant_context(self, ranked: Sequence[ScoredCandidate]) -> bool:
        if not ranked:
            return False
        return max(c.combined_score for c in ranked) > self._config.context_threshold

    def score_and_rank(self, query: str, candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
        return self.rank(self.filter(self.score(query, candidates)))

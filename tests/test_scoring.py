from __future__ import annotations

from ragengine.models import Chunk, ScoredCandidate
from ragengine.retrieval.scoring import HybridScorer, HybridScoringConfig


def _candidate(text: str, similarity: float, index: int = 0) -> ScoredCandidate:
    chunk = Chunk(text=text, index=index, total_in_document=index + 1, file_name=f"doc-{index}.txt")
    return ScoredCandidate(chunk=chunk, semantic_similarity=similarity)


def test_exact_title_match_outranks_higher_similarity():
    scorer = HybridScorer()
    a = _candidate("שיבוט גנטי בבני אדם\nסקירה של הטכניקות המרכזיות", 0.4, index=0)
    b = _candidate("מאמר על חקלאות\nבפסקה זו מוזכר שיבוט פעם אחת בלבד", 0.9, index=1)
    ranked = scorer.score_and_rank("שיבוט גנטי", [b, a])
    assert [c.chunk.index for c in ranked] == [0, 1]
    assert ranked[0].exact_match is True
    assert ranked[1].exact_match is False


def test_keyword_score_weights_title_and_body():
    scorer = HybridScorer()
    words = scorer.query_words("vector search")
    # title phrase (20) + two title words (2 * 5) + body phrase (10) + two body words (2 * 1)
    assert scorer.keyword_score("Vector search basics\nvector search explained", "vector search", words) == 42.0
    assert scorer.keyword_score("Unrelated title\nnothing here", "vector search", words) == 0.0


def test_combined_score_and_order_preserved_by_score():
    scorer = HybridScorer()
    scored = scorer.score("ranking", [_candidate("Intro\nranking matters", 0.5), _candidate("Other\ntext", 0.7, 1)])
    assert scored[0].keyword_score == 11.0
    assert scored[0].combined_score == 22.5
    assert scored[1].combined_score == 0.7
    assert [c.chunk.index for c in scored] == [0, 1]


def test_query_words_drop_short_tokens_and_punctuation():
    scorer = HybridScorer()
    assert scorer.query_words("What is an MMR, really? mmr") == ["what", "mmr", "really"]


def test_exact_match_false_without_significant_words():
    scorer = HybridScorer()
    assert scorer.is_exact_match("any text", scorer.query_words("a an")) is False


def test_filter_drops_weak_candidates():
    scorer = HybridScorer(HybridScoringConfig(semantic_floor=0.6))
    scored = scorer.score(
        "python",
        [
            _candidate("Title\nnothing relevant", 0.55, 0),
            _candidate("Title\nnothing relevant", 0.65, 1),
            _candidate("Title\npython inside", 0.1, 2),
        ],
    )
    kept = scorer.filter(scored)
    assert [c.chunk.index for c in kept] == [1, 2]


def test_rank_is_stable_for_ties():
    candidates = [
        ScoredCandidate(chunk=Chunk("a", 0, 1), semantic_similarity=0.7, combined_score=3.0),
        ScoredCandidate(chunk=Chunk("b", 0, 1), semantic_similarity=0.7, combined_score=3.0),
    ]
    assert [c.chunk.text for c in HybridScorer.rank(candidates)] == ["a", "b"]


def test_relevant_context_requires_combined_score_above_one():
    scorer = HybridScorer()
    assert scorer.has_relevant_context([]) is False
    assert scorer.has_relevant_context([ScoredCandidate(chunk=Chunk("a", 0, 1), semantic_similarity=0.9, combined_score=0.9)]) is False
    assert scorer.has_relevant_context([ScoredCandidate(chunk=Chunk("a", 0, 1), semantic_similarity=0.9, combined_score=2.9)]) is True

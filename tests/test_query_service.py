from __future__ import annotations

import asyncio
from typing import Sequence

import pytest

from ragengine.embeddings.service import Embedder, EmbeddingConfig, HashEmbeddingBackend
from ragengine.errors import InvalidInput
from ragengine.models import RetrievalSettings, SearchHit
from ragengine.services.catalog import ModelCatalog
from ragengine.services.generation import TemplateGenerator
from ragengine.services.orchestrator import GenerationOrchestrator
from ragengine.services.query import DEFAULT_NO_CONTEXT_MESSAGE, ChatMessage, PromptBuilder, QueryConfig, QueryService


class StubIndex:
    def __init__(self, hits: Sequence[SearchHit]) -> None:
        self._hits = list(hits)
        self.calls: list[dict[str, object]] = []

    async def search(self, vector, *, threshold: float, count: int, include_vectors: bool = False):
        self.calls.append({"threshold": threshold, "count": count, "include_vectors": include_vectors})
        return [hit for hit in self._hits if hit.similarity > threshold][:count]


def _hit(
    text: str,
    similarity: float,
    *,
    file_name: str = "a.txt",
    index: int = 0,
    total: int = 3,
    vector: tuple[float, ...] | None = None,
) -> SearchHit:
    return SearchHit(
        chunk_text=text,
        chunk_index=index,
        total_chunks=total,
        file_name=file_name,
        file_url=f"files/{file_name}",
        similarity=similarity,
        document_id=file_name,
        vector=vector,
    )


def _service(hits: Sequence[SearchHit]) -> tuple[QueryService, StubIndex]:
    index = StubIndex(hits)
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=16)), EmbeddingConfig(dim=16))
    orchestrator = GenerationOrchestrator(TemplateGenerator(), ModelCatalog(["m1", "m2"]))
    return QueryService(embedder, index, orchestrator), index


SETTINGS = RetrievalSettings(selected_model="m1", max_retries=2)


def test_answer_uses_top_ranked_chunk_as_context():
    hits = [
        _hit("General notes\nunrelated material", 0.9, index=0),
        _hit("Retrieval ranking\nretrieval ranking combines lexical and semantic signals", 0.55, index=1),
    ]
    service, index = _service(hits)
    result = asyncio.run(service.answer("retrieval ranking", SETTINGS))
    assert result.has_context is True
    assert result.used_model == "m1"
    assert result.retry_count == 0
    assert result.context_chunks == 2
    assert result.chunks[0].exact_match is True
    assert result.content == "Based on the provided documents: Retrieval ranking\nretrieval ranking combines lexical and semantic signals"
    assert index.calls == [{"threshold": 0.5, "count": 20, "include_vectors": True}]


def test_answer_without_relevant_context_returns_fixed_message():
    service, _ = _service([_hit("Nothing in common\nat all", 0.65)])
    result = asyncio.run(service.answer("quantum entanglement", SETTINGS))
    assert result.has_context is False
    assert result.content == DEFAULT_NO_CONTEXT_MESSAGE
    assert result.used_model == "m1"
    assert result.retry_count == 0
    assert result.context_chunks == 1


def test_answer_with_empty_index_has_no_context():
    service, _ = _service([])
    result = asyncio.run(service.answer("anything useful", SETTINGS))
    assert result.has_context is False
    assert result.context_chunks == 0


def test_empty_query_rejected_before_retrieval():
    service, index = _service([_hit("text", 0.9)])
    with pytest.raises(InvalidInput):
        asyncio.run(service.answer("   ", SETTINGS))
    with pytest.raises(InvalidInput):
        asyncio.run(service.search(""))
    assert index.calls == []


def test_search_groups_by_file_and_orders_by_best_match():
    hits = [
        _hit("semantic only chunk", 0.92, file_name="b.txt", index=0),
        _hit("clinical cloning overview", 0.61, file_name="a.txt", index=2),
        _hit("another semantic chunk", 0.7, file_name="a.txt", index=1),
        _hit("too weak", 0.4, file_name="c.txt"),
    ]
    service, index = _service(hits)
    results = asyncio.run(service.search("cloning", use_mmr=False))
    assert [r.file_name for r in results] == ["a.txt", "b.txt"]
    first = results[0]
    assert first.best_match == 1.0
    assert first.file_url == "files/a.txt"
    assert first.total_chunks == 3
    assert [m.chunk_index for m in first.matches] == [2, 1]
    assert first.matches[0].exact_match is True
    assert results[1].best_match == pytest.approx(0.92)
    assert index.calls == [{"threshold": 0.5, "count": 50, "include_vectors": False}]


def test_search_with_mmr_limits_result_count():
    hits = [_hit(f"chunk {i}", 0.9 - i * 0.01, file_name=f"f{i}.txt") for i in range(8)]
    index = StubIndex(hits)
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=16)), EmbeddingConfig(dim=16))
    service = QueryService(
        embedder,
        index,
        GenerationOrchestrator(TemplateGenerator(), ModelCatalog(["m1"])),
        config=QueryConfig(search_result_count=3),
    )
    results = asyncio.run(service.search("chunk"))
    assert len(results) == 3
    assert [r.file_name for r in results] == ["f0.txt", "f1.txt", "f2.txt"]


def test_prompt_contains_history_and_fenced_context():
    prompt = PromptBuilder().build(
        "מה זה שיבוט?",
        "הקשר מהמסמך",
        [ChatMessage(role="user", content="שלום"), ChatMessage(role="assistant", content="היי")],
    )
    assert "---\nהקשר מהמסמך\n---" in prompt
    assert "שאלה: שלום\n\nתשובה: היי" in prompt
    assert prompt.rstrip().endswith("תשובה:")


def test_exact_match_survives_diversification_past_context_budget():
    hits = [_hit(f"alpha notes {i}\nalpha", 0.7, file_name=f"notes{i}.txt", vector=(1.0, 0.0)) for i in range(12)]
    hits.append(_hit("misc\nbeta then alpha", 0.55, file_name="misc.txt", vector=(1.0, 0.0)))
    service, _ = _service(hits)
    result = asyncio.run(service.answer("alpha beta", SETTINGS))
    assert result.context_chunks == 10
    assert result.chunks[0].chunk.text == "misc\nbeta then alpha"
    assert result.chunks[0].exact_match is True
    assert result.content.startswith("Based on the provided documents: misc\nbeta then alpha")


def test_every_exact_match_within_budget_is_kept():
    hits = [
        _hit(f"alpha notes {i}\nalpha", 0.9 - i * 0.01, file_name=f"notes{i}.txt", vector=(1.0, float(i)))
        for i in range(12)
    ]
    exact_texts = ["misc\nbeta then alpha", "other\nalpha with beta", "appendix\nbeta, alpha"]
    hits += [_hit(text, 0.52, file_name=f"exact{n}.txt", vector=(0.0, 1.0)) for n, text in enumerate(exact_texts)]
    service, _ = _service(hits)
    candidates = asyncio.run(service.retrieve("alpha beta"))
    assert len(candidates) == 10
    assert [c.exact_match for c in candidates[:3]] == [True, True, True]
    assert sorted(c.chunk.text for c in candidates[:3]) == sorted(exact_texts)
    assert not any(c.exact_match for c in candidates[3:])

"""Query orchestration combining retrieval, ranking and generation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Sequence

from ragengine.embeddings.service import Embedder
from ragengine.embeddings.store import VectorIndex
from ragengine.errors import InvalidInput
from ragengine.metrics.observability import PipelineMetrics, get_logger
from ragengine.models import FileMatch, FileResult, QueryResult, RetrievalSettings, ScoredCandidate
from ragengine.retrieval.context import ContextAssembler
from ragengine.retrieval.mmr import diversify, ranked_relevance, semantic_relevance
from ragengine.retrieval.scoring import HybridScorer
from ragengine.services.generation import CONTEXT_DELIMITER
from ragengine.services.orchestrator import GenerationOrchestrator

DEFAULT_NO_CONTEXT_MESSAGE = (
    "מצטער, לא מצאתי במסמכים מידע שעונה על שאלתך. האם תוכל לנסח את השאלה בצורה אחרת?"
)


@dataclass(frozen=True)
class ChatMessage:
    """One turn of the conversation that preceded the current query."""

    role: str
    content: str


@dataclass(frozen=True)
class QueryConfig:
    """Retrieval parameters for the two read paths."""

    match_threshold: float = 0.5
    match_count: int = 20
    context_chunks: int = 10
    mmr_lambda: float = 0.7
    search_match_threshold: float = 0.5
    search_match_count: int = 50
    search_result_count: int = 20
    search_mmr_lambda: float = 0.7
    no_context_message: str = DEFAULT_NO_CONTEXT_MESSAGE


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Labels used when rendering the generation prompt."""

    user_label: str = "שאלה"
    assistant_label: str = "תשובה"


class PromptBuilder:
    """Builds Hebrew prompts with the context fenced between delimiters."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def render_history(self, history: Sequence[ChatMessage]) -> str:
        lines = []
        for message in history:
            label = self._config.user_label if message.role == "user" else self._config.assistant_label
            lines.append(f"{label}: {message.content}")
        return "\n\n".join(lines)

    def build(self, query: str, context: str, history: Sequence[ChatMessage] = ()) -> str:
        sections = [
            "אתה עוזר מידע מקצועי העונה על שאלות בעברית.",
            f"התוכן הרלוונטי מהמסמכים:\n{CONTEXT_DELIMITER}\n{context}\n{CONTEXT_DELIMITER}",
        ]
        rendered_history = self.render_history(history)
        if rendered_history:
            sections.append(f"היסטוריית השיחה:\n{rendered_history}")
        sections.append(f"שאלת המשתמש: {query}")
        sections.append(
            "הנחיות:\n"
            "1. השתמש אך ורק במידע שסופק לך בהקשר למעלה.\n"
            "2. אם אין במידע תשובה לשאלה, ציין זאת בבירור.\n"
            "3. הימנע מהמצאת מידע שלא קיים בטקסט המקורי.\n"
            "4. ספק ציטוטים רלוונטיים מהטקסט כשניתן."
        )
        sections.append("תשובה:")
        return "\n\n".join(sections)


def _require_query(query: str) -> str:
    if not query or not query.strip():
        raise InvalidInput("Query text must not be empty")
    return query.strip()


class QueryService:
    """Answers questions and runs document search over the vector index."""

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        orchestrator: GenerationOrchestrator,
        scorer: HybridScorer | None = None,
        assembler: ContextAssembler | None = None,
        prompt_builder: PromptBuilder | None = None,
        config: QueryConfig | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._orchestrator = orchestrator
        self._scorer = scorer or HybridScorer()
        self._assembler = assembler or ContextAssembler()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._config = config or QueryConfig()
        self._logger = get_logger("query")

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        return self._orchestrator

    async def retrieve(self, query: str) -> List[ScoredCandidate]:
        """Return up to ``context_chunks`` candidates in ranking order."""

        cfg = self._config
        start = time.perf_counter()
        vector = await self._embedder.embed_query(query)
        hits = await self._index.search(
            vector, threshold=cfg.match_threshold, count=cfg.match_count, include_vectors=True
        )
        ranked = self._scorer.score_and_rank(query, [ScoredCandidate.from_hit(hit) for hit in hits])
        selected = diversify(ranked, cfg.context_chunks, cfg.mmr_lambda, relevance=ranked_relevance)
        # MMR picks the set; the context keeps the ranking order.
        chosen = {id(candidate) for candidate in selected}
        ordered = [candidate for candidate in ranked if id(candidate) in chosen]
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval(duration, len(ordered), (c.semantic_similarity for c in ordered))
        self._logger.info(
            "retrieval.complete",
            query=query,
            hit_count=len(hits),
            ranked_count=len(ranked),
            chunk_count=len(ordered),
            duration_seconds=duration,
        )
        return ordered

    async def answer(
        self,
        query: str,
        settings: RetrievalSettings,
        history: Sequence[ChatMessage] = (),
    ) -> QueryResult:
        query = _require_query(query)
        candidates = await self.retrieve(query)
        if not self._scorer.has_relevant_context(candidates):
            self._logger.info("query.no_context", query=query, chunk_count=len(candidates))
            return QueryResult(
                content=self._config.no_context_message,
                used_model=settings.selected_model,
                retry_count=0,
                context_chunks=len(candidates),
                has_context=False,
                chunks=tuple(candidates),
            )
        context = self._assembler.assemble([candidate.chunk for candidate in candidates])
        prompt = self._prompt_builder.build(query, context, history)
        result = await self._orchestrator.generate(prompt, settings)
        self._logger.info(
            "query.complete",
            query=query,
            used_model=result.used_model,
            retry_count=result.retry_count,
            context_chunks=len(candidates),
            context_length=len(context),
        )
        return QueryResult(
            content=result.content,
            used_model=result.used_model,
            retry_count=result.retry_count,
            context_chunks=len(candidates),
            has_context=True,
            chunks=tuple(candidates),
        )

    async def search(self, query: str, *, use_mmr: bool = True) -> List[FileResult]:
        """Semantic search grouped by source file, best file first."""

        query = _require_query(query)
        cfg = self._config
        start = time.perf_counter()
        vector = await self._embedder.embed_query(query)
        hits = await self._index.search(
            vector,
            threshold=cfg.search_match_threshold,
            count=cfg.search_match_count,
            include_vectors=use_mmr,
        )
        candidates = [ScoredCandidate.from_hit(hit) for hit in hits]
        if use_mmr:
            candidates = diversify(
                candidates, cfg.search_result_count, cfg.search_mmr_lambda, relevance=semantic_relevance
            )
        else:
            candidates = candidates[: cfg.search_result_count]
        results = self._group_by_file(query, candidates)
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval(duration, len(candidates), (c.semantic_similarity for c in candidates))
        self._logger.info(
            "search.complete",
            query=query,
            hit_count=len(hits),
            file_count=len(results),
            use_mmr=use_mmr,
            duration_seconds=duration,
        )
        return results

    def _group_by_file(self, query: str, candidates: Sequence[ScoredCandidate]) -> List[FileResult]:
        words = self._scorer.query_words(query)
        grouped: Dict[str, List[FileMatch]] = {}
        meta: Dict[str, tuple[str, int]] = {}
        for candidate in candidates:
            chunk = candidate.chunk
            key = chunk.source_url or chunk.file_name
            meta.setdefault(key, (chunk.file_name, chunk.total_in_document))
            grouped.setdefault(key, []).append(
                FileMatch(
                    chunk_text=chunk.text,
                    chunk_index=chunk.index,
                    similarity=candidate.semantic_similarity,
                    exact_match=self._scorer.is_exact_match(chunk.text, words),
                )
            )
        results: List[FileResult] = []
        for key, matches in grouped.items():
            matches.sort(key=lambda m: (not m.exact_match, -m.similarity))
            file_name, total_chunks = meta[key]
            results.append(
                FileResult(
                    file_name=file_name,
                    file_url=key,
                    total_chunks=total_chunks,
                    matches=tuple(matches),
                    best_match=max(1.0 if m.exact_match else m.similarity for m in matches),
                )
            )
        results.sort(key=lambda r: r.best_match, reverse=True)
        return results

"""Shared domain models used across the ragengine pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence


class RetryStrategy(str, Enum):
    """How the orchestrator spends its attempt budget."""

    SINGLE = "single"
    ALL_MODELS = "all"

    @classmethod
    def parse(cls, value: object) -> "RetryStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SINGLE


@dataclass(frozen=True)
class DocumentMetadata:
    """Metadata captured for an ingested document."""

    document_id: str
    file_name: str
    file_url: str = ""
    content_type: str = "text/plain"
    title: str = ""
    author: str = ""
    main_topic: str = ""
    doc_type: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Chunk:
    """Bounded contiguous slice of a source document."""

    text: str
    index: int
    total_in_document: int
    source_document_id: str = ""
    source_url: str = ""
    file_name: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.index < self.total_in_document:
            raise ValueError(f"chunk index {self.index} outside 0..{self.total_in_document - 1}")


@dataclass(frozen=True)
class EmbeddedChunk:
    """Chunk together with its embedding vector."""

    chunk: Chunk
    vector: tuple[float, ...]


@dataclass(frozen=True)
class SearchHit:
    """Raw record returned by the vector index."""

    chunk_text: str
    chunk_index: int
    total_chunks: int
    file_name: str
    file_url: str
    similarity: float
    document_id: str = ""
    vector: tuple[float, ...] | None = None

    def to_chunk(self) -> Chunk:
        return Chunk(
            text=self.chunk_text,
            index=self.chunk_index,
            total_in_document=max(self.total_chunks, self.chunk_index + 1),
            source_document_id=self.document_id,
            source_url=self.file_url,
            file_name=self.file_name,
        )


@dataclass(frozen=True)
class ScoredCandidate:
    """Retrieval candidate annotated with semantic and lexical evidence."""

    chunk: Chunk
    semantic_similarity: float
    keyword_score: float = 0.0
    exact_match: bool = False
    combined_score: float = 0.0
    vector: tuple[float, ...] | None = None

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "ScoredCandidate":
        return cls(chunk=hit.to_chunk(), semantic_similarity=hit.similarity, vector=hit.vector)


@dataclass(frozen=True)
class RetrievalSettings:
    """Per-request generation settings, read through the settings store."""

    selected_model: str
    max_retries: int = 3
    retry_strategy: RetryStrategy = RetryStrategy.SINGLE
    updated_at: datetime | None = None


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one orchestrated generation."""

    content: str
    used_model: str
    retry_count: int


@dataclass(frozen=True)
class QueryResult:
    """Answer to a user query together with retrieval diagnostics."""

    content: str
    used_model: str
    retry_count: int
    context_chunks: int
    has_context: bool
    chunks: Sequence[ScoredCandidate] = ()


@dataclass(frozen=True)
class FileMatch:
    """One matching chunk inside a search result file."""

    chunk_text: str
    chunk_index: int
    similarity: float
    exact_match: bool


@dataclass(frozen=True)
class FileResult:
    """Search hits grouped by their source file."""

    file_name: str
    file_url: str
    total_chunks: int
    matches: Sequence[FileMatch]
    best_match: float


@dataclass(frozen=True)
class IndexedFile:
    """Summary of one file present in the vector index."""

    file_name: str
    file_url: str
    chunk_count: int
    created_at: str = ""

"""Document ingestion service for ragengine."""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence
from uuid import NAMESPACE_URL, uuid5

from ragengine.embeddings.service import Embedder
from ragengine.embeddings.store import VectorIndex
from ragengine.ingestion.chunker import ChunkerConfig, RecursiveChunker, SentenceChunker, TextChunker, normalize_text
from ragengine.ingestion.loaders import CONTENT_TYPES, load_text
from ragengine.metrics.observability import PipelineMetrics, TimedSection, get_logger
from ragengine.models import DocumentMetadata, EmbeddedChunk

DEFAULT_MAIN_TOPICS: tuple[str, ...] = (
    "שיבוט",
    "ביולוגיה",
    "רפואה",
    "גנטיקה",
    "מדע",
    "פיזיקה",
    "כימיה",
    "מחשבים",
    "בינה מלאכותית",
)
_AUTHOR_MARKER = 'ד"ר'
_GENERAL_TOPIC = "כללי"


@dataclass(frozen=True)
class IngestionConfig:
    """Configuration for document ingestion."""

    splitter: Literal["sentence", "recursive"] = "sentence"
    min_chunk_size: int = 100
    max_chunk_size: int = 500
    overlap_size: int = 100
    recursive_chunk_size: int = 768
    recursive_chunk_overlap: int = 50
    encoding: str = "utf-8"
    main_topics: tuple[str, ...] = DEFAULT_MAIN_TOPICS


def build_chunker(config: IngestionConfig) -> TextChunker:
    if config.splitter == "recursive":
        return RecursiveChunker(config.recursive_chunk_size, config.recursive_chunk_overlap)
    return SentenceChunker(
        ChunkerConfig(
            min_chunk_size=config.min_chunk_size,
            max_chunk_size=config.max_chunk_size,
            overlap_size=config.overlap_size,
        ),
    )


def _main_topic(title: str, topics: Sequence[str]) -> str:
    lowered = title.lower()
    for topic in topics:
        if topic.lower() in lowered:
            return topic
    words = title.split()
    return words[0] if words else _GENERAL_TOPIC


def _doc_type(content_type: str, content: str) -> str:
    if "תקציר" in content and "מבוא" in content and "שיטות" in content:
        return "מאמר מדעי"
    if "פרק" in content and len(content) > 5000:
        return "ספר"
    if "pdf" in content_type:
        return "מסמך PDF"
    if "word" in content_type:
        return "מסמך Word"
    return "טקסט"


def extract_document_metadata(
    raw_text: str,
    *,
    file_name: str,
    file_url: str = "",
    content_type: str = "text/plain",
    main_topics: Sequence[str] = DEFAULT_MAIN_TOPICS,
) -> DocumentMetadata:
    """Derive title, author, topic and type from the document text."""

    content = normalize_text(raw_text or "")
    lines = [line.strip() for line in content.split("\n") if line.strip()]
    title = lines[0] if lines else file_name
    author = lines[1] if len(lines) > 1 and _AUTHOR_MARKER in lines[1] else ""
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return DocumentMetadata(
        document_id=uuid5(NAMESPACE_URL, f"{file_name}:{digest}").hex,
        file_name=file_name,
        file_url=file_url,
        content_type=content_type,
        title=title,
        author=author,
        main_topic=_main_topic(title, main_topics),
        doc_type=_doc_type(content_type, content),
    )


class DocumentIngestor:
    """Chunk, embed and index documents."""

    _logger = get_logger("ingestion")

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        config: IngestionConfig | None = None,
        chunker: TextChunker | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._config = config or IngestionConfig()
        self._chunker = chunker or build_chunker(self._config)

    async def ingest(
        self,
        raw_text: str,
        metadata: DocumentMetadata,
        *,
        replace_existing: bool = True,
    ) -> Sequence[EmbeddedChunk]:
        with TimedSection() as timer:
            chunks = self._chunker.chunk(
                raw_text,
                document_id=metadata.document_id,
                source_url=metadata.file_url,
                file_name=metadata.file_name,
            )
            embedded = await self._embedder.embed_chunks(chunks)
            ids = await self._index.add(embedded, metadata)
            # Stale chunks go only once the new version is stored.
            if replace_existing:
                removed = await self._index.delete_file(metadata.file_name, keep_ids=ids)
                if removed:
                    self._logger.info("ingestion.replaced", file_name=metadata.file_name, removed_chunks=removed)
        PipelineMetrics.observe_ingestion(timer.elapsed, len(embedded))
        if not embedded:
            self._logger.warning("ingestion.empty", file_name=metadata.file_name, text_length=len(raw_text))
        self._logger.info(
            "ingestion.complete",
            file_name=metadata.file_name,
            document_id=metadata.document_id,
            chunk_count=len(embedded),
            duration_seconds=timer.elapsed,
        )
        return embedded

    async def ingest_text(
        self,
        raw_text: str,
        *,
        file_name: str,
        file_url: str = "",
        content_type: str = "text/plain",
        replace_existing: bool = True,
    ) -> tuple[DocumentMetadata, Sequence[EmbeddedChunk]]:
        metadata = extract_document_metadata(
            raw_text,
            file_name=file_name,
            file_url=file_url,
            content_type=content_type,
            main_topics=self._config.main_topics,
        )
        embedded = await self.ingest(raw_text, metadata, replace_existing=replace_existing)
        return metadata, embedded

    async def ingest_file(
        self,
        path: Path,
        *,
        file_name: str | None = None,
        file_url: str = "",
    ) -> tuple[DocumentMetadata, Sequence[EmbeddedChunk]]:
        raw_text = await asyncio.to_thread(load_text, path, encoding=self._config.encoding)
        return await self.ingest_text(
            raw_text,
            file_name=file_name or path.name,
            file_url=file_url,
            content_type=CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        )

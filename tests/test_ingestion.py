"""Tests for ingestion-related helpers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from uuid import uuid4

import chromadb
import pytest

from ragengine.embeddings.service import Embedder, EmbeddingConfig, HashEmbeddingBackend
from ragengine.embeddings.store import ChromaVectorIndex
from ragengine.errors import SearchError, UnsupportedFileTypeError
from ragengine.ingestion import DocumentIngestor, IngestionConfig, extract_document_metadata, load_text

ARTICLE = "\n".join(
    [
        "שיבוט גנטי בבני אדם",
        'ד"ר ישראלה ישראלי',
        "תקציר",
        "מבוא " + "משפט ארוך על שיבוט ועל השלכותיו המדעיות. " * 20,
        "שיטות " + "תיאור השיטות במחקר הזה. " * 10,
    ]
)


def _ingestor() -> tuple[DocumentIngestor, ChromaVectorIndex]:
    index = ChromaVectorIndex(f"test-ingest-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=16)), EmbeddingConfig(dim=16))
    return DocumentIngestor(embedder, index, IngestionConfig()), index


def test_extract_metadata_from_article():
    metadata = extract_document_metadata(ARTICLE, file_name="article.txt")
    assert metadata.title == "שיבוט גנטי בבני אדם"
    assert metadata.author == 'ד"ר ישראלה ישראלי'
    assert metadata.main_topic == "שיבוט"
    assert metadata.doc_type == "מאמר מדעי"
    assert metadata.document_id == extract_document_metadata(ARTICLE, file_name="article.txt").document_id


def test_extract_metadata_defaults():
    metadata = extract_document_metadata("Plain notes\nsecond line", file_name="notes.pdf", content_type="application/pdf")
    assert metadata.author == ""
    assert metadata.main_topic == "Plain"
    assert metadata.doc_type == "מסמך PDF"


def test_ingest_text_indexes_chunks():
    ingestor, index = _ingestor()
    metadata, embedded = asyncio.run(ingestor.ingest_text(ARTICLE, file_name="article.txt", file_url="files/article.txt"))
    assert embedded
    assert all(item.chunk.file_name == "article.txt" for item in embedded)
    assert asyncio.run(index.count()) == len(embedded)
    files = asyncio.run(index.list_files())
    assert files[0].file_name == metadata.file_name


def test_reingest_replaces_previous_chunks():
    ingestor, index = _ingestor()
    asyncio.run(ingestor.ingest_text(ARTICLE, file_name="article.txt"))
    _, embedded = asyncio.run(ingestor.ingest_text(ARTICLE[: len(ARTICLE) // 2], file_name="article.txt"))
    assert asyncio.run(index.count()) == len(embedded)


class FailingIndex(ChromaVectorIndex):
    fail_writes = False

    async def add(self, chunks, metadata):
        if self.fail_writes:
            raise SearchError("index unavailable")
        return await super().add(chunks, metadata)


def test_failed_reingest_keeps_previous_chunks():
    index = FailingIndex(f"test-ingest-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=16)), EmbeddingConfig(dim=16))
    ingestor = DocumentIngestor(embedder, index)
    _, embedded = asyncio.run(ingestor.ingest_text(ARTICLE, file_name="article.txt"))
    index.fail_writes = True
    with pytest.raises(SearchError):
        asyncio.run(ingestor.ingest_text(ARTICLE[: len(ARTICLE) // 2], file_name="article.txt"))
    assert asyncio.run(index.count()) == len(embedded)


def test_identical_reingest_keeps_chunk_count():
    ingestor, index = _ingestor()
    _, embedded = asyncio.run(ingestor.ingest_text(ARTICLE, file_name="article.txt"))
    asyncio.run(ingestor.ingest_text(ARTICLE, file_name="article.txt"))
    assert asyncio.run(index.count()) == len(embedded)


def test_ingest_file_uses_text_loader(tmp_path: Path) -> None:
    document = tmp_path / "example.txt"
    document.write_text("Hello world. " * 20, encoding="utf-8")
    ingestor, _ = _ingestor()
    metadata, embedded = asyncio.run(ingestor.ingest_file(document))
    assert metadata.file_name == "example.txt"
    assert metadata.content_type == "text/plain"
    assert len(embedded) == 1


def test_unsupported_extension_rejected(tmp_path: Path) -> None:
    document = tmp_path / "image.png"
    document.write_bytes(b"\x89PNG")
    with pytest.raises(UnsupportedFileTypeError):
        load_text(document)

from __future__ import annotations

import asyncio
from uuid import uuid4

import chromadb

from ragengine.embeddings.service import Embedder, EmbeddingConfig, HashEmbeddingBackend
from ragengine.embeddings.store import ChromaVectorIndex
from ragengine.models import Chunk, DocumentMetadata, EmbeddedChunk


def _index() -> ChromaVectorIndex:
    return ChromaVectorIndex(f"test-store-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())


def _embedded(metadata: DocumentMetadata, texts: list[str]) -> list[EmbeddedChunk]:
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=16)), EmbeddingConfig(dim=16))
    chunks = [
        Chunk(text, i, len(texts), metadata.document_id, metadata.file_url, metadata.file_name)
        for i, text in enumerate(texts)
    ]
    return asyncio.run(embedder.embed_chunks(chunks))


def _metadata(name: str) -> DocumentMetadata:
    return DocumentMetadata(document_id=f"doc-{name}", file_name=name, file_url=f"files/{name}")


def test_add_and_search_returns_exact_vector_first():
    index = _index()
    meta = _metadata("a.txt")
    embedded = _embedded(meta, ["alpha beta gamma", "lorem ipsum dolor"])
    ids = asyncio.run(index.add(embedded, meta))
    assert ids == ["doc-a.txt-0", "doc-a.txt-1"]
    assert asyncio.run(index.count()) == 2

    hits = asyncio.run(index.search(embedded[0].vector, threshold=0.5, count=5, include_vectors=True))
    assert hits
    top = hits[0]
    assert top.chunk_text == "alpha beta gamma"
    assert top.similarity > 0.99
    assert top.file_name == "a.txt"
    assert top.file_url == "files/a.txt"
    assert top.total_chunks == 2
    assert top.vector is not None and len(top.vector) == 16
    assert all(hit.similarity > 0.5 for hit in hits)


def test_search_on_empty_index_returns_nothing():
    assert asyncio.run(_index().search((1.0,) * 16, threshold=0.0, count=10)) == []


def test_delete_file_and_list_files():
    index = _index()
    for name, texts in (("a.txt", ["one", "two"]), ("b.txt", ["three"])):
        meta = _metadata(name)
        asyncio.run(index.add(_embedded(meta, texts), meta))
    files = asyncio.run(index.list_files())
    assert [(f.file_name, f.chunk_count) for f in files] == [("a.txt", 2), ("b.txt", 1)]

    assert asyncio.run(index.delete_file("a.txt")) == 2
    assert asyncio.run(index.delete_file("missing.txt")) == 0
    assert asyncio.run(index.count()) == 1


def test_reset_clears_collection():
    index = _index()
    meta = _metadata("a.txt")
    asyncio.run(index.add(_embedded(meta, ["text to drop"]), meta))
    asyncio.run(index.reset())
    assert asyncio.run(index.count()) == 0


def test_delete_file_spares_kept_ids():
    index = _index()
    meta = _metadata("a.txt")
    ids = asyncio.run(index.add(_embedded(meta, ["first", "second", "third"]), meta))
    removed = asyncio.run(index.delete_file("a.txt", keep_ids=ids[:1]))
    assert removed == 2
    assert asyncio.run(index.count()) == 1
    assert asyncio.run(index.delete_file("a.txt", keep_ids=ids)) == 0

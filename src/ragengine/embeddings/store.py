"""Vector index implementations."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Collection, Dict, List, Mapping, MutableMapping, Protocol, Sequence

import chromadb
from chromadb.api import ClientAPI

from ragengine.errors import SearchError
from ragengine.models import DocumentMetadata, EmbeddedChunk, IndexedFile, SearchHit

LOGGER = logging.getLogger(__name__)


class VectorIndex(Protocol):
    """Nearest-neighbour lookup over the persisted corpus."""

    async def add(self, chunks: Sequence[EmbeddedChunk], metadata: DocumentMetadata) -> Sequence[str]:
        """Persist embedded chunks of one document."""

    async def search(
        self,
        vector: Sequence[float],
        *,
        threshold: float,
        count: int,
        include_vectors: bool = False,
    ) -> Sequence[SearchHit]:
        """Return up to ``count`` hits whose similarity exceeds ``threshold``."""

    async def delete_file(self, file_name: str, *, keep_ids: Collection[str] = ()) -> int:
        """Remove chunks indexed for ``file_name`` except ``keep_ids``; return how many."""

    async def list_files(self) -> Sequence[IndexedFile]:
        """Summarise indexed files."""

    async def reset(self) -> None:
        """Remove all stored embeddings."""

    async def count(self) -> int:
        """Return total number of stored chunks."""


class ChromaVectorIndex:
    """Chroma-backed vector index using cosine distance."""

    def __init__(
        self,
        collection_name: str = "ragengine",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection_name = collection_name
        self._collection = self._open_collection()

    def _open_collection(self):
        return self._client.get_or_create_collection(
            name=self._collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def add(self, chunks: Sequence[EmbeddedChunk], metadata: DocumentMetadata) -> Sequence[str]:
        if not chunks:
            return []
        ids = [f"{metadata.document_id}-{item.chunk.index}" for item in chunks]
        documents = [item.chunk.text for item in chunks]
        vectors = [list(item.vector) for item in chunks]
        metadatas = [self._serialize(item, metadata) for item in chunks]
        try:
            await asyncio.to_thread(
                self._collection.upsert,
                ids=ids,
                documents=documents,
                embeddings=vectors,
                metadatas=metadatas,
            )
        except Exception as exc:
            raise SearchError(f"Failed to index {metadata.file_name}: {exc}") from exc
        return ids

    async def search(
        self,
        vector: Sequence[float],
        *,
        threshold: float,
        count: int,
        include_vectors: bool = False,
    ) -> Sequence[SearchHit]:
        if count <= 0:
            return []
        include = ["documents", "metadatas", "distances"]
        if include_vectors:
            include.append("embeddings")
        try:
            stored = await asyncio.to_thread(self._collection.count)
            if not stored:
                return []
            results = await asyncio.to_thread(
                self._collection.query,
                query_embeddings=[list(vector)],
                n_results=min(count, stored),
                include=include,
            )
        except Exception as exc:
            raise SearchError(f"Vector search failed: {exc}") from exc
        hits = self._deserialize(results)
        return [hit for hit in hits if hit.similarity > threshold]

    async def delete_file(self, file_name: str, *, keep_ids: Collection[str] = ()) -> int:
        keep = set(keep_ids)
        try:
            existing = await asyncio.to_thread(self._collection.get, where={"file_name": file_name}, include=[])
            ids = [chunk_id for chunk_id in existing.get("ids") or [] if chunk_id not in keep]
            if ids:
                await asyncio.to_thread(self._collection.delete, ids=ids)
        except Exception as exc:
            raise SearchError(f"Failed to delete {file_name}: {exc}") from exc
        return len(ids)

    async def list_files(self) -> Sequence[IndexedFile]:
        summaries: Dict[str, Dict[str, Any]] = {}
        try:
            batch = await asyncio.to_thread(self._collection.get, include=["metadatas"])
        except Exception as exc:
            raise SearchError(f"Failed to list indexed files: {exc}") from exc
        for md in batch.get("metadatas") or []:
            if not isinstance(md, Mapping):
                continue
            name = str(md.get("file_name", ""))
            entry = summaries.setdefault(
                name,
                {"file_url": str(md.get("file_url", "")), "chunk_count": 0, "created_at": ""},
            )
            entry["chunk_count"] += 1
            entry["created_at"] = max(entry["created_at"], str(md.get("created_at", "")))
        return [
            IndexedFile(file_name=name, file_url=info["file_url"], chunk_count=info["chunk_count"], created_at=info["created_at"])
            for name, info in sorted(summaries.items())
        ]

    async def reset(self) -> None:
        try:
            await asyncio.to_thread(self._client.delete_collection, self._collection_name)
        except Exception as exc:  # collection may already be gone
            LOGGER.debug("Collection %s not dropped: %s", self._collection_name, exc)
        self._collection = await asyncio.to_thread(self._open_collection)

    async def count(self) -> int:
        try:
            return int(await asyncio.to_thread(self._collection.count))
        except Exception as exc:
            raise SearchError(f"Failed to count embeddings: {exc}") from exc

    @staticmethod
    def _serialize(item: EmbeddedChunk, metadata: DocumentMetadata) -> MutableMapping[str, object]:
        return {
            "document_id": metadata.document_id,
            "file_name": metadata.file_name,
            "file_url": metadata.file_url,
            "content_type": metadata.content_type,
            "title": metadata.title,
            "main_topic": metadata.main_topic,
            "doc_type": metadata.doc_type,
            "created_at": metadata.created_at.isoformat(),
            "chunk_index": item.chunk.index,
            "total_chunks": item.chunk.total_in_document,
        }

    def _deserialize(self, results: Mapping[str, object]) -> List[SearchHit]:
        ids = self._first(results.get("ids"))
        documents = self._first(results.get("documents"))
        metadatas = self._first(results.get("metadatas"))
        distances = self._first(results.get("distances"))
        embeddings = self._first(results.get("embeddings"))
        hits: List[SearchHit] = []
        for position, chunk_id in enumerate(ids):
            md = metadatas[position] if position < len(metadatas) else {}
            md = md if isinstance(md, Mapping) else {}
            distance = distances[position] if position < len(distances) else None
            vector = None
            if position < len(embeddings) and embeddings[position] is not None:
                vector = tuple(float(value) for value in embeddings[position])
            hits.append(
                SearchHit(
                    chunk_text=documents[position] if position < len(documents) else "",
                    chunk_index=int(md.get("chunk_index", 0)),
                    total_chunks=int(md.get("total_chunks", 1)),
                    file_name=str(md.get("file_name", "")),
                    file_url=str(md.get("file_url", "")),
                    similarity=1.0 - float(distance) if distance is not None else 0.0,
                    document_id=str(md.get("document_id", chunk_id)),
                    vector=vector,
                ),
            )
        return hits

    @staticmethod
    def _first(value: object) -> Sequence:
        # Chroma returns one inner list per query embedding, possibly as numpy arrays.
        if value is None:
            return []
        if len(value) == 0:  # type: ignore[arg-type]
            return []
        inner = value[0]  # type: ignore[index]
        return inner if inner is not None else []

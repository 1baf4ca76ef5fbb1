"""Embedding backends for ragengine."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Protocol, Sequence, Tuple

from ragengine.errors import EmbeddingError, InvalidInput
from ragengine.models import Chunk, EmbeddedChunk

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    dim: int = 384
    use_model: bool = False
    device: str | None = None
    normalize: bool = True
    cache_folder: str | None = None


class EmbeddingBackend(Protocol):
    """Raw provider call: text in, vector out."""

    async def embed(self, text: str) -> Sequence[float]:
        """Return the embedding vector for ``text``."""


def _l2_normalize(vector: Sequence[float]) -> Tuple[float, ...]:
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return tuple(value / norm for value in vector)


class HashEmbeddingBackend:
    """Deterministic lightweight embedding fallback used for testing."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def _hash_to_vector(self, text: str) -> Tuple[float, ...]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            return _l2_normalize(vector)
        return tuple(vector)

    async def embed(self, text: str) -> Tuple[float, ...]:
        return self._hash_to_vector(text)


class HuggingFaceEmbeddingBackend:
    """Sentence-embedding model served through LangChain's HuggingFace wrapper."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        from langchain_community.embeddings import HuggingFaceEmbeddings

        self._config = config or EmbeddingConfig(use_model=True)
        model_kwargs = {"device": self._config.device} if self._config.device else {}
        self._client = HuggingFaceEmbeddings(
            model_name=self._config.model,
            model_kwargs=model_kwargs,
            cache_folder=self._config.cache_folder,
            encode_kwargs={"normalize_embeddings": self._config.normalize},
        )
        LOGGER.info("Loaded embedding model %s", self._config.model)

    async def embed(self, text: str) -> Sequence[float]:
        return await asyncio.to_thread(self._client.embed_query, text)


def build_embedding_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    if not config.use_model:
        LOGGER.info("Embedding backend running in hash-only mode.")
        return HashEmbeddingBackend(config)
    return HuggingFaceEmbeddingBackend(config)


class Embedder:
    """Validating front for an embedding backend.

    Empty input, provider exceptions and malformed vectors all surface as
    :class:`EmbeddingError`; nothing is retried here.
    """

    def __init__(self, backend: EmbeddingBackend, config: EmbeddingConfig | None = None) -> None:
        self._backend = backend
        self._config = config or EmbeddingConfig()

    @property
    def dim(self) -> int:
        return self._config.dim

    async def embed(self, text: str) -> Tuple[float, ...]:
        if text is None or not text.strip():
            raise EmbeddingError("Input text cannot be empty")
        try:
            raw = await self._backend.embed(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            LOGGER.error("Embedding provider failed: %s", exc)
            raise EmbeddingError(f"Embedding provider failed: {exc}") from exc
        vector = self._validate(raw)
        if len(vector) != self._config.dim:
            LOGGER.warning(
                "Embedding dim mismatch: configured=%d, actual=%d",
                self._config.dim,
                len(vector),
            )
        return vector

    async def embed_query(self, query: str) -> Tuple[float, ...]:
        if query is None or not query.strip():
            raise InvalidInput("Query cannot be empty")
        return await self.embed(query)

    async def embed_chunks(self, chunks: Sequence[Chunk]) -> list[EmbeddedChunk]:
        embedded: list[EmbeddedChunk] = []
        for chunk in chunks:
            embedded.append(EmbeddedChunk(chunk=chunk, vector=await self.embed(chunk.text)))
        return embedded

    @staticmethod
    def _validate(raw: object) -> Tuple[float, ...]:
        if isinstance(raw, (str, bytes)) or not hasattr(raw, "__iter__"):
            raise EmbeddingError("Invalid embedding format in response")
        values = tuple(raw)
        if not values:
            raise EmbeddingError("Provider returned an empty embedding")
        if not all(isinstance(value, Real) and not isinstance(value, bool) for value in values):
            raise EmbeddingError("Invalid embedding format in response")
        return tuple(float(value) for value in values)

"""Embedding services."""

from .service import (
    Embedder,
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    build_embedding_backend,
)
from .store import ChromaVectorIndex, VectorIndex

__all__ = [
    "ChromaVectorIndex",
    "Embedder",
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "VectorIndex",
    "build_embedding_backend",
]

from __future__ import annotations

import asyncio
import math

import pytest

from ragengine.embeddings.service import Embedder, EmbeddingConfig, HashEmbeddingBackend
from ragengine.errors import EmbeddingError, InvalidInput
from ragengine.models import Chunk


class BrokenBackend:
    async def embed(self, text: str):
        raise ConnectionError("provider down")


class MalformedBackend:
    def __init__(self, payload: object) -> None:
        self._payload = payload

    async def embed(self, text: str):
        return self._payload


def test_hash_embedding_dim_matches_config():
    vec = asyncio.run(HashEmbeddingBackend(EmbeddingConfig(dim=64)).embed("hello world"))
    assert isinstance(vec, tuple)
    assert len(vec) == 64
    assert math.isclose(math.sqrt(sum(v * v for v in vec)), 1.0)


def test_embed_is_deterministic():
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=32)), EmbeddingConfig(dim=32))
    first = asyncio.run(embedder.embed("שיבוט גנטי"))
    second = asyncio.run(embedder.embed("שיבוט גנטי"))
    assert first == second


def test_embed_chunks_returns_vectors():
    embedder = Embedder(HashEmbeddingBackend(EmbeddingConfig(dim=32)), EmbeddingConfig(dim=32))
    chunks = [Chunk("alpha", 0, 2), Chunk("beta", 1, 2)]
    embedded = asyncio.run(embedder.embed_chunks(chunks))
    assert len(embedded) == 2
    assert embedded[1].chunk is chunks[1]
    assert len(embedded[0].vector) == 32


def test_empty_input_is_an_embedding_error():
    embedder = Embedder(HashEmbeddingBackend())
    with pytest.raises(EmbeddingError):
        asyncio.run(embedder.embed("  "))
    with pytest.raises(InvalidInput):
        asyncio.run(embedder.embed_query(""))


def test_provider_failure_is_wrapped():
    with pytest.raises(EmbeddingError) as excinfo:
        asyncio.run(Embedder(BrokenBackend()).embed("text"))
    assert isinstance(excinfo.value.__cause__, ConnectionError)


@pytest.mark.parametrize("payload", [None, "vector", [], [0.1, "x"], [True, False]])
def test_malformed_vectors_rejected(payload: object):
    with pytest.raises(EmbeddingError):
        asyncio.run(Embedder(MalformedBackend(payload)).embed("text"))

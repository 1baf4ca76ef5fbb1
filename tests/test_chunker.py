from __future__ import annotations

import pytest

from ragengine.errors import InvalidInput
from ragengine.ingestion.chunker import ChunkerConfig, RecursiveChunker, SentenceChunker, chunk_text, normalize_text


def _long_text(sentences: int = 30) -> str:
    return " ".join(f"Sentence number {i} talks about retrieval and ranking." for i in range(sentences))


def test_text_shorter_than_minimum_yields_no_chunks():
    assert list(chunk_text("Too short to index.")) == []


def test_empty_text_is_rejected():
    with pytest.raises(InvalidInput):
        chunk_text("   \n  ")


def test_single_chunk_when_text_fits():
    text = "A medium sized paragraph. " * 6
    chunks = chunk_text(text)
    assert len(chunks) == 1
    assert chunks[0].text == text.strip()
    assert chunks[0].index == 0
    assert chunks[0].total_in_document == 1


def test_chunks_respect_size_bounds_and_indices():
    config = ChunkerConfig()
    chunks = SentenceChunker(config).chunk(_long_text(), document_id="doc-1", file_name="a.txt")
    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert config.min_chunk_size <= len(chunk.text) <= config.max_chunk_size
        assert chunk.total_in_document == len(chunks)
        assert chunk.source_document_id == "doc-1"
        assert chunk.file_name == "a.txt"


def test_consecutive_chunks_share_overlap():
    config = ChunkerConfig(min_chunk_size=100, max_chunk_size=300, overlap_size=50)
    chunks = SentenceChunker(config).chunk(_long_text())
    for previous, current in zip(chunks[:-2], chunks[1:-1]):
        seed = previous.text[-config.overlap_size :].lstrip()
        assert current.text.startswith(seed)


def test_every_source_word_survives_chunking():
    text = _long_text(40) + " trailing words without final punctuation"
    chunks = chunk_text(text)
    covered = {word for chunk in chunks for word in chunk.text.split()}
    assert set(text.split()) <= covered
    assert chunks[-1].text.endswith("without final punctuation")


def test_paragraph_breaks_are_kept_as_newlines():
    text = "First paragraph sentence one. Sentence two here.\n\nSecond paragraph follows with more words in it."
    chunks = SentenceChunker(ChunkerConfig(min_chunk_size=20, max_chunk_size=500, overlap_size=10)).chunk(text)
    assert len(chunks) == 1
    assert "here.\nSecond paragraph" in chunks[0].text


def test_oversized_sentence_is_split_on_words():
    sentence = " ".join(["word"] * 400) + "."
    config = ChunkerConfig()
    chunks = chunk_text(sentence, config)
    assert len(chunks) > 1
    assert all(len(c.text) <= config.max_chunk_size for c in chunks)


def test_invalid_config_rejected():
    with pytest.raises(ValueError):
        ChunkerConfig(min_chunk_size=600, max_chunk_size=500)
    with pytest.raises(ValueError):
        ChunkerConfig(overlap_size=500)


def test_normalize_text_strips_nul_and_composes():
    assert normalize_text("e\u0301\x00 ") == "\u00e9"


def test_recursive_chunker_numbers_chunks():
    chunks = RecursiveChunker(chunk_size=120, chunk_overlap=20).chunk(_long_text(10), file_name="r.txt")
    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.text) <= 120 for c in chunks)
    assert all(c.file_name == "r.txt" for c in chunks)

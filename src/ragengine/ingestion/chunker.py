"""Sentence-aware chunking with character overlap."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator, List, Protocol, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ragengine.errors import InvalidInput
from ragengine.models import Chunk

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?。．！？])\s+")
_RECURSIVE_SEPARATORS = ["\n\n", "\n", ".", "!", "?", ",", " ", ""]


@dataclass(frozen=True)
class ChunkerConfig:
    """Size bounds for the sentence chunker, in characters."""

    min_chunk_size: int = 100
    max_chunk_size: int = 500
    overlap_size: int = 100

    def __post_init__(self) -> None:
        if self.min_chunk_size <= 0 or self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must be positive and not above max_chunk_size")
        if not 0 <= self.overlap_size < self.max_chunk_size:
            raise ValueError("overlap_size must be in [0, max_chunk_size)")
        if self.max_unit_size < 1:
            raise ValueError("max_chunk_size leaves no room next to min_chunk_size/overlap_size")

    @property
    def max_unit_size(self) -> int:
        # Largest sentence that can always be appended to a short buffer or an overlap seed.
        return self.max_chunk_size - max(self.min_chunk_size, self.overlap_size) - 1


class TextChunker(Protocol):
    """Protocol for chunking strategies."""

    def chunk(
        self,
        text: str,
        *,
        document_id: str = "",
        source_url: str = "",
        file_name: str = "",
    ) -> Sequence[Chunk]:
        """Split raw document text into chunks."""


def normalize_text(raw: str) -> str:
    """Canonical composition with NUL bytes removed."""

    return unicodedata.normalize("NFC", raw.replace("\x00", "")).strip()


def _require_text(text: str) -> str:
    if text is None or not text.strip():
        raise InvalidInput("Input text cannot be empty")
    return normalize_text(text)


def _build_chunks(
    texts: Sequence[str], *, document_id: str, source_url: str, file_name: str
) -> List[Chunk]:
    total = len(texts)
    return [
        Chunk(
            text=text,
            index=index,
            total_in_document=total,
            source_document_id=document_id,
            source_url=source_url,
            file_name=file_name,
        )
        for index, text in enumerate(texts)
    ]


class SentenceChunker:
    """Greedy sentence accumulator producing overlapping, size-bounded chunks."""

    def __init__(self, config: ChunkerConfig | None = None) -> None:
        self._config = config or ChunkerConfig()

    @property
    def config(self) -> ChunkerConfig:
        return self._config

    def chunk(
        self,
        text: str,
        *,
        document_id: str = "",
        source_url: str = "",
        file_name: str = "",
    ) -> Sequence[Chunk]:
        normalized = _require_text(text)
        texts = self.split(normalized)
        return _build_chunks(texts, document_id=document_id, source_url=source_url, file_name=file_name)

    def split(self, normalized: str) -> List[str]:
        cfg = self._config
        chunks: List[str] = []
        buffer = ""
        # Length of the overlap prefix carried into the buffer from the previous chunk.
        seed_length = 0

        for unit, joiner in self._units(normalized):
            candidate = f"{buffer}{joiner}{unit}" if buffer else unit
            if len(candidate) <= cfg.max_chunk_size or len(buffer) < cfg.min_chunk_size:
                buffer = candidate
                continue
            chunks.append(buffer)
            seed = buffer[len(buffer) - cfg.overlap_size :].lstrip() if cfg.overlap_size else ""
            buffer = f"{seed} {unit}" if seed else unit
            seed_length = len(seed) + 1 if seed else 0

        if len(buffer) >= cfg.min_chunk_size:
            chunks.append(buffer)
        elif not chunks:
            # Whitespace collapsing can shorten a source that met the minimum.
            if buffer and len(normalized) >= cfg.min_chunk_size:
                chunks.append(buffer)
        else:
            chunks.append(self._widen_tail(chunks[-1], buffer[seed_length:]))
        return chunks

    def _widen_tail(self, previous: str, remainder: str) -> str:
        # Pull more of the previous chunk in so the last chunk still reaches the minimum.
        joined = f"{previous} {remainder.strip()}"
        start = max(0, len(joined) - self._config.min_chunk_size)
        while start > 0 and joined[start].isspace():
            start -= 1
        return joined[start:]

    def _units(self, normalized: str) -> Iterator[tuple[str, str]]:
        first = True
        for paragraph in _PARAGRAPH_BREAK.split(normalized):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            joiner = "\n"
            for sentence in self._sentences(paragraph):
                for piece in self._bounded(sentence):
                    yield piece, ("" if first else joiner)
                    first = False
                    joiner = " "

    @staticmethod
    def _sentences(paragraph: str) -> List[str]:
        sentences = [s.strip() for s in _SENTENCE_BREAK.split(paragraph) if s.strip()]
        return sentences or [paragraph]

    def _bounded(self, sentence: str) -> Iterator[str]:
        limit = self._config.max_unit_size
        if len(sentence) <= limit:
            yield sentence
            return
        piece = ""
        for word in sentence.split():
            while len(word) > limit:
                if piece:
                    yield piece
                    piece = ""
                yield word[:limit]
                word = word[limit:]
            if not word:
                continue
            if piece and len(piece) + 1 + len(word) > limit:
                yield piece
                piece = word
            else:
                piece = f"{piece} {word}" if piece else word
        if piece:
            yield piece


class RecursiveChunker:
    """LangChain recursive character splitter with the same chunk contract."""

    def __init__(self, chunk_size: int = 768, chunk_overlap: int = 50) -> None:
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=_RECURSIVE_SEPARATORS,
        )

    def chunk(
        self,
        text: str,
        *,
        document_id: str = "",
        source_url: str = "",
        file_name: str = "",
    ) -> Sequence[Chunk]:
        normalized = _require_text(text)
        texts = [piece.strip() for piece in self._splitter.split_text(normalized) if piece.strip()]
        return _build_chunks(texts, document_id=document_id, source_url=source_url, file_name=file_name)


def chunk_text(text: str, config: ChunkerConfig | None = None) -> Sequence[Chunk]:
    """Convenience helper for tests and ad-hoc chunking."""

    return SentenceChunker(config).chunk(text)

"""Document ingestion pipeline."""

from .chunker import ChunkerConfig, RecursiveChunker, SentenceChunker, TextChunker, chunk_text, normalize_text
from .loaders import load_text, supported_extensions
from .service import DocumentIngestor, IngestionConfig, build_chunker, extract_document_metadata

__all__ = [
    "ChunkerConfig",
    "DocumentIngestor",
    "IngestionConfig",
    "RecursiveChunker",
    "SentenceChunker",
    "TextChunker",
    "build_chunker",
    "chunk_text",
    "extract_document_metadata",
    "load_text",
    "normalize_text",
    "supported_extensions",
]

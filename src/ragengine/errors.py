"""Exception hierarchy shared by the retrieval and generation layers."""

from __future__ import annotations


class RagEngineError(RuntimeError):
    """Base class for all engine errors."""


class InvalidInput(RagEngineError, ValueError):
    """Raised for empty queries or texts, rejected before any external call."""


class UnknownModelError(InvalidInput):
    """Raised when a model id is not part of the configured catalog."""


class EmbeddingError(RagEngineError):
    """Raised when the embedding provider fails or returns a malformed vector."""


class SearchError(RagEngineError):
    """Raised when the vector index cannot be queried or updated."""


class IngestionError(RagEngineError):
    """Raised when a document cannot be loaded for ingestion."""


class UnsupportedFileTypeError(IngestionError):
    """Raised when a document extension has no registered loader."""


class GenerationFailure(RagEngineError):
    """Raised once a generation retry policy is exhausted without a result."""

    def __init__(self, message: str, *, attempts: int = 0, last_model: str | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_model = last_model


__all__ = [
    "EmbeddingError",
    "GenerationFailure",
    "IngestionError",
    "InvalidInput",
    "RagEngineError",
    "SearchError",
    "UnknownModelError",
    "UnsupportedFileTypeError",
]

"""Turn uploaded files into raw text using LangChain document loaders."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_community.document_loaders.base import BaseLoader

from ragengine.errors import IngestionError, UnsupportedFileTypeError

_LOADERS: Mapping[str, type[BaseLoader]] = {
    ".pdf": PyPDFLoader,
    ".docx": Docx2txtLoader,
    ".txt": TextLoader,
    ".md": TextLoader,
}

CONTENT_TYPES: Mapping[str, str] = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".md": "text/markdown",
}


def supported_extensions() -> tuple[str, ...]:
    return tuple(_LOADERS)


def load_text(path: Path, *, encoding: str = "utf-8") -> str:
    """Extract the full text of ``path``; pages are joined with blank lines."""

    suffix = path.suffix.lower()
    loader_cls = _LOADERS.get(suffix)
    if loader_cls is None:
        raise UnsupportedFileTypeError(f"Unsupported document type: {suffix or '<none>'}")
    loader = loader_cls(str(path), encoding=encoding) if loader_cls is TextLoader else loader_cls(str(path))
    try:
        documents = loader.load()
    except Exception as exc:  # pragma: no cover - loader specific errors
        raise IngestionError(f"Failed to load {path.name}: {exc}") from exc
    return "\n\n".join(document.page_content for document in documents)

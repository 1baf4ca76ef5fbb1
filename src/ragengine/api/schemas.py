"""Pydantic models for the ragengine API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentSummary(BaseModel):
    document_id: str = Field(..., description="Stable identifier for the ingested document")
    file_name: str
    file_url: str = ""
    title: str = ""
    author: str = ""
    main_topic: str = ""
    doc_type: str = ""
    chunk_count: int = Field(..., ge=0, description="Number of chunks created for the document")


class DocumentIngestionResponse(BaseModel):
    documents: List[DocumentSummary]


class TextIngestionRequest(BaseModel):
    """Payload for ingesting raw text content."""

    text: str = Field(..., description="Raw document text")
    file_name: str = Field(..., min_length=1, description="Name the chunks are indexed under")
    file_url: str = Field(default="", description="Where the original document can be fetched")
    replace_existing: bool = Field(default=True, description="Drop chunks previously indexed for this file")


class ChatMessageModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class GenerateRequest(BaseModel):
    query: str = Field(..., description="End-user question to answer")
    history: List[ChatMessageModel] = Field(default_factory=list, description="Earlier turns of the conversation")


class GenerateDebug(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    context_chunks: int
    has_context: bool
    query: str
    used_model: str
    used_model_name: str
    retry_count: int


class GenerateResponse(BaseModel):
    content: str
    debug: GenerateDebug


class SearchRequest(BaseModel):
    query: str = Field(..., description="Search text")
    use_mmr: bool = Field(default=True, description="Diversify hits with maximal marginal relevance")


class FileMatchModel(BaseModel):
    chunk_text: str
    chunk_index: int
    similarity: float
    exact_match: bool


class FileResultModel(BaseModel):
    file_name: str
    file_url: str
    total_chunks: int
    best_match: float
    matches: List[FileMatchModel]


class SearchResponse(BaseModel):
    query: str
    results: List[FileResultModel]


class ModelOption(BaseModel):
    id: str
    name: str


class RetrievalSettingsModel(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    selected_model: str = Field(..., description="Model id from the configured catalog")
    max_retries: int = Field(default=3, description="Attempts per model, clamped to the system maximum")
    retry_strategy: str = Field(default="single", description="'single' or 'all'")
    updated_at: Optional[datetime] = None


class SettingsResponse(BaseModel):
    settings: RetrievalSettingsModel
    available_models: List[ModelOption]
    system_max_retries: int


class IndexedFileModel(BaseModel):
    file_name: str
    file_url: str
    chunk_count: int
    created_at: str = ""


class IndexSummaryResponse(BaseModel):
    collection: str
    total_chunks: int
    files: List[IndexedFileModel]


class DeleteFileResponse(BaseModel):
    file_name: str
    removed_chunks: int

"""FastAPI application exposing ragengine services."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ragengine.api.schemas import (
    DeleteFileResponse,
    DocumentIngestionResponse,
    DocumentSummary,
    FileMatchModel,
    FileResultModel,
    GenerateDebug,
    GenerateRequest,
    GenerateResponse,
    IndexedFileModel,
    IndexSummaryResponse,
    ModelOption,
    RetrievalSettingsModel,
    SearchRequest,
    SearchResponse,
    SettingsResponse,
    TextIngestionRequest,
)
from ragengine.config import Settings, get_settings
from ragengine.embeddings import ChromaVectorIndex, Embedder, EmbeddingConfig, VectorIndex, build_embedding_backend
from ragengine.errors import (
    EmbeddingError,
    GenerationFailure,
    IngestionError,
    InvalidInput,
    RagEngineError,
    SearchError,
    UnsupportedFileTypeError,
)
from ragengine.ingestion import DocumentIngestor, IngestionConfig, supported_extensions
from ragengine.metrics.observability import (
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
)
from ragengine.models import DocumentMetadata, RetrievalSettings, RetryStrategy
from ragengine.retrieval import ContextAssembler, ContextConfig, HybridScorer
from ragengine.services import (
    ChatMessage,
    GenerationConfig,
    GenerationOrchestrator,
    JsonFileSettingsStore,
    InMemorySettingsStore,
    ModelCatalog,
    OrchestratorConfig,
    QueryConfig,
    QueryService,
    SettingsStore,
    build_generation_backend,
)

# Most specific first; the first isinstance match wins.
_ERROR_STATUS: tuple[tuple[type[RagEngineError], int], ...] = (
    (UnsupportedFileTypeError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (InvalidInput, status.HTTP_400_BAD_REQUEST),
    (GenerationFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (IngestionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (EmbeddingError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (SearchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


@dataclass(frozen=True)
class AppDependencies:
    ingestor: DocumentIngestor
    index: VectorIndex
    query_service: QueryService
    settings_store: SettingsStore
    catalog: ModelCatalog


def _status_for(exc: RagEngineError) -> int:
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _build_dependencies(settings: Settings) -> AppDependencies:
    embedder = Embedder(
        build_embedding_backend(
            EmbeddingConfig(
                model=settings.embedding_model,
                dim=settings.embedding_dim,
                use_model=settings.use_model_embeddings,
                normalize=True,
            ),
        ),
        EmbeddingConfig(model=settings.embedding_model, dim=settings.embedding_dim),
    )
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    elif settings.is_test:
        chroma_client = chromadb.EphemeralClient()
    index = ChromaVectorIndex(
        settings.chroma_collection,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
    )
    ingestor = DocumentIngestor(
        embedder,
        index,
        IngestionConfig(
            splitter=settings.chunk_splitter,
            min_chunk_size=settings.min_chunk_size,
            max_chunk_size=settings.max_chunk_size,
            overlap_size=settings.chunk_overlap,
            recursive_chunk_size=settings.recursive_chunk_size,
            recursive_chunk_overlap=settings.recursive_chunk_overlap,
        ),
    )
    catalog = ModelCatalog(settings.generation_models_tuple, settings.model_display_names)
    orchestrator = GenerationOrchestrator(
        build_generation_backend(
            GenerationConfig(
                max_new_tokens=settings.generator_max_new_tokens,
                use_model=settings.use_model_generator,
            ),
        ),
        catalog,
        OrchestratorConfig(
            temperature=settings.generation_temperature,
            backoff_seconds=settings.retry_backoff_seconds,
            fallback_message=settings.generation_fallback_message,
        ),
    )
    query_service = QueryService(
        embedder,
        index,
        orchestrator,
        scorer=HybridScorer(),
        assembler=ContextAssembler(ContextConfig(group_by_topic=settings.group_context_by_topic)),
        config=QueryConfig(
            match_threshold=settings.query_match_threshold,
            match_count=settings.query_match_count,
            context_chunks=settings.query_context_chunks,
            mmr_lambda=settings.query_mmr_lambda,
            search_match_threshold=settings.search_match_threshold,
            search_match_count=settings.search_match_count,
            search_result_count=settings.search_result_count,
            search_mmr_lambda=settings.search_mmr_lambda,
            no_context_message=settings.no_context_message,
        ),
    )
    if settings.is_test:
        settings_store: SettingsStore = InMemorySettingsStore(catalog, settings.max_retries)
    else:
        settings_store = JsonFileSettingsStore(settings.settings_path, catalog, settings.max_retries)
    return AppDependencies(
        ingestor=ingestor,
        index=index,
        query_service=query_service,
        settings_store=settings_store,
        catalog=catalog,
    )


def _document_summary(metadata: DocumentMetadata, chunk_count: int) -> DocumentSummary:
    return DocumentSummary(
        document_id=metadata.document_id,
        file_name=metadata.file_name,
        file_url=metadata.file_url,
        title=metadata.title,
        author=metadata.author,
        main_topic=metadata.main_topic,
        doc_type=metadata.doc_type,
        chunk_count=chunk_count,
    )


def _settings_model(settings: RetrievalSettings) -> RetrievalSettingsModel:
    return RetrievalSettingsModel(
        selected_model=settings.selected_model,
        max_retries=settings.max_retries,
        retry_strategy=settings.retry_strategy.value,
        updated_at=settings.updated_at,
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="ragengine API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(RagEngineError)
    async def handle_engine_error(request: Request, exc: RagEngineError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id()
        code = _status_for(exc)
        log = logger.warning if code < 500 else logger.error
        log("request.error", correlation_id=correlation_id, error_type=type(exc).__name__, detail=str(exc))
        return JSONResponse(status_code=code, content={"detail": str(exc), "correlation_id": correlation_id})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id()
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_ingestor(dep: AppDependencies = Depends(get_dependencies)) -> DocumentIngestor:
        return dep.ingestor

    def get_index(dep: AppDependencies = Depends(get_dependencies)) -> VectorIndex:
        return dep.index

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> QueryService:
        return dep.query_service

    def get_settings_store(dep: AppDependencies = Depends(get_dependencies)) -> SettingsStore:
        return dep.settings_store

    @app.post("/documents", response_model=DocumentIngestionResponse, status_code=status.HTTP_201_CREATED)
    async def upload_documents(
        files: Sequence[UploadFile] = File(...),
        file_url: str = Form(default=""),
        ingestor: DocumentIngestor = Depends(get_ingestor),
    ) -> DocumentIngestionResponse:
        if not files:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
        summaries: list[DocumentSummary] = []
        limit = settings.max_upload_size_mb * 1024 * 1024
        with tempfile.TemporaryDirectory() as tmpdir:
            for upload in files:
                filename = Path(upload.filename or f"upload-{uuid4().hex}.txt").name
                suffix = Path(filename).suffix.lower()
                if suffix not in settings.allowed_extensions_tuple or suffix not in supported_extensions():
                    await upload.close()
                    raise UnsupportedFileTypeError(f"Unsupported file type: {suffix or 'unknown'}")
                destination = Path(tmpdir) / filename
                bytes_written = 0
                with destination.open("wb") as out_f:
                    while True:
                        block = await upload.read(1024 * 1024)
                        if not block:
                            break
                        out_f.write(block)
                        bytes_written += len(block)
                        if bytes_written > limit:
                            await upload.close()
                            raise HTTPException(
                                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                                detail=f"File too large (>{settings.max_upload_size_mb}MB): {filename}",
                            )
                await upload.close()
                if bytes_written == 0:
                    raise InvalidInput(f"File is empty: {filename}")
                metadata, embedded = await ingestor.ingest_file(
                    destination, file_name=filename, file_url=file_url or filename
                )
                summaries.append(_document_summary(metadata, len(embedded)))
        return DocumentIngestionResponse(documents=summaries)

    @app.post("/documents/text", response_model=DocumentIngestionResponse, status_code=status.HTTP_201_CREATED)
    async def ingest_raw_text(
        payload: TextIngestionRequest,
        ingestor: DocumentIngestor = Depends(get_ingestor),
    ) -> DocumentIngestionResponse:
        metadata, embedded = await ingestor.ingest_text(
            payload.text,
            file_name=payload.file_name,
            file_url=payload.file_url or payload.file_name,
            replace_existing=payload.replace_existing,
        )
        return DocumentIngestionResponse(documents=[_document_summary(metadata, len(embedded))])

    @app.post("/generate", response_model=GenerateResponse)
    async def generate_answer(
        payload: GenerateRequest,
        service: QueryService = Depends(get_query_service),
        store: SettingsStore = Depends(get_settings_store),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> GenerateResponse:
        retrieval_settings = await store.load()
        history = [ChatMessage(role=message.role, content=message.content) for message in payload.history]
        result = await service.answer(payload.query, retrieval_settings, history)
        return GenerateResponse(
            content=result.content,
            debug=GenerateDebug(
                context_chunks=result.context_chunks,
                has_context=result.has_context,
                query=payload.query,
                used_model=result.used_model,
                used_model_name=dep.catalog.display_name(result.used_model),
                retry_count=result.retry_count,
            ),
        )

    @app.post("/search", response_model=SearchResponse)
    async def search_documents(
        payload: SearchRequest,
        service: QueryService = Depends(get_query_service),
    ) -> SearchResponse:
        results = await service.search(payload.query, use_mmr=payload.use_mmr)
        return SearchResponse(
            query=payload.query,
            results=[
                FileResultModel(
                    file_name=result.file_name,
                    file_url=result.file_url,
                    total_chunks=result.total_chunks,
                    best_match=result.best_match,
                    matches=[
                        FileMatchModel(
                            chunk_text=match.chunk_text,
                            chunk_index=match.chunk_index,
                            similarity=match.similarity,
                            exact_match=match.exact_match,
                        )
                        for match in result.matches
                    ],
                )
                for result in results
            ],
        )

    def _settings_response(current: RetrievalSettings, dep: AppDependencies) -> SettingsResponse:
        return SettingsResponse(
            settings=_settings_model(current),
            available_models=[ModelOption(id=model, name=dep.catalog.display_name(model)) for model in dep.catalog],
            system_max_retries=settings.max_retries,
        )

    @app.get("/admin/settings", response_model=SettingsResponse)
    async def read_settings(
        store: SettingsStore = Depends(get_settings_store),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> SettingsResponse:
        return _settings_response(await store.load(), dep)

    @app.post("/admin/settings", response_model=SettingsResponse)
    async def update_settings(
        payload: RetrievalSettingsModel,
        store: SettingsStore = Depends(get_settings_store),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> SettingsResponse:
        saved = await store.save(
            RetrievalSettings(
                selected_model=payload.selected_model,
                max_retries=payload.max_retries,
                retry_strategy=RetryStrategy.parse(payload.retry_strategy),
            ),
        )
        logger.info("settings.updated", selected_model=saved.selected_model, retry_strategy=saved.retry_strategy.value)
        return _settings_response(saved, dep)

    @app.get("/admin/embeddings", response_model=IndexSummaryResponse)
    async def list_embeddings(index: VectorIndex = Depends(get_index)) -> IndexSummaryResponse:
        files = await index.list_files()
        return IndexSummaryResponse(
            collection=settings.chroma_collection,
            total_chunks=await index.count(),
            files=[
                IndexedFileModel(
                    file_name=item.file_name,
                    file_url=item.file_url,
                    chunk_count=item.chunk_count,
                    created_at=item.created_at,
                )
                for item in files
            ],
        )

    @app.delete("/admin/files/{file_name}", response_model=DeleteFileResponse)
    async def delete_file(file_name: str, index: VectorIndex = Depends(get_index)) -> DeleteFileResponse:
        removed = await index.delete_file(file_name)
        if not removed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No embeddings for {file_name}")
        logger.info("index.file_deleted", file_name=file_name, removed_chunks=removed)
        return DeleteFileResponse(file_name=file_name, removed_chunks=removed)

    @app.delete("/admin/index", status_code=status.HTTP_204_NO_CONTENT)
    async def reset_index(index: VectorIndex = Depends(get_index)) -> Response:
        await index.reset()
        logger.info("index.reset", collection=settings.chroma_collection)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from ragengine import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    return app


app = create_app()

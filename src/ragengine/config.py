"""Runtime configuration for the ragengine services."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: tuple[str, ...] | str) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return tuple(v.strip() for v in value if v.strip())
    return tuple(p.strip() for p in value.split(",") if p.strip())


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="ragengine_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "ragengine-embeddings"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False

    # Multilingual sentence-embedding model; dim must match
    embedding_model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    embedding_dim: int = 384
    use_model_embeddings: bool = False

    # Ordered list of generation models, first one is the default
    generation_models: tuple[str, ...] | str = ("Qwen/Qwen2.5-1.5B-Instruct", "Qwen/Qwen2.5-0.5B-Instruct")
    model_display_names_json: str | None = None
    generation_temperature: float = 0.5
    generator_max_new_tokens: int = 1024
    use_model_generator: bool = False
    max_retries: int = 3
    retry_backoff_seconds: float = 0.0

    # Chunking
    chunk_splitter: Literal["sentence", "recursive"] = "sentence"
    min_chunk_size: int = 100
    max_chunk_size: int = 500
    chunk_overlap: int = 100
    recursive_chunk_size: int = 768
    recursive_chunk_overlap: int = 50

    # Retrieval
    query_match_threshold: float = 0.5
    query_match_count: int = 20
    query_context_chunks: int = 10
    query_mmr_lambda: float = 0.7
    group_context_by_topic: bool = False
    search_match_threshold: float = 0.5
    search_match_count: int = 50
    search_result_count: int = 20
    search_mmr_lambda: float = 0.7

    settings_path: Path = Path("./data/retrieval_settings.json")

    # Upload safety
    allowed_extensions: tuple[str, ...] | str = (".txt", ".md", ".pdf", ".docx")
    max_upload_size_mb: int = 25

    no_context_message: str = (
        "מצטער, לא מצאתי במסמכים מידע שעונה על שאלתך. האם תוכל לנסח את השאלה בצורה אחרת?"
    )
    generation_fallback_message: str = "מצטער, לא הצלחתי לעבד את השאילתה. אנא נסה שוב מאוחר יותר."

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def generation_models_tuple(self) -> tuple[str, ...]:
        return _split_csv(self.generation_models)

    @property
    def allowed_extensions_tuple(self) -> tuple[str, ...]:
        return tuple(ext.lower() for ext in _split_csv(self.allowed_extensions)) or (".txt",)

    @property
    def model_display_names(self) -> dict[str, str]:
        if not self.model_display_names_json:
            return {}
        try:
            parsed = json.loads(self.model_display_names_json)
        except json.JSONDecodeError:
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {str(k): str(v) for k, v in parsed.items()}


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()

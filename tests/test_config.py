from __future__ import annotations

from ragengine.config import Settings, get_settings


def test_defaults_embedding_model_and_dim():
    settings = get_settings({"environment": "test"})
    assert settings.embedding_model == "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    assert settings.embedding_dim == 384


def test_retrieval_defaults():
    settings = Settings()
    assert (settings.min_chunk_size, settings.max_chunk_size, settings.chunk_overlap) == (100, 500, 100)
    assert settings.query_match_threshold == 0.5
    assert settings.query_context_chunks == 10
    assert settings.search_match_count == 50
    assert settings.query_mmr_lambda == 0.7


def test_comma_separated_lists_are_split():
    settings = Settings(generation_models=" m1, m2 ,", allowed_extensions=".TXT,.pdf")
    assert settings.generation_models_tuple == ("m1", "m2")
    assert settings.allowed_extensions_tuple == (".txt", ".pdf")


def test_display_names_from_json():
    assert Settings(model_display_names_json='{"m1": "Model One"}').model_display_names == {"m1": "Model One"}
    assert Settings(model_display_names_json="not json").model_display_names == {}


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("RAGENGINE_MAX_RETRIES", "5")
    assert Settings().max_retries == 5

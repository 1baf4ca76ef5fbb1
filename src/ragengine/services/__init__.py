"""Service layer orchestrations for ragengine."""

from .catalog import ModelCatalog
from .generation import (
    GenerationBackend,
    GenerationConfig,
    TemplateGenerator,
    TransformersGenerator,
    build_generation_backend,
)
from .orchestrator import GenerationOrchestrator, OrchestratorConfig
from .query import ChatMessage, PromptBuilder, PromptBuilderConfig, QueryConfig, QueryService
from .settings_store import InMemorySettingsStore, JsonFileSettingsStore, SettingsStore, validate_settings

__all__ = [
    "ChatMessage",
    "GenerationBackend",
    "GenerationConfig",
    "GenerationOrchestrator",
    "InMemorySettingsStore",
    "JsonFileSettingsStore",
    "ModelCatalog",
    "OrchestratorConfig",
    "PromptBuilder",
    "PromptBuilderConfig",
    "QueryConfig",
    "QueryService",
    "SettingsStore",
    "TemplateGenerator",
    "TransformersGenerator",
    "build_generation_backend",
    "validate_settings",
]

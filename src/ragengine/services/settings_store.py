"""Read-through persistence for :class:`RetrievalSettings`."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Protocol

from ragengine.errors import InvalidInput, UnknownModelError
from ragengine.metrics.observability import get_logger
from ragengine.models import RetrievalSettings, RetryStrategy
from ragengine.services.catalog import ModelCatalog

_logger = get_logger("settings")


class SettingsStore(Protocol):
    """Load and save the process-wide generation settings."""

    async def load(self) -> RetrievalSettings:
        """Return the most recently saved settings, or defaults."""

    async def save(self, settings: RetrievalSettings) -> RetrievalSettings:
        """Validate, persist and return the stored settings."""


def default_settings(catalog: ModelCatalog, system_max_retries: int) -> RetrievalSettings:
    return RetrievalSettings(
        selected_model=catalog.default,
        max_retries=system_max_retries,
        retry_strategy=RetryStrategy.SINGLE,
    )


def validate_settings(
    settings: RetrievalSettings, catalog: ModelCatalog, system_max_retries: int
) -> RetrievalSettings:
    """Apply the admin rules: known model required, retries clamped, strategy defaulted."""

    if not (settings.selected_model or "").strip():
        raise InvalidInput("Selected model is required")
    model = catalog.resolve(settings.selected_model)
    return RetrievalSettings(
        selected_model=model,
        max_retries=min(max(0, int(settings.max_retries)), system_max_retries),
        retry_strategy=RetryStrategy.parse(settings.retry_strategy),
        updated_at=settings.updated_at or datetime.now(timezone.utc),
    )


def settings_from_mapping(data: Mapping[str, object], *, fallback_retries: int) -> RetrievalSettings:
    raw_retries = data.get("maxRetries", data.get("max_retries"))
    updated = data.get("updatedAt", data.get("updated_at"))
    return RetrievalSettings(
        selected_model=str(data.get("selectedModel", data.get("selected_model", "")) or ""),
        max_retries=raw_retries if isinstance(raw_retries, int) and not isinstance(raw_retries, bool) else fallback_retries,
        retry_strategy=RetryStrategy.parse(data.get("retryStrategy", data.get("retry_strategy"))),
        updated_at=datetime.fromisoformat(updated) if isinstance(updated, str) and updated else None,
    )


def settings_to_mapping(settings: RetrievalSettings) -> dict[str, object]:
    return {
        "selectedModel": settings.selected_model,
        "maxRetries": settings.max_retries,
        "retryStrategy": settings.retry_strategy.value,
        "updatedAt": settings.updated_at.isoformat() if settings.updated_at else None,
    }


class _BaseSettingsStore:
    def __init__(self, catalog: ModelCatalog, system_max_retries: int = 3) -> None:
        self._catalog = catalog
        self._system_max_retries = system_max_retries

    @property
    def system_max_retries(self) -> int:
        return self._system_max_retries

    def _on_load(self, stored: RetrievalSettings | None) -> RetrievalSettings:
        if stored is None:
            return default_settings(self._catalog, self._system_max_retries)
        try:
            return validate_settings(stored, self._catalog, self._system_max_retries)
        except UnknownModelError:
            _logger.warning("settings.unknown_model", stored_model=stored.selected_model, fallback=self._catalog.default)
            fixed = replace(stored, selected_model=self._catalog.default)
            return validate_settings(fixed, self._catalog, self._system_max_retries)


class InMemorySettingsStore(_BaseSettingsStore):
    """Settings held for the lifetime of the process."""

    def __init__(self, catalog: ModelCatalog, system_max_retries: int = 3) -> None:
        super().__init__(catalog, system_max_retries)
        self._stored: RetrievalSettings | None = None

    async def load(self) -> RetrievalSettings:
        return self._on_load(self._stored)

    async def save(self, settings: RetrievalSettings) -> RetrievalSettings:
        validated = validate_settings(replace(settings, updated_at=None), self._catalog, self._system_max_retries)
        self._stored = validated
        return validated


class JsonFileSettingsStore(_BaseSettingsStore):
    """Settings persisted as a JSON document on disk."""

    def __init__(self, path: Path, catalog: ModelCatalog, system_max_retries: int = 3) -> None:
        super().__init__(catalog, system_max_retries)
        self._path = Path(path)

    async def load(self) -> RetrievalSettings:
        return self._on_load(await asyncio.to_thread(self._read))

    async def save(self, settings: RetrievalSettings) -> RetrievalSettings:
        validated = validate_settings(replace(settings, updated_at=None), self._catalog, self._system_max_retries)
        await asyncio.to_thread(self._write, validated)
        _logger.info("settings.saved", **settings_to_mapping(validated))
        return validated

    def _read(self) -> RetrievalSettings | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            _logger.warning("settings.corrupt", path=str(self._path))
            return None
        if not isinstance(data, dict):
            return None
        return settings_from_mapping(data, fallback_retries=self._system_max_retries)

    def _write(self, settings: RetrievalSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(settings_to_mapping(settings), ensure_ascii=False, indent=2), encoding="utf-8")

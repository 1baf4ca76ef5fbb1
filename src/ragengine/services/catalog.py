"""Closed catalog of generation models available to the orchestrator."""

from __future__ import annotations

import re
from typing import Iterator, Mapping, Sequence

from ragengine.errors import UnknownModelError

DEFAULT_DISPLAY_NAMES: Mapping[str, str] = {
    "Qwen/Qwen2.5-0.5B-Instruct": "Qwen 2.5 0.5B Instruct",
    "Qwen/Qwen2.5-1.5B-Instruct": "Qwen 2.5 1.5B Instruct",
    "Qwen/Qwen2.5-3B-Instruct": "Qwen 2.5 3B Instruct",
    "gemini-2.0-flash": "Gemini 2.0 Flash",
    "gemini-1.5-flash": "Gemini 1.5 Flash",
    "gemini-1.5-pro": "Gemini 1.5 Pro",
}


class ModelCatalog:
    """Validated, ordered list of model ids.

    Ids are opaque tokens: the catalog only answers whether an id is known,
    which one is the default, and how to present it.
    """

    def __init__(self, models: Sequence[str], display_names: Mapping[str, str] | None = None) -> None:
        cleaned = tuple(m.strip() for m in models if m and m.strip())
        if not cleaned:
            raise ValueError("At least one generation model must be configured")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError(f"Duplicate generation models configured: {cleaned}")
        self._models = cleaned
        self._display_names = dict(display_names or {})

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    @property
    def default(self) -> str:
        return self._models[0]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def resolve(self, model_id: str | None) -> str:
        candidate = (model_id or "").strip()
        if candidate not in self._models:
            raise UnknownModelError(f"Unknown model: {candidate or '<empty>'}")
        return candidate

    def display_name(self, model_id: str) -> str:
        if model_id in self._display_names:
            return self._display_names[model_id]
        if model_id in DEFAULT_DISPLAY_NAMES:
            return DEFAULT_DISPLAY_NAMES[model_id]
        base = model_id.rsplit("/", 1)[-1].replace("-", " ")
        return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), base)

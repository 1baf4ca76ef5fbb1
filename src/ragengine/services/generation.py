"""Generation backends for ragengine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Protocol

LOGGER = logging.getLogger(__name__)

CONTEXT_DELIMITER = "---"


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for local model generation."""

    max_new_tokens: int = 1024
    use_model: bool = False
    device: str | None = None


class GenerationBackend(Protocol):
    """A single, fallible generation call against one model."""

    async def generate_text(self, prompt: str, model_id: str, temperature: float) -> str:
        """Return generated text for ``prompt`` using ``model_id``."""


class TemplateGenerator:
    """Simple deterministic generator used for tests and offline environments."""

    async def generate_text(self, prompt: str, model_id: str, temperature: float) -> str:
        parts = prompt.split(CONTEXT_DELIMITER)
        context = parts[1].strip() if len(parts) >= 3 else ""
        if not context:
            return "I do not have enough relevant context to answer that question."
        summary = context.split("\n\n", 1)[0]
        return f"Based on the provided documents: {summary}"


class TransformersGenerator:
    """Generator backed by Hugging Face causal language models.

    Each model id is loaded on first use and kept for the life of the process.
    """

    def __init__(self, config: GenerationConfig | None = None) -> None:
        self._config = config or GenerationConfig(use_model=True)
        self._loaded: Dict[str, tuple[Any, Any]] = {}
        self._lock = asyncio.Lock()

    async def generate_text(self, prompt: str, model_id: str, temperature: float) -> str:
        tokenizer, model = await self._load(model_id)
        return await asyncio.to_thread(self._generate, tokenizer, model, prompt, temperature)

    async def _load(self, model_id: str) -> tuple[Any, Any]:
        async with self._lock:
            if model_id not in self._loaded:
                self._loaded[model_id] = await asyncio.to_thread(self._load_sync, model_id)
            return self._loaded[model_id]

    def _load_sync(self, model_id: str) -> tuple[Any, Any]:
        from transformers import AutoModelForCausalLM, AutoTokenizer

        tokenizer = AutoTokenizer.from_pretrained(model_id, trust_remote_code=True)
        model = AutoModelForCausalLM.from_pretrained(model_id, trust_remote_code=True)
        if tokenizer.pad_token is None and tokenizer.eos_token is not None:
            tokenizer.pad_token = tokenizer.eos_token
        if getattr(model.config, "pad_token_id", None) is None and tokenizer.pad_token_id is not None:
            model.config.pad_token_id = tokenizer.pad_token_id
        if self._config.device:
            model.to(self._config.device)
        LOGGER.info("Loaded generation model %s", model_id)
        return tokenizer, model

    def _generate(self, tokenizer: Any, model: Any, prompt: str, temperature: float) -> str:
        import torch

        if hasattr(tokenizer, "apply_chat_template"):
            prompt = tokenizer.apply_chat_template(
                [{"role": "user", "content": prompt}],
                tokenize=False,
                add_generation_prompt=True,
            )
        tokenized = tokenizer(prompt, return_tensors="pt", padding=True)
        input_ids = tokenized.input_ids
        attention_mask = tokenized.attention_mask
        prompt_length = input_ids.shape[1]
        if self._config.device:
            input_ids = input_ids.to(self._config.device)
            attention_mask = attention_mask.to(self._config.device)
        with torch.no_grad():
            output = model.generate(
                input_ids,
                attention_mask=attention_mask,
                max_new_tokens=self._config.max_new_tokens,
                do_sample=temperature > 0,
                temperature=temperature if temperature > 0 else None,
            )
        generated = tokenizer.decode(output[0][prompt_length:], skip_special_tokens=True).strip()
        if not generated:
            raise RuntimeError("Model returned an empty completion")
        return generated


def build_generation_backend(config: GenerationConfig) -> GenerationBackend:
    if not config.use_model:
        LOGGER.info("Generation backend running in template-only mode.")
        return TemplateGenerator()
    return TransformersGenerator(config)

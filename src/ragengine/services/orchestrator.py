"""Retry and fallback policy around generation calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, wait_none

from ragengine.errors import GenerationFailure
from ragengine.metrics.observability import PipelineMetrics, TimedSection, get_logger
from ragengine.models import GenerationResult, RetrievalSettings, RetryStrategy
from ragengine.services.catalog import ModelCatalog
from ragengine.services.generation import GenerationBackend

DEFAULT_FALLBACK_MESSAGE = "מצטער, לא הצלחתי לעבד את השאילתה. אנא נסה שוב מאוחר יותר."


@dataclass(frozen=True)
class OrchestratorConfig:
    """Knobs for the generation orchestrator."""

    temperature: float = 0.5
    backoff_seconds: float = 0.0
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE


class GenerationOrchestrator:
    """Runs a prompt against the configured models.

    ``SINGLE`` retries the selected model and degrades to an apologetic
    message when every attempt fails. ``ALL_MODELS`` walks the catalog in
    order and raises :class:`GenerationFailure` when every model fails.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        catalog: ModelCatalog,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._backend = backend
        self._catalog = catalog
        self._config = config or OrchestratorConfig()
        self._logger = get_logger("generation")

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    async def generate(self, prompt: str, settings: RetrievalSettings) -> GenerationResult:
        with TimedSection(PipelineMetrics.observe_generation):
            if settings.retry_strategy is RetryStrategy.ALL_MODELS:
                return await self._generate_all_models(prompt, self._catalog.models, settings.max_retries)
            return await self._generate_single(prompt, settings.selected_model, settings.max_retries)

    async def _generate_single(self, prompt: str, model_id: str, max_retries: int) -> GenerationResult:
        try:
            content, failed = await self._attempt(prompt, model_id, max(1, max_retries))
        except Exception as exc:
            self._logger.error(
                "generation.fallback",
                model=model_id,
                attempts=max(1, max_retries),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            PipelineMetrics.generation_fallbacks.inc()
            return GenerationResult(content=self._config.fallback_message, used_model=model_id, retry_count=max_retries)
        return GenerationResult(content=content, used_model=model_id, retry_count=failed)

    async def _generate_all_models(
        self, prompt: str, models: Sequence[str], retries_per_model: int
    ) -> GenerationResult:
        attempts = max(1, retries_per_model)
        failed_total = 0
        last_error: Optional[BaseException] = None
        for model_id in models:
            try:
                content, failed = await self._attempt(prompt, model_id, attempts)
            except Exception as exc:
                self._logger.warning("generation.model_exhausted", model=model_id, attempts=attempts, error=str(exc))
                failed_total += attempts
                last_error = exc
                continue
            return GenerationResult(content=content, used_model=model_id, retry_count=failed_total + failed)
        raise GenerationFailure(
            f"All {len(models)} models failed to process the query",
            attempts=failed_total,
            last_model=models[-1] if models else None,
        ) from last_error

    async def _attempt(self, prompt: str, model_id: str, attempts: int) -> tuple[str, int]:
        """Try ``model_id`` up to ``attempts`` times; return text and failed-attempt count."""

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=self._wait(),
            after=self._after_attempt(model_id),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                content = await self._backend.generate_text(prompt, model_id, self._config.temperature)
                PipelineMetrics.count_attempt(model_id, succeeded=True)
        self._logger.info("generation.complete", model=model_id, attempt=number)
        return content, number - 1

    def _wait(self):
        if self._config.backoff_seconds <= 0:
            return wait_none()
        return wait_exponential(multiplier=self._config.backoff_seconds, max=self._config.backoff_seconds * 8)

    def _after_attempt(self, model_id: str):
        def log_failure(retry_state: RetryCallState) -> None:
            PipelineMetrics.count_attempt(model_id, succeeded=False)
            error = retry_state.outcome.exception() if retry_state.outcome else None
            self._logger.warning(
                "generation.attempt_failed",
                model=model_id,
                attempt=retry_state.attempt_number,
                error=str(error),
            )

        return log_failure

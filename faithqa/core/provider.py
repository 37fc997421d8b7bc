"""
Provider client: candidate model fallback, bounded retries, hard deadline.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Set

from faithqa.core.models import ProviderResponse
from faithqa.shared.config import settings
from faithqa.shared.exceptions import (
    ModelNotFoundError,
    PermanentProviderError,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    TransientProviderError,
)
from faithqa.shared.llm import GenerationConfig, LLMBackend
from faithqa.shared.logging import get_logger

logger = get_logger(__name__)


class ProviderClient:
    """Calls the LLM backend for one prompt, sequentially, within a deadline."""

    def __init__(
        self,
        backend: LLMBackend,
        candidates: Optional[List[str]] = None,
        max_retries: Optional[int] = None,
        retry_base_ms: Optional[int] = None,
        deadline_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.backend = backend
        self.candidates = list(candidates or settings.llm.chat_model_candidates)
        self.max_retries = max_retries if max_retries is not None else settings.pipeline.max_retries
        self.retry_base_ms = retry_base_ms if retry_base_ms is not None else settings.pipeline.retry_base_ms
        self.deadline_ms = deadline_ms if deadline_ms is not None else settings.pipeline.max_response_time_ms
        self._sleep = sleep
        self._active_model: Optional[str] = None
        self._unavailable: Set[str] = set()
        self._init_lock = asyncio.Lock()

    @property
    def active_model(self) -> Optional[str]:
        return self._active_model

    async def generate(
        self,
        prompt: str,
        config: GenerationConfig,
        deadline_ms: Optional[float] = None
    ) -> ProviderResponse:
        """
        Generate a response for the prompt.

        Args:
            prompt: Full prompt text
            config: Temperature / token settings
            deadline_ms: Wall-clock budget for all attempts (defaults to configured deadline)

        Returns:
            ProviderResponse with trimmed, non-empty text

        Raises:
            ProviderUnavailableError: candidates exhausted, retries exhausted,
                permanent failure, or deadline exceeded
        """
        budget_ms = self.deadline_ms if deadline_ms is None else deadline_ms
        if budget_ms <= 0:
            raise ProviderUnavailableError("No time left for provider call")

        try:
            return await asyncio.wait_for(self._generate(prompt, config), timeout=budget_ms / 1000)
        except asyncio.TimeoutError as e:
            logger.warning(f"Provider deadline of {budget_ms:.0f}ms exceeded")
            raise ProviderUnavailableError("Provider deadline exceeded") from e

    async def _generate(self, prompt: str, config: GenerationConfig) -> ProviderResponse:
        model_id = await self._ensure_model()
        attempt = 0

        while True:
            started = time.perf_counter()
            try:
                generation = await self.backend.generate(prompt, model_id, config)
                text = generation.text.strip()
                if not text:
                    raise TransientProviderError(f"Model {model_id} returned empty text")
                return ProviderResponse(
                    text=text,
                    model_id=model_id,
                    finish_reason=generation.finish_reason,
                    latency_ms=(time.perf_counter() - started) * 1000,
                )

            except ModelNotFoundError as e:
                logger.warning(f"Model {model_id} not found, trying next candidate: {e}")
                self._mark_unavailable(model_id)
                model_id = await self._ensure_model()

            except (TransientProviderError, ProviderTimeoutError) as e:
                if attempt >= self.max_retries:
                    raise ProviderUnavailableError(
                        f"Provider failed after {attempt + 1} attempts: {e}"
                    ) from e
                backoff_ms = self.retry_base_ms * (2 ** attempt)
                attempt += 1
                logger.info(f"Transient provider error, retry {attempt} in {backoff_ms}ms: {e}")
                await self._sleep(backoff_ms / 1000)

            except PermanentProviderError as e:
                raise ProviderUnavailableError(f"Provider rejected request: {e}") from e

    async def _ensure_model(self) -> str:
        """Return the remembered model, initializing the first usable candidate if needed."""
        if self._active_model:
            return self._active_model

        last_error: Optional[ProviderError] = None
        async with self._init_lock:
            if self._active_model:
                return self._active_model
            for candidate in self.candidates:
                if candidate in self._unavailable:
                    continue
                try:
                    await self.backend.initialize(candidate)
                except ModelNotFoundError as e:
                    logger.warning(f"Model candidate {candidate} unavailable: {e}")
                    self._unavailable.add(candidate)
                    last_error = e
                    continue
                except ProviderError as e:
                    # Not remembered as missing; the next request tries it again
                    logger.warning(f"Model candidate {candidate} failed to initialize: {e}")
                    last_error = e
                    continue
                self._active_model = candidate
                logger.info(f"Using model {candidate}")
                return candidate

        raise ProviderUnavailableError("No model candidate could be initialized") from last_error

    def _mark_unavailable(self, model_id: str):
        self._unavailable.add(model_id)
        if self._active_model == model_id:
            self._active_model = None

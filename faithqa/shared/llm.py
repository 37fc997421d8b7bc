"""
LLM backend abstraction supporting OpenAI and Anthropic.
Backends translate SDK failures into the provider error taxonomy used by
ProviderClient (not found, timeout, transient, permanent).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from faithqa.shared.config import settings
from faithqa.shared.exceptions import (
    ModelNotFoundError,
    PermanentProviderError,
    ProviderError,
    ProviderTimeoutError,
    TransientProviderError,
)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class GenerationConfig:
    """Per-call generation parameters."""
    temperature: float = 0.4
    max_tokens: int = 1200
    system_prompt: Optional[str] = None


@dataclass(frozen=True)
class Generation:
    """Raw provider output for one call."""
    text: str
    finish_reason: str
    model_id: str


class LLMBackend(ABC):
    """Provider interface: generate(prompt, model_id, config)."""

    async def initialize(self, model_id: str) -> None:
        """Prepare a model for use. Raises ModelNotFoundError if unusable."""
        if not model_id:
            raise ModelNotFoundError("Empty model id")

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model_id: str,
        config: GenerationConfig
    ) -> Generation:
        """Generate a completion for the prompt."""


def _translate_error(error: Exception, model_id: str) -> ProviderError:
    """Map openai/anthropic SDK exceptions onto the provider taxonomy."""
    if isinstance(error, (openai.NotFoundError, anthropic.NotFoundError)):
        return ModelNotFoundError(f"Model {model_id} not found: {error}")
    if isinstance(error, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return ProviderTimeoutError(f"Model {model_id} timed out")
    if isinstance(error, (
        openai.APIConnectionError,
        anthropic.APIConnectionError,
        openai.RateLimitError,
        anthropic.RateLimitError,
        openai.InternalServerError,
        anthropic.InternalServerError,
    )):
        return TransientProviderError(f"Model {model_id} transient failure: {error}")
    if isinstance(error, (openai.APIStatusError, anthropic.APIStatusError)):
        if error.status_code >= 500:
            return TransientProviderError(f"Model {model_id} returned {error.status_code}")
        return PermanentProviderError(f"Model {model_id} rejected request: {error}")
    return PermanentProviderError(f"LLM completion failed: {error}")


class OpenAIBackend(LLMBackend):
    """OpenAI chat completions backend."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        if client is None:
            api_key = api_key or settings.llm.openai_api_key
            if not api_key:
                raise PermanentProviderError("OpenAI API key not configured")
            client = AsyncOpenAI(api_key=api_key, max_retries=0)
        self.client = client

    async def generate(
        self,
        prompt: str,
        model_id: str,
        config: GenerationConfig
    ) -> Generation:
        messages = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=model_id,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except openai.OpenAIError as e:
            raise _translate_error(e, model_id) from e

        if not response.choices:
            return Generation(text="", finish_reason="empty", model_id=model_id)
        choice = response.choices[0]
        return Generation(
            text=(choice.message.content or "").strip(),
            finish_reason=choice.finish_reason or "stop",
            model_id=model_id,
        )


class AnthropicBackend(LLMBackend):
    """Anthropic messages backend."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncAnthropic] = None):
        if client is None:
            api_key = api_key or settings.llm.anthropic_api_key
            if not api_key:
                raise PermanentProviderError("Anthropic API key not configured")
            client = AsyncAnthropic(api_key=api_key, max_retries=0)
        self.client = client

    async def generate(
        self,
        prompt: str,
        model_id: str,
        config: GenerationConfig
    ) -> Generation:
        # Anthropic uses system parameter, not system message
        completion_kwargs: Dict[str, Any] = {
            "model": model_id,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if config.system_prompt:
            completion_kwargs["system"] = config.system_prompt

        try:
            response = await self.client.messages.create(**completion_kwargs)
        except anthropic.AnthropicError as e:
            raise _translate_error(e, model_id) from e

        text_blocks = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        return Generation(
            text=(text_blocks[0] if text_blocks else "").strip(),
            finish_reason=response.stop_reason or "end_turn",
            model_id=model_id,
        )


def create_backend(provider: Optional[str] = None) -> LLMBackend:
    """Build the configured backend."""
    provider = provider or settings.llm.provider
    if provider == LLMProvider.OPENAI:
        return OpenAIBackend()
    if provider == LLMProvider.ANTHROPIC:
        return AnthropicBackend()
    raise PermanentProviderError(f"Unsupported provider: {provider}")

"""
Pytest fixtures for faithqa tests.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from faithqa.core.pipeline import Pipeline
from faithqa.core.provider import ProviderClient
from faithqa.core.cache import ResponseCache
from faithqa.core.rate_limit import RequestScheduler
from faithqa.core.retrieval.retriever import ContextRetriever
from faithqa.memory.store import PersistenceStore
from faithqa.shared.config import AlignmentConfig, LLMConfig, PipelineConfig
from faithqa.shared.exceptions import ModelNotFoundError
from faithqa.shared.llm import Generation, GenerationConfig, LLMBackend
from faithqa.telemetry.sink import TelemetrySink

GOOD_ANSWER = (
    "Timkat is the Ethiopian Orthodox feast of the Epiphany, remembering the baptism of Christ "
    "in the Jordan. In Tewahedo teaching the unity of His divinity and humanity is revealed there, "
    "and the Tabot is carried in procession to the water."
)


class FakeBackend(LLMBackend):
    """Scripted backend: each call consumes the next response; the last one repeats."""

    def __init__(
        self,
        responses: Optional[List] = None,
        delay: float = 0.0,
        missing_models: tuple = ()
    ):
        self.responses = list(responses or [GOOD_ANSWER])
        self.delay = delay
        self.missing_models = set(missing_models)
        self.calls: List[tuple] = []
        self.initialized: List[str] = []

    async def initialize(self, model_id: str) -> None:
        await super().initialize(model_id)
        if model_id in self.missing_models:
            raise ModelNotFoundError(f"{model_id} does not exist")
        self.initialized.append(model_id)

    async def generate(self, prompt: str, model_id: str, config: GenerationConfig) -> Generation:
        self.calls.append((prompt, model_id, config))
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return Generation(text=item, finish_reason="stop", model_id=model_id)


class FakeEmbedder:
    """Keyword -> vector lookup standing in for the embedding API."""

    def __init__(self, vectors: Dict[str, List[float]], default: Optional[List[float]] = None):
        self.vectors = vectors
        self.default = default or [0.0, 0.0, 1.0]
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        for keyword, vector in self.vectors.items():
            if keyword in lowered:
                return vector
        return self.default


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store per test."""
    return PersistenceStore(tmp_path / "faithqa.sqlite")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_pipeline(store):
    """Factory building a Pipeline around fakes with explicit configuration."""

    def _make(
        backend: Optional[LLMBackend] = None,
        validator=None,
        retriever: Optional[ContextRetriever] = None,
        max_response_time_ms: int = 3000,
        concurrent_requests: int = 5,
        queue_capacity: int = 20,
        cache_enabled: bool = True
    ) -> Pipeline:
        backend = backend or FakeBackend()
        provider = ProviderClient(
            backend,
            candidates=["model-a", "model-b"],
            max_retries=2,
            retry_base_ms=1,
            deadline_ms=max_response_time_ms,
        )
        return Pipeline(
            provider=provider,
            store=store,
            retriever=retriever or ContextRetriever(config={"top_k": 3, "min_score": 0.6}),
            validator=validator,
            cache=ResponseCache(capacity=100, ttl_ms=300_000, min_score=0.85, enabled=cache_enabled),
            scheduler=RequestScheduler(concurrent_requests, queue_capacity),
            telemetry=TelemetrySink(store, retain_conversation_data=False, anonymize_user_data=True),
            pipeline_config=PipelineConfig(
                max_response_time_ms=max_response_time_ms,
                concurrent_requests=concurrent_requests,
                queue_capacity=queue_capacity,
            ),
            alignment_config=AlignmentConfig(),
            llm_config=LLMConfig(),
            supported_languages=["en", "am", "ti", "om"],
        )

    return _make

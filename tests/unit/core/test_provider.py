"""
Tests for ProviderClient: model fallback, retries, empty output and deadline.
"""

import pytest

from conftest import FakeBackend
from faithqa.core.provider import ProviderClient
from faithqa.shared.exceptions import (
    ModelNotFoundError,
    PermanentProviderError,
    ProviderUnavailableError,
    TransientProviderError,
)
from faithqa.shared.llm import GenerationConfig


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _client(backend, sleep=None, **kwargs):
    params = {
        "candidates": ["model-a", "model-b", "model-c"],
        "max_retries": 2,
        "retry_base_ms": 100,
        "deadline_ms": 3000,
    }
    params.update(kwargs)
    return ProviderClient(backend, sleep=sleep or RecordingSleep(), **params)


@pytest.mark.asyncio
async def test_first_available_candidate_is_remembered():
    backend = FakeBackend(["  An answer.  "], missing_models=("model-a",))
    client = _client(backend)

    response = await client.generate("prompt", GenerationConfig())

    assert response.text == "An answer."
    assert response.model_id == "model-b"
    assert client.active_model == "model-b"

    await client.generate("prompt", GenerationConfig())
    assert backend.initialized == ["model-b"]


@pytest.mark.asyncio
async def test_model_not_found_at_call_time_falls_through():
    backend = FakeBackend([ModelNotFoundError("gone"), "Answer from next model"])
    client = _client(backend)

    response = await client.generate("prompt", GenerationConfig())

    assert response.model_id == "model-b"
    assert [call[1] for call in backend.calls] == ["model-a", "model-b"]


@pytest.mark.asyncio
async def test_no_candidates_left():
    backend = FakeBackend(missing_models=("model-a", "model-b", "model-c"))
    with pytest.raises(ProviderUnavailableError):
        await _client(backend).generate("prompt", GenerationConfig())


@pytest.mark.asyncio
async def test_transient_errors_back_off_exponentially():
    sleep = RecordingSleep()
    backend = FakeBackend([TransientProviderError("503"), TransientProviderError("503"), "Recovered"])

    response = await _client(backend, sleep=sleep).generate("prompt", GenerationConfig())

    assert response.text == "Recovered"
    assert sleep.delays == [0.1, 0.2]


@pytest.mark.asyncio
async def test_retries_exhausted():
    sleep = RecordingSleep()
    backend = FakeBackend([TransientProviderError("503")])

    with pytest.raises(ProviderUnavailableError):
        await _client(backend, sleep=sleep).generate("prompt", GenerationConfig())
    assert len(backend.calls) == 3
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_empty_output_is_retried():
    backend = FakeBackend(["   ", "Real answer"])
    response = await _client(backend).generate("prompt", GenerationConfig())
    assert response.text == "Real answer"


@pytest.mark.asyncio
async def test_permanent_error_not_retried():
    backend = FakeBackend([PermanentProviderError("401")])
    with pytest.raises(ProviderUnavailableError):
        await _client(backend).generate("prompt", GenerationConfig())
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_deadline_exceeded():
    backend = FakeBackend(delay=5.0)
    with pytest.raises(ProviderUnavailableError):
        await _client(backend).generate("prompt", GenerationConfig(), deadline_ms=50)


@pytest.mark.asyncio
async def test_no_budget_left():
    backend = FakeBackend()
    with pytest.raises(ProviderUnavailableError):
        await _client(backend).generate("prompt", GenerationConfig(), deadline_ms=0)
    assert backend.calls == []


class FlakyInitBackend(FakeBackend):
    """Initialization fails with a provider error for the listed models."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = dict(failures)

    async def initialize(self, model_id):
        if model_id in self.failures:
            raise self.failures[model_id]
        await super().initialize(model_id)


@pytest.mark.asyncio
async def test_initialize_failure_moves_to_next_candidate():
    backend = FlakyInitBackend({"model-a": TransientProviderError("503 from upstream")})
    client = _client(backend)

    response = await client.generate("prompt", GenerationConfig())

    assert response.model_id == "model-b"
    assert backend.initialized == ["model-b"]


@pytest.mark.asyncio
async def test_initialize_failures_surface_as_unavailable():
    backend = FlakyInitBackend({
        "model-a": TransientProviderError("503 from upstream"),
        "model-b": PermanentProviderError("invalid api key"),
        "model-c": TransientProviderError("timeout"),
    })

    with pytest.raises(ProviderUnavailableError) as exc_info:
        await _client(backend).generate("prompt", GenerationConfig())

    assert isinstance(exc_info.value.__cause__, TransientProviderError)

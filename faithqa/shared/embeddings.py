"""
Embedding client for knowledge base similarity search.
"""

from typing import List, Optional, Union
import numpy as np
from openai import AsyncOpenAI

from faithqa.shared.config import settings
from faithqa.shared.exceptions import EmbeddingError


class EmbeddingClient:
    """OpenAI embedding client: embed(text, model_id) -> vector."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        batch_size: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.provider = settings.embedding.provider
        self.model = model or settings.embedding.model
        self.batch_size = batch_size or settings.embedding.batch_size

        if client is None:
            if self.provider != "openai":
                raise EmbeddingError(f"Unsupported embedding provider: {self.provider}")
            api_key = api_key or settings.llm.openai_api_key
            if not api_key:
                raise EmbeddingError("OpenAI API key not configured")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client

    async def embed(
        self,
        texts: Union[str, List[str]],
        batch_size: Optional[int] = None
    ) -> Union[List[float], List[List[float]]]:
        """
        Generate embeddings for text(s).

        Args:
            texts: Single text string or list of texts
            batch_size: Override default batch size

        Returns:
            Single embedding vector or list of vectors
        """
        is_single = isinstance(texts, str)
        if is_single:
            texts = [texts]

        batch_size = batch_size or self.batch_size
        all_embeddings: List[List[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=batch
                )
                all_embeddings.extend(item.embedding for item in response.data)
            except Exception as e:
                raise EmbeddingError(f"OpenAI embedding failed: {str(e)}") from e

        return all_embeddings[0] if is_single else all_embeddings


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.shape != v2.shape:
        return 0.0

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(v1, v2) / (norm1 * norm2))

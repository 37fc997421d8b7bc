"""
Knowledge base interface and an in-memory vector implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from faithqa.core.models import RetrievedItem
from faithqa.shared.embeddings import cosine_similarity


class KnowledgeBase(ABC):
    """Nearest-neighbour search over the doctrinal corpus."""

    @abstractmethod
    async def search(
        self,
        vector: List[float],
        filters: Optional[Dict[str, Any]] = None,
        k: int = 3
    ) -> List[RetrievedItem]:
        """Return up to k items sorted by score descending."""


@dataclass
class KnowledgeDocument:
    title: str
    category: str
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


class InMemoryKnowledgeBase(KnowledgeBase):
    """Brute-force cosine search; ties keep insertion order."""

    def __init__(self, documents: Optional[List[KnowledgeDocument]] = None):
        self.documents: List[KnowledgeDocument] = list(documents or [])

    def add(self, document: KnowledgeDocument):
        self.documents.append(document)

    async def search(
        self,
        vector: List[float],
        filters: Optional[Dict[str, Any]] = None,
        k: int = 3
    ) -> List[RetrievedItem]:
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        scored = []
        for doc in self.documents:
            # Documents without a scope key are general and match every filter
            if any(key in doc.metadata and doc.metadata[key] != value for key, value in filters.items()):
                continue
            score = max(0.0, min(1.0, cosine_similarity(vector, doc.embedding)))
            scored.append((score, doc))

        # sorted() is stable, so equal scores stay in insertion order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [
            RetrievedItem(title=doc.title, category=doc.category, content=doc.content, score=score)
            for score, doc in scored[:k]
        ]

"""
Context retrieval: curriculum metadata plus knowledge base hits.
"""

import asyncio
from typing import List, Dict, Any, Optional

from faithqa.core.models import Context, QuestionContext, RetrievedItem
from faithqa.core.retrieval.catalog import CurriculumCatalog
from faithqa.core.retrieval.knowledge_base import KnowledgeBase
from faithqa.shared.config import settings
from faithqa.shared.exceptions import EmbeddingError, KnowledgeBaseUnavailableError
from faithqa.shared.logging import get_logger

logger = get_logger(__name__)


class ContextRetriever:
    """Fetch lesson/chapter metadata and top-k knowledge base items."""

    def __init__(
        self,
        knowledge_base: Optional[KnowledgeBase] = None,
        embedding_client=None,
        catalog: Optional[CurriculumCatalog] = None,
        config: Optional[Dict] = None
    ):
        self.config = config or {}
        self.knowledge_base = knowledge_base
        self.embedding_client = embedding_client
        self.catalog = catalog or CurriculumCatalog()
        self.top_k = self.config.get("top_k", settings.retrieval.top_k)
        self.min_score = self.config.get("min_score", settings.retrieval.min_score)

    async def retrieve(self, question: str, ctx: QuestionContext) -> Context:
        """
        Build the Context for a question.

        Knowledge base or embedding failures degrade to an empty retrieved list.
        """
        context = Context(
            lesson=self.catalog.get_lesson(ctx.lesson_id),
            course=self.catalog.get_course(ctx.course_id),
            chapter=self.catalog.get_chapter(ctx.chapter_id),
        )
        # Titles supplied with the request fill gaps in the catalog
        if context.lesson is None and ctx.lesson_title:
            context.lesson = {"id": ctx.lesson_id, "title": ctx.lesson_title}
        if context.course is None and ctx.course_title:
            context.course = {"id": ctx.course_id, "title": ctx.course_title}
        if context.chapter is None and ctx.chapter_name:
            context.chapter = {"id": ctx.chapter_id, "name": ctx.chapter_name}

        context.retrieved = await self.search(question, ctx)
        return context

    async def search(self, question: str, ctx: QuestionContext) -> List[RetrievedItem]:
        if self.knowledge_base is None or self.embedding_client is None:
            return []

        try:
            vector = await self.embedding_client.embed(question)
        except EmbeddingError as e:
            logger.warning(f"Question embedding failed, continuing without sources: {e}")
            return []
        if not vector:
            return []

        filters: Dict[str, Any] = {
            "chapter_id": ctx.chapter_id,
            "course_id": ctx.course_id,
        }
        try:
            items = await self.knowledge_base.search(vector, filters=filters, k=self.top_k)
        except (KnowledgeBaseUnavailableError, ConnectionError, asyncio.TimeoutError) as e:
            logger.warning(f"Knowledge base unavailable, continuing without sources: {e}")
            return []

        results = [item for item in items if item.score >= self.min_score]
        return sorted(results, key=lambda item: item.score, reverse=True)[:self.top_k]

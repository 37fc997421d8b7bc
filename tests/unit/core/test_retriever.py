"""
Tests for knowledge base search, context retrieval and the curriculum catalog.
"""

import pytest

from conftest import FakeEmbedder
from faithqa.core.models import QuestionContext
from faithqa.core.retrieval.catalog import Chapter, Course, CurriculumCatalog, Lesson, Resource
from faithqa.core.retrieval.knowledge_base import InMemoryKnowledgeBase, KnowledgeBase, KnowledgeDocument
from faithqa.core.retrieval.retriever import ContextRetriever
from faithqa.shared.exceptions import EmbeddingError, KnowledgeBaseUnavailableError


def _knowledge_base():
    return InMemoryKnowledgeBase([
        KnowledgeDocument("Timkat in the Synaxarium", "liturgy", "Timkat text", [1.0, 0.0, 0.0]),
        KnowledgeDocument("Meskel", "feasts", "Meskel text", [0.8, 0.6, 0.0]),
        KnowledgeDocument("Course notes", "notes", "Scoped text", [0.9, 0.1, 0.0], {"course_id": "c2"}),
        KnowledgeDocument("Fasting seasons", "practice", "Tsom text", [0.0, 1.0, 0.0]),
    ])


def _catalog():
    return CurriculumCatalog(
        lessons=[Lesson("l1", "The Feast of Timkat", "c1", ["Explain Epiphany"], ["tabot", "baptism"])],
        courses=[Course("c1", "Feasts of the Church")],
        chapters=[Chapter("ch1", "Addis Ababa", "Shewa")],
        resources=[
            Resource("r1", "Timkat Procession Guide", "guide", "How the tabot is carried", ["timkat"]),
            Resource("r2", "Fasting Calendar", "calendar", "Tsom seasons", ["fasting"]),
        ],
    )


class BrokenKnowledgeBase(KnowledgeBase):
    async def search(self, vector, filters=None, k=3):
        raise KnowledgeBaseUnavailableError("index offline")


class BrokenEmbedder:
    async def embed(self, text):
        raise EmbeddingError("quota exceeded")


@pytest.mark.asyncio
async def test_search_sorted_and_scoped():
    items = await _knowledge_base().search([1.0, 0.0, 0.0], filters={"course_id": "c1"}, k=3)

    assert [item.title for item in items] == ["Timkat in the Synaxarium", "Meskel", "Fasting seasons"]
    assert items[0].score == pytest.approx(1.0)
    assert items[-1].score == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_retrieve_applies_min_score_and_top_k():
    retriever = ContextRetriever(
        _knowledge_base(),
        FakeEmbedder({"timkat": [1.0, 0.0, 0.0]}),
        _catalog(),
        {"top_k": 3, "min_score": 0.6},
    )

    context = await retriever.retrieve("What is Timkat?", QuestionContext(lesson_id="l1", course_id="c1"))

    assert [item.title for item in context.retrieved] == ["Timkat in the Synaxarium", "Meskel"]
    assert context.lesson["title"] == "The Feast of Timkat"
    assert context.course["title"] == "Feasts of the Church"
    assert context.focus_points == ["tabot", "baptism"]


@pytest.mark.asyncio
async def test_request_titles_fill_missing_metadata():
    retriever = ContextRetriever(catalog=_catalog())
    ctx = QuestionContext(lesson_id="unknown", lesson_title="Imported Lesson", chapter_id="ch1")

    context = await retriever.retrieve("What is Timkat?", ctx)

    assert context.lesson == {"id": "unknown", "title": "Imported Lesson"}
    assert context.chapter["region"] == "Shewa"
    assert context.retrieved == []


@pytest.mark.asyncio
async def test_knowledge_base_failure_degrades_to_empty():
    retriever = ContextRetriever(BrokenKnowledgeBase(), FakeEmbedder({}), config={"top_k": 3, "min_score": 0.6})
    context = await retriever.retrieve("What is Timkat?", QuestionContext())
    assert context.retrieved == []


@pytest.mark.asyncio
async def test_embedding_failure_degrades_to_empty():
    retriever = ContextRetriever(_knowledge_base(), BrokenEmbedder(), config={"top_k": 3, "min_score": 0.6})
    context = await retriever.retrieve("What is Timkat?", QuestionContext())
    assert context.retrieved == []


def test_related_resources_by_keyword():
    resources = _catalog().find_resources(["timkat", "tabot", "is"])

    assert [r.id for r in resources] == ["r1"]
    assert resources[0].url == "/resources/r1"


def test_related_resources_ignore_short_keywords():
    assert _catalog().find_resources(["is", "the"]) == []

"""
Curriculum catalog: lesson/course/chapter metadata and related resources.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional, Iterable

from faithqa.core.models import RelatedResource
from faithqa.shared.text import tokenize


@dataclass
class Lesson:
    id: str
    title: str
    course_id: Optional[str] = None
    objectives: List[str] = field(default_factory=list)
    doctrinal_focus: List[str] = field(default_factory=list)


@dataclass
class Course:
    id: str
    title: str
    description: str = ""


@dataclass
class Chapter:
    id: str
    name: str
    region: Optional[str] = None


@dataclass
class Resource:
    id: str
    title: str
    category: str
    description: str = ""
    tags: List[str] = field(default_factory=list)


class CurriculumCatalog:
    """In-memory catalog; swap in a database-backed one by overriding the lookups."""

    def __init__(
        self,
        lessons: Iterable[Lesson] = (),
        courses: Iterable[Course] = (),
        chapters: Iterable[Chapter] = (),
        resources: Iterable[Resource] = ()
    ):
        self.lessons: Dict[str, Lesson] = {item.id: item for item in lessons}
        self.courses: Dict[str, Course] = {item.id: item for item in courses}
        self.chapters: Dict[str, Chapter] = {item.id: item for item in chapters}
        self.resources: List[Resource] = list(resources)

    def get_lesson(self, lesson_id: Optional[str]) -> Optional[Dict[str, Any]]:
        lesson = self.lessons.get(lesson_id) if lesson_id else None
        return asdict(lesson) if lesson else None

    def get_course(self, course_id: Optional[str]) -> Optional[Dict[str, Any]]:
        course = self.courses.get(course_id) if course_id else None
        return asdict(course) if course else None

    def get_chapter(self, chapter_id: Optional[str]) -> Optional[Dict[str, Any]]:
        chapter = self.chapters.get(chapter_id) if chapter_id else None
        return asdict(chapter) if chapter else None

    def find_resources(self, keywords: Iterable[str], limit: int = 3) -> List[RelatedResource]:
        """Resources whose title, description or tags share a keyword, best match first."""
        wanted = {kw.lower() for kw in keywords if len(kw) > 3}
        if not wanted:
            return []

        scored = []
        for resource in self.resources:
            vocabulary = set(tokenize(f"{resource.title} {resource.description}"))
            vocabulary.update(tag.lower() for tag in resource.tags)
            overlap = len(wanted & vocabulary)
            if overlap:
                scored.append((overlap, resource))

        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [
            RelatedResource(
                id=resource.id,
                title=resource.title,
                category=resource.category,
                url=f"/resources/{resource.id}",
            )
            for _, resource in scored[:limit]
        ]

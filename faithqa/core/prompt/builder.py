"""
Prompt builder: faith context + lesson context + history + retrieved sources.
Output is a single deterministic string for a given set of inputs.
"""

from pathlib import Path
from typing import List, Dict, Optional, Sequence, Protocol

from faithqa.core.models import Context
from faithqa.shared.localization import response_directive
from faithqa.shared.logging import get_logger
from faithqa.shared.text import truncate

logger = get_logger(__name__)

FAITH_CONTEXT = """FAITH ALIGNMENT CONTEXT - ETHIOPIAN ORTHODOX TEWAHEDO CHURCH

You are an AI assistant exclusively for Ethiopian Orthodox Tewahedo Church education.
Provide doctrinally accurate responses aligned with Tewahedo tradition only.

DOCTRINAL POSITIONS:
- Tewahedo (Unity) of Christ's divine and human natures without separation, mixture, or confusion
- The 81 books of the Ethiopian Orthodox Bible (46 OT + 35 NT), including Enoch and Jubilees
- Seven sacraments: Baptism, Confirmation, Eucharist, Confession, Anointing, Matrimony, Holy Orders
- Veneration of Saints, especially St. Mary (Mariam) as Theotokos
- Real Presence in the Eucharist (Qurban)
- Apostolic succession through St. Mark of Alexandria
- Councils of Nicaea (325), Constantinople (381) and Ephesus (431)

REFERENCES:
Scriptures: Enoch, Jubilees, the Ethiopian Synaxarium, Mets'hafe Berhan
Saints: the Nine Syrian Saints, St. Frumentius (Abune Selama), St. Yared, St. Gebre Menfes Kidus
Feasts: Timkat (Epiphany), Meskel, Enkutatash, Hosanna
Practices: the fasting seasons, prayer seven times daily, the Tabot and Ge'ez liturgy"""

# Church vocabulary to prefer when answering in each language
TERMINOLOGY_NOTES: Dict[str, str] = {
    "en": "Use Ethiopian Orthodox terminology: Tewahedo, Qurban, Tabot, Abune, Liqawint.",
    "am": "Use traditional church vocabulary: ተዋሕዶ, ቅዳሴ, ቁርባን, ታቦት, አቡነ.",
    "ti": "Use traditional church vocabulary: ተዋህዶ, ቅዳሴ, ቁርባን, ታቦት, ኣቡነ.",
    "om": "Use church terms as taught in Afan Oromo congregations, keeping Tewahedo, Qurban and Tabot.",
}

HARD_CONSTRAINTS = """CONSTRAINTS:
- Keep the response under {max_chars} characters
- Do not compare or contrast with other Christian traditions or other faiths
- Do not speculate beyond established Tewahedo doctrine or give personal opinions
- Include scripture references from the 81-book canon when appropriate
- If uncertain, or the question concerns personal spiritual matters, recommend consulting local clergy"""

STRICT_CONSTRAINTS = """STRICT DOCTRINAL REQUIREMENTS:
- State the unity (Tewahedo) of Christ's nature whenever Christ is discussed
- Refer to the 81-book canon when citing Scripture
- Cite the Bible, the Church Fathers or the liturgical tradition explicitly
- Name heresies only to state the Church's condemnation of them"""


class HistoryMessage(Protocol):
    role: str
    content: str


class PromptBuilder:
    """Build provider prompts from faith context and request inputs."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}
        self.context_dir = Path(self.config.get("context_dir", "config/faith_context"))
        self.max_chars_per_file = self.config.get("max_chars_per_file", 8000)
        self.max_history_messages = self.config.get("max_history_messages", 6)
        self.max_history_chars = self.config.get("max_history_chars", 150)
        self.max_retrieved_items = self.config.get("max_retrieved_items", 3)
        self.max_item_chars = self.config.get("max_item_chars", 600)
        self.max_answer_chars = self.config.get("max_answer_chars", 1000)

    def build(
        self,
        question: str,
        language: str,
        context: Optional[Context] = None,
        history: Sequence[HistoryMessage] = (),
        strict: bool = False,
        issues: Optional[List[str]] = None
    ) -> str:
        """
        Build the full prompt.

        Args:
            question: User question text
            language: Target language tag
            context: Lesson/course/chapter metadata and retrieved items
            history: Prior messages, oldest first
            strict: Regeneration mode with tighter doctrinal requirements
            issues: Alignment issues from the rejected attempt (strict mode)

        Returns:
            Prompt string
        """
        context = context or Context()
        parts = [self._faith_context(language)]

        lesson_block = self._lesson_block(context)
        if lesson_block:
            parts.append(lesson_block)

        history_block = self._history_block(history)
        if history_block:
            parts.append(history_block)

        sources_block = self._sources_block(context)
        if sources_block:
            parts.append(sources_block)

        parts.append(f"LANGUAGE: {response_directive(language)}")
        parts.append(HARD_CONSTRAINTS.format(max_chars=self.max_answer_chars))

        if strict:
            strict_block = STRICT_CONSTRAINTS
            if issues:
                strict_block += "\n\nThe previous answer had these problems; correct them:\n"
                strict_block += "\n".join(f"- {issue}" for issue in issues)
            parts.append(strict_block)

        parts.append(f"QUESTION: {question}")
        parts.append("RESPONSE:")
        return "\n\n".join(parts)

    def _faith_context(self, language: str) -> str:
        """Built-in faith context, or config/faith_context/<lang>.md when present."""
        override = self.context_dir / f"{language}.md"
        if override.exists():
            content = override.read_text(encoding="utf-8")
            if len(content) > self.max_chars_per_file:
                # Preserve head and tail
                head_chars = self.max_chars_per_file // 2
                tail_chars = self.max_chars_per_file - head_chars - 40
                content = (
                    content[:head_chars] +
                    "\n\n[... context truncated ...]\n\n" +
                    content[-tail_chars:]
                )
                logger.warning(f"Faith context truncated: {override}")
            base = content.strip()
        else:
            base = FAITH_CONTEXT
        note = TERMINOLOGY_NOTES.get(language, TERMINOLOGY_NOTES["en"])
        return f"{base}\n\n{note}"

    def _lesson_block(self, context: Context) -> str:
        lines = []
        if context.course:
            lines.append(f"Course: {context.course.get('title', 'Current Course')}")
        if context.chapter:
            lines.append(f"Chapter: {context.chapter.get('name', 'Current Chapter')}")
        if context.lesson:
            lines.append(f"Lesson: {context.lesson.get('title', 'Current Lesson')}")
            objectives = context.lesson.get("objectives") or []
            if objectives:
                lines.append("Objectives: " + "; ".join(objectives))
            if context.focus_points:
                lines.append("Doctrinal focus: " + "; ".join(context.focus_points))
        if not lines:
            return ""
        return "LEARNING CONTEXT:\n" + "\n".join(lines)

    def _history_block(self, history: Sequence[HistoryMessage]) -> str:
        recent = list(history)[-self.max_history_messages:] if self.max_history_messages else []
        if not recent:
            return ""
        lines = []
        for msg in recent:
            role = getattr(msg.role, "value", msg.role)
            content = truncate(msg.content.replace("\n", " "), self.max_history_chars)
            lines.append(f"{role}: {content}")
        return "CONVERSATION CONTEXT:\n" + "\n".join(lines)

    def _sources_block(self, context: Context) -> str:
        items = context.retrieved[:self.max_retrieved_items]
        if not items:
            return ""
        blocks = [
            f"[Source: {item.title} ({item.category})]\n{truncate(item.content, self.max_item_chars)}"
            for item in items
        ]
        return "RELEVANT THEOLOGICAL SOURCES (use these to answer):\n" + "\n\n".join(blocks)

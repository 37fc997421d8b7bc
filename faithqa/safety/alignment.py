"""
Post-response faith alignment scoring against the Tewahedo doctrinal rubric.

Score starts at 1.0; doctrinal gaps, heresy mentions and ecumenical
phrasing subtract; preferred terminology, cited sources, Ethiopian
references and lesson focus points add. Result is clamped to [0, 1].
"""

import re
from typing import Dict, List, Optional, Tuple

from faithqa.core.models import Context, FaithAlignment
from faithqa.shared.config import settings
from faithqa.shared.logging import get_logger

logger = get_logger(__name__)

DOCTRINAL_SOURCES: Tuple[str, ...] = (
    # scriptures
    "holy bible", "81 books", "book of enoch", "book of jubilees", "metsihafe berhan",
    "ethiopian synaxarium",
    # church fathers
    "st. yared", "abune selama", "frumentius", "nine syrian saints", "tekle haymanot",
    "gebre menfes kidus",
)

HERESIES: Tuple[str, ...] = (
    "nestorianism", "arianism", "monophysitism", "monothelitism", "pelagianism", "gnosticism",
    "sola scriptura", "papal supremacy",
)

CONDEMNATION_MARKERS: Tuple[str, ...] = ("against", "reject", "condemn", "heresy", "heretical", "error")

COMPROMISE_PHRASES: Tuple[str, ...] = (
    "all christians believe", "most churches teach", "generally accepted", "across denominations",
)

# generic term -> markers that show the preferred Ethiopian Orthodox usage
PREFERRED_TERMINOLOGY: Dict[str, Tuple[str, ...]] = {
    "christ": ("christ",),
    "eucharist": ("qurban",),
    "ark": ("tabot",),
    "priest": ("priest", "abune"),
    "bishop": ("bishop", "abune"),
    "liturgy": ("divine liturgy", "qidase", "kidase"),
    "fasting": ("fasting", "tsom"),
    "prayer": ("prayer", "slot", "tselot"),
    "scripture": ("holy scripture",),
    "church": ("ethiopian orthodox", "tewahedo church"),
}

ETHIOPIAN_TERMS: Tuple[str, ...] = (
    "axum", "lalibela", "debre damo", "nine saints", "timkat", "meskel", "hudade", "geez", "ge'ez",
    "fidel", "kidane mehret", "debre libanos", "waldiba", "lake tana",
)

LITURGICAL_TERMS: Tuple[str, ...] = ("qurban", "qidase", "tsom", "s'lot", "me'era")

CHRISTOLOGY_PENALTY = 0.10
CANON_PENALTY = 0.05
TERMINOLOGY_WEIGHT = 0.20
SOURCE_WEIGHT = 0.30
SOURCES_FOR_FULL_CREDIT = 5
HERESY_PENALTY = 0.30
COMPROMISE_PENALTY = 0.10
ETHIOPIAN_TERM_BONUS = 0.05
LITURGICAL_TERM_BONUS = 0.03
REGIONAL_BONUS_CAP = 0.15
CURRICULUM_WEIGHT = 0.20
CONDEMNATION_WINDOW = 60


def _contains(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}", text) is not None


def _count(text: str, terms: Tuple[str, ...]) -> int:
    return sum(1 for term in terms if _contains(text, term))


class FaithAlignmentValidator:
    """Score provider output; is_aligned when score >= ok threshold."""

    def __init__(self, ok_threshold: Optional[float] = None):
        self.ok_threshold = ok_threshold if ok_threshold is not None else settings.alignment.ok_threshold

    def validate(
        self,
        response: str,
        question: str = "",
        context: Optional[Context] = None
    ) -> FaithAlignment:
        """
        Score a response.

        Args:
            response: Provider answer
            question: Original question
            context: Retrieval context; lesson doctrinal focus points add credit

        Returns:
            FaithAlignment
        """
        text = response.lower()
        issues: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []
        score = 1.0

        score -= self._doctrinal_gaps(text, warnings, suggestions)
        score += TERMINOLOGY_WEIGHT * self._terminology_ratio(text)
        score += SOURCE_WEIGHT * min(1.0, _count(text, DOCTRINAL_SOURCES) / SOURCES_FOR_FULL_CREDIT)
        score -= self._heresy_penalty(text, issues, warnings)
        score += self._regional_bonus(text)

        focus_points = context.focus_points if context else []
        if focus_points:
            covered = sum(1 for point in focus_points if point.lower() in text)
            score += CURRICULUM_WEIGHT * covered / len(focus_points)
            if covered < len(focus_points):
                suggestions.append("Address the lesson's doctrinal focus points")

        score = max(0.0, min(1.0, score))
        if issues:
            logger.debug(f"Alignment issues found: {len(issues)}, score {score:.2f}")
        return FaithAlignment(
            score=round(score, 4),
            is_aligned=score >= self.ok_threshold,
            issues=issues,
            warnings=warnings,
            suggestions=suggestions,
        )

    def _doctrinal_gaps(self, text: str, warnings: List[str], suggestions: List[str]) -> float:
        penalty = 0.0
        if (_contains(text, "christ") or _contains(text, "nature")) and not (
            _contains(text, "tewahedo") or _contains(text, "unity")
        ):
            warnings.append("Emphasize Tewahedo (unity) when discussing Christ's nature")
            penalty += CHRISTOLOGY_PENALTY

        if _contains(text, "bible") and not (
            "81" in text or _contains(text, "enoch") or _contains(text, "jubilee")
        ):
            suggestions.append("Reference the 81-book Ethiopian Orthodox biblical canon")
            penalty += CANON_PENALTY

        if _contains(text, "eucharist") and not _contains(text, "qurban"):
            suggestions.append('Use "Qurban" alongside "Eucharist"')
        return penalty

    def _terminology_ratio(self, text: str) -> float:
        relevant = [term for term in PREFERRED_TERMINOLOGY if _contains(text, term)]
        if not relevant:
            return 0.0
        preferred = sum(
            1 for term in relevant
            if any(_contains(text, marker) for marker in PREFERRED_TERMINOLOGY[term])
        )
        return preferred / len(relevant)

    def _heresy_penalty(self, text: str, issues: List[str], warnings: List[str]) -> float:
        penalty = 0.0
        for heresy in HERESIES:
            for match in re.finditer(rf"\b{re.escape(heresy)}", text):
                window = text[max(0, match.start() - CONDEMNATION_WINDOW):match.end() + CONDEMNATION_WINDOW]
                if not any(_contains(window, marker) for marker in CONDEMNATION_MARKERS):
                    issues.append(f"Neutral or favourable mention of {heresy}")
                    penalty += HERESY_PENALTY

        for phrase in COMPROMISE_PHRASES:
            if phrase in text:
                warnings.append("Avoid ecumenical language that compromises Orthodox distinctives")
                penalty += COMPROMISE_PENALTY
        return penalty

    def _regional_bonus(self, text: str) -> float:
        bonus = ETHIOPIAN_TERM_BONUS * _count(text, ETHIOPIAN_TERMS)
        bonus += LITURGICAL_TERM_BONUS * _count(text, LITURGICAL_TERMS)
        return min(REGIONAL_BONUS_CAP, bonus)

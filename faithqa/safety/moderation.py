"""
Pre-response moderation: sensitive topics, problematic phrasing, faith
vocabulary, prompt injection and user history feed one decision table.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from faithqa.core.models import ModerationAction, ModerationResult, Severity
from faithqa.shared.localization import localize
from faithqa.shared.logging import get_logger
from faithqa.shared.text import tokenize, whitespace_tokens

logger = get_logger(__name__)


def _compile(terms: Tuple[str, ...]) -> Pattern:
    alternatives = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"\b(?:{alternatives})s?\b", re.IGNORECASE)


def _compile_stem(stem: str) -> Pattern:
    return re.compile(rf"\b{re.escape(stem)}\w*", re.IGNORECASE)


# topic name -> surface forms, grouped by severity
SENSITIVE_TOPICS: Dict[Severity, Dict[str, Tuple[str, ...]]] = {
    Severity.HIGH: {
        "heresy": ("heresy", "heresies", "heretic", "heretical"),
        "blasphemy": ("blasphemy", "blasphemous"),
        "schism": ("schism", "schismatic"),
        "apostasy": ("apostasy", "apostate"),
        "violence": ("violence", "violent"),
        "euthanasia": ("euthanasia",),
        "abortion": ("abortion",),
    },
    Severity.MEDIUM: {
        "protestant": ("protestant", "protestantism", "pente", "pentecostal"),
        "catholic": ("catholic", "catholicism"),
        "islam": ("islam", "islamic"),
        "muslim": ("muslim",),
        "jewish": ("jewish", "judaism"),
        "other_faiths": ("other faith", "other religion"),
        "ecumenical": ("ecumenical", "ecumenism", "interfaith"),
        "political": ("political", "politics", "church politics"),
        "doctrinal_disputes": ("doctrinal dispute",),
        "controversy": ("controversy", "controversies", "controversial", "theological debate"),
    },
    Severity.LOW: {
        "social_issues": ("social issue", "modern society", "traditional vs modern"),
        "contraception": ("contraception",),
        "gender": ("gender",),
        "sexuality": ("sexuality",),
        "war": ("war",),
        "death_penalty": ("death penalty",),
        "divorce": ("divorce",),
        "remarriage": ("remarriage",),
        "priesthood": ("priesthood",),
        "celibacy": ("celibacy",),
    },
}

# Traditions whose mention alongside a comparative phrase marks an interfaith comparison
OTHER_TRADITIONS = ("protestant", "catholic", "islam", "muslim", "jewish", "other_faiths")

CONFIDENCE_FACTORS = {Severity.HIGH: 0.5, Severity.MEDIUM: 0.8, Severity.LOW: 0.9}

PROBLEMATIC_PHRASES: Dict[str, Tuple[str, ...]] = {
    "comparative": ("compare to", "compared to", "compared with", "different from", "versus", "vs",
                    "better than", "worse than", "superior to", "orthodox view on"),
    "challenging": ("why not", "is it wrong", "is it sin", "against", "contradict", "prove that"),
    "speculative": ("what if", "what about", "suppose", "imagine", "hypothetically"),
    "personal_interpretation": ("i think", "i believe", "in my opinion", "my interpretation", "i feel"),
}

FAITH_DOMAIN_TERMS = (
    "abune", "liqawint", "tabot", "qesoch", "debrezeit", "ethiopian orthodox", "orthodox", "tewahedo",
    "geez", "ge'ez", "fidel", "kidane mehret", "trinity", "incarnation", "eucharist", "qurban",
    "baptism", "prayer", "pray", "fasting", "fast", "lent", "liturgy", "scripture", "bible",
    "old testament", "new testament", "apostle", "saint", "martyr", "commandment", "mercy",
    "repentance", "salvation", "heaven", "angel", "creation", "timkat", "meskel", "enkutatash",
    "hosanna", "mariam", "theotokos", "christ", "jesus", "church", "sacrament", "synaxarium",
    "yared", "lalibela", "axum", "gospel", "psalm", "enoch", "jubilee",
    "ተዋሕዶ", "ቅዳሴ", "ቁርባን", "ታቦት", "ጥምቀት", "መስቀል", "ጾም", "ጸሎት", "ማርያም", "ቅዱሳን",
    "ወንጌል", "ኢየሱስ", "ክርስቶስ", "ቤተ", "ክርስቲያን", "ኦርቶዶክስ",
)

# Afan Oromo faith vocabulary, matched as word stems since suffixes carry case and number
OROMO_FAITH_STEMS = (
    "waaqayyo", "yesus", "kiristoos", "kiristaan", "kadhann", "kadhat", "sooma", "qulqull",
    "macaaf", "wangeel", "cuuph", "ayyaan", "maariyaam", "fayyin", "ergam", "araara", "ortodoks",
)

INJECTION_PATTERNS = (
    r"ignore (all|the) previous instructions",
    r"reveal your system prompt",
    r"send your api key",
    r"\bDELETE\b.*FROM",
    r"\bDROP\b.*TABLE",
)

GENERIC_QUESTION_WORDS = frozenset({"why", "how", "what", "when", "where", "who"})

FREQUENT_FLAGGED_THRESHOLD = 3
FREQUENT_FLAGGED_FACTOR = 0.85
RECURRING_PATTERN_THRESHOLD = 2


@dataclass
class ModerationHistory:
    """Recent flagged moderation outcomes for one user."""
    flagged_last_7_days: int = 0
    prior_flags: List[List[str]] = field(default_factory=list)


class ModerationEngine:
    """Classify a question and recommend approve / regenerate / escalate / block."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}
        self.escalate_faith_below = self.config.get("escalate_faith_below", 0.60)
        self.escalate_confidence_at = self.config.get("escalate_confidence_at", 0.80)
        self.auto_approve_confidence = self.config.get("auto_approve_confidence", 0.80)
        self.auto_approve_faith = self.config.get("auto_approve_faith", 0.40)
        self.min_tokens = self.config.get("min_tokens", 3)

        self._topic_patterns = {
            severity: {name: _compile(terms) for name, terms in topics.items()}
            for severity, topics in SENSITIVE_TOPICS.items()
        }
        self._phrase_patterns = {name: _compile(terms) for name, terms in PROBLEMATIC_PHRASES.items()}
        self._faith_patterns = [(term, _compile((term,))) for term in FAITH_DOMAIN_TERMS]
        self._faith_patterns += [(stem, _compile_stem(stem)) for stem in OROMO_FAITH_STEMS]
        self._injection_patterns = [re.compile(p, re.IGNORECASE) for p in INJECTION_PATTERNS]

    def moderate(
        self,
        text: str,
        user_id: str,
        language: str = "en",
        history: Optional[ModerationHistory] = None
    ) -> ModerationResult:
        """
        Screen a question.

        Args:
            text: Question text
            user_id: Asking user (history is looked up by the caller)
            language: Language for guidance strings
            history: Recent flagged outcomes for the user

        Returns:
            ModerationResult
        """
        flags: List[str] = []
        sensitive: List[str] = []
        severity = Severity.LOW
        confidence = 0.9

        for bucket, patterns in self._topic_patterns.items():
            for name, pattern in patterns.items():
                if pattern.search(text):
                    sensitive.append(name)
                    if bucket.rank > severity.rank:
                        severity = bucket
                    confidence *= CONFIDENCE_FACTORS[bucket]

        problematic = [name for name, pattern in self._phrase_patterns.items() if pattern.search(text)]
        for name in problematic:
            flags.append(f"problematic_{name}")
            confidence *= 0.9

        if "comparative" in problematic and any(t in sensitive for t in OTHER_TRADITIONS):
            sensitive.append("interfaith_comparison")
            if severity.rank < Severity.MEDIUM.rank:
                severity = Severity.MEDIUM
            confidence *= CONFIDENCE_FACTORS[Severity.MEDIUM]

        flags.extend(f"sensitive_topic_{name}" for name in sensitive)

        faith_hits = sum(1 for _, pattern in self._faith_patterns if pattern.search(text))
        faith_score = min(1.0, 0.3 + 0.35 * faith_hits)

        if history is not None:
            current = set(flags)
            if history.flagged_last_7_days >= FREQUENT_FLAGGED_THRESHOLD:
                flags.append("frequent_flagged_user")
                confidence *= FREQUENT_FLAGGED_FACTOR
            sharing = sum(1 for prior in history.prior_flags if current & set(prior))
            if current and sharing >= RECURRING_PATTERN_THRESHOLD:
                flags.append("recurring_issue_pattern")

        confidence = max(0.0, min(1.0, confidence))
        needs_review, action, guidance_keys = self._decide(
            text, flags, sensitive, severity, faith_score, faith_hits, confidence
        )

        if action == ModerationAction.BLOCK:
            severity = Severity.HIGH

        result = ModerationResult(
            needs_review=needs_review,
            flags=flags,
            sensitive_topics=sensitive,
            severity=severity,
            faith_alignment_score=round(faith_score, 4),
            faith_term_hits=faith_hits,
            confidence=round(confidence, 4),
            recommended_action=action,
            guidance=[localize(key, language) for key in guidance_keys],
        )

        if flags:
            logger.info(
                "Moderation flagged question",
                extra={
                    "action": "moderate",
                    "recommended_action": action.value,
                    "severity": severity.value,
                    "flags": ",".join(flags),
                },
            )
        return result

    def _decide(
        self,
        text: str,
        flags: List[str],
        sensitive: List[str],
        severity: Severity,
        faith_score: float,
        faith_hits: int,
        confidence: float
    ) -> Tuple[bool, ModerationAction, List[str]]:
        """First matching row wins."""
        if any(p.search(text) for p in self._injection_patterns):
            flags.append("prompt_injection")
            return True, ModerationAction.BLOCK, ["blocked", "consult_clergy"]

        if severity == Severity.HIGH:
            return True, ModerationAction.ESCALATE, ["sensitive_review", "consult_clergy"]

        if faith_score < self.escalate_faith_below and confidence >= self.escalate_confidence_at:
            flags.append("low_faith_alignment")
            return True, ModerationAction.ESCALATE, ["sensitive_review", "consult_clergy"]

        if len(sensitive) >= 2:
            return True, ModerationAction.ESCALATE, ["sensitive_review", "consult_clergy"]

        if len(whitespace_tokens(text)) < self.min_tokens:
            flags.append("too_short")
            return False, ModerationAction.APPROVE, ["too_short"]

        question_words = GENERIC_QUESTION_WORDS & set(tokenize(text))
        if len(question_words) > 2 and faith_hits < 2:
            flags.append("potentially_off_topic")
            return False, ModerationAction.APPROVE, ["off_topic"]

        auto_approve = (
            severity != Severity.HIGH
            and confidence >= self.auto_approve_confidence
            and faith_score >= self.auto_approve_faith
        )
        if not auto_approve:
            return True, ModerationAction.REGENERATE, []
        return False, ModerationAction.APPROVE, []

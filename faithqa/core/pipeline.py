"""
Main faithqa pipeline: admission, language, moderation, retrieval,
generation, alignment, persistence and telemetry for one question.
"""

import asyncio
import logging
import time
import traceback
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from faithqa.core.cache import ResponseCache, make_cache_key
from faithqa.core.language import LanguageDetector, UNSUPPORTED
from faithqa.core.models import (
    AnswerBundle,
    Context,
    FaithAlignment,
    LatencyBreakdown,
    ModerationAction,
    ModerationResult,
    ProviderResponse,
    Question,
    Source,
)
from faithqa.core.prompt.builder import PromptBuilder
from faithqa.core.provider import ProviderClient
from faithqa.core.rate_limit import RequestScheduler
from faithqa.core.retrieval.catalog import CurriculumCatalog
from faithqa.core.retrieval.knowledge_base import KnowledgeBase
from faithqa.core.retrieval.retriever import ContextRetriever
from faithqa.memory.conversations import ConversationStore
from faithqa.memory.models import Message, MessageMetadata, ModerationRecord
from faithqa.memory.store import PersistenceStore, format_ts, utc_now
from faithqa.safety.alignment import FaithAlignmentValidator
from faithqa.safety.escalation import EscalationQueue, priority_for
from faithqa.safety.moderation import ModerationEngine, ModerationHistory
from faithqa.shared.config import settings, PipelineConfig, AlignmentConfig, LLMConfig
from faithqa.shared.embeddings import EmbeddingClient
from faithqa.shared.exceptions import (
    EmbeddingError,
    ErrorKind,
    InvalidInputError,
    OverloadedError,
    PersistenceError,
    ProviderUnavailableError,
)
from faithqa.shared.llm import GenerationConfig, LLMBackend, create_backend
from faithqa.shared.localization import localize, unsupported_language_message
from faithqa.shared.logging import get_logger, log_with_context
from faithqa.shared.text import tokenize
from faithqa.telemetry.sink import TelemetryKind, TelemetrySink

logger = get_logger(__name__)

MODERATION_HISTORY_DAYS = 7


def _elapsed_ms(since: float) -> float:
    return (time.perf_counter() - since) * 1000


class Pipeline:
    """Single public entry point: ask(question) -> AnswerBundle."""

    def __init__(
        self,
        provider: ProviderClient,
        store: PersistenceStore,
        retriever: Optional[ContextRetriever] = None,
        detector: Optional[LanguageDetector] = None,
        moderation: Optional[ModerationEngine] = None,
        validator: Optional[FaithAlignmentValidator] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        cache: Optional[ResponseCache] = None,
        scheduler: Optional[RequestScheduler] = None,
        telemetry: Optional[TelemetrySink] = None,
        pipeline_config: Optional[PipelineConfig] = None,
        alignment_config: Optional[AlignmentConfig] = None,
        llm_config: Optional[LLMConfig] = None,
        supported_languages: Optional[List[str]] = None
    ):
        self.config = pipeline_config or settings.pipeline
        self.alignment = alignment_config or settings.alignment
        self.llm = llm_config or settings.llm
        self.supported_languages = list(supported_languages or settings.supported_languages)

        self.provider = provider
        self.store = store
        self.retriever = retriever or ContextRetriever()
        self.detector = detector or LanguageDetector(self.supported_languages)
        self.moderation = moderation or ModerationEngine()
        self.validator = validator or FaithAlignmentValidator(self.alignment.ok_threshold)
        self.prompt_builder = prompt_builder or PromptBuilder(
            {"max_history_messages": 2 * self.config.history_exchanges}
        )
        self.cache = cache or ResponseCache(min_score=self.alignment.ok_threshold)
        self.scheduler = scheduler or RequestScheduler(
            self.config.concurrent_requests, self.config.queue_capacity
        )
        self.telemetry = telemetry or TelemetrySink(store)
        self.conversations = ConversationStore(store)
        self.escalations = EscalationQueue(store)

    async def ask(self, question: Question) -> AnswerBundle:
        """
        Answer one question.

        Raises:
            InvalidInputError: empty or oversized text, missing ids
            OverloadedError: admission queue is full

        Provider failures and unexpected errors come back as a bundle with
        `error` set and a localized message as text.
        """
        started = time.perf_counter()
        deadline = started + self.config.max_response_time_ms / 1000
        timings = LatencyBreakdown()

        await self._validate(question)

        admit_started = time.perf_counter()
        try:
            await self.scheduler.admit(timeout=max(0.0, deadline - time.perf_counter()))
        except OverloadedError:
            await self._emit(
                TelemetryKind.OVERLOADED, question,
                inflight=self.scheduler.inflight, queued=self.scheduler.queued
            )
            raise
        except asyncio.TimeoutError:
            timings.admit_ms = _elapsed_ms(admit_started)
            language = self._fallback_language(question)
            bundle = self._error_bundle(ErrorKind.PROVIDER_UNAVAILABLE, language, timings, started)
            await self._emit(TelemetryKind.AI_ERROR, question, reason="admission_timeout",
                             total_ms=bundle.latency_breakdown.total_ms)
            return bundle
        timings.admit_ms = _elapsed_ms(admit_started)

        events: List[Tuple[str, Dict[str, Any]]] = [(
            TelemetryKind.RATE_LIMIT_ADMISSION,
            {"admit_ms": round(timings.admit_ms, 2), "inflight": self.scheduler.inflight,
             "queued": self.scheduler.queued},
        )]
        try:
            bundle = await self._answer(question, started, deadline, timings, events)
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Unhandled pipeline error: {e}",
                user_id=question.user_id, session_id=question.session_id, action="ask",
            )
            bundle = self._error_bundle(
                ErrorKind.INTERNAL_ERROR, self._fallback_language(question), timings, started
            )
            events.append((TelemetryKind.INTERNAL_ERROR, {
                "error_type": type(e).__name__,
                "traceback": traceback.format_exc(),
            }))
        finally:
            self.scheduler.release()

        events.append((TelemetryKind.REQUEST, {
            "language": bundle.language,
            "cache_hit": bundle.cache_hit,
            "total_ms": round(bundle.latency_breakdown.total_ms, 2),
            "guidance_only": bundle.guidance_only,
            "error": bundle.error.value if bundle.error else None,
            "question": question.text,
            "answer": bundle.text,
        }))
        for kind, fields in events:
            await self._emit(kind, question, **fields)
        return bundle

    async def _validate(self, question: Question):
        problem = None
        if not question.text or not question.text.strip():
            problem = "Question text is empty"
        elif len(question.text.encode("utf-8")) > self.config.max_question_bytes:
            problem = f"Question exceeds {self.config.max_question_bytes} bytes"
        elif not question.user_id or not question.session_id:
            problem = "user_id and session_id are required"

        if problem:
            await self._emit(TelemetryKind.BAD_REQUEST, question, reason=problem, question=question.text)
            raise InvalidInputError(problem)

    async def _answer(
        self,
        question: Question,
        started: float,
        deadline: float,
        timings: LatencyBreakdown,
        events: List[Tuple[str, Dict[str, Any]]]
    ) -> AnswerBundle:
        language = self.detector.resolve(question.text, question.lang_hint)
        if language == UNSUPPORTED:
            events.append((TelemetryKind.UNSUPPORTED_LANGUAGE, {
                "lang_hint": question.lang_hint,
                "question": question.text,
            }))
            message = unsupported_language_message(self.supported_languages)
            return self._finish(AnswerBundle(
                text=message,
                language=UNSUPPORTED,
                guidance=[message],
                guidance_only=True,
            ), timings, started)

        moderation_started = time.perf_counter()
        history = await self._moderation_history(question.user_id, events)
        moderation = self.moderation.moderate(question.text, question.user_id, language, history)
        timings.moderation_ms = _elapsed_ms(moderation_started)
        events.append((TelemetryKind.MODERATION, {
            "flags": moderation.flags,
            "severity": moderation.severity.value,
            "recommended_action": moderation.recommended_action.value,
            "confidence": moderation.confidence,
            "faith_alignment_score": moderation.faith_alignment_score,
            "language": language,
        }))
        if moderation.flags:
            await self._log_moderation(question.user_id, moderation, events)

        if moderation.recommended_action in (ModerationAction.BLOCK, ModerationAction.ESCALATE):
            return await self._moderation_stop(question, language, moderation, timings, started, events)

        if moderation.guidance and not moderation.needs_review:
            return self._finish(AnswerBundle(
                text=" ".join(moderation.guidance),
                language=language,
                moderation=moderation,
                guidance=moderation.guidance,
                guidance_only=True,
            ), timings, started)

        history_messages = await self._history(question, events)

        cache_key = make_cache_key(question.text, language, question.ctx)
        cached = self.cache.get(cache_key)
        if cached is not None:
            bundle = cached.model_copy(update={
                "cache_hit": True,
                "moderation": moderation,
                "latency_breakdown": timings,
            })
            await self._persist_exchange(question, bundle, moderation, False, timings, events)
            return self._finish(bundle, timings, started)

        retrieval_started = time.perf_counter()
        context = await self._retrieve(question, deadline)
        timings.retrieval_ms = _elapsed_ms(retrieval_started)

        strict = moderation.recommended_action == ModerationAction.REGENERATE
        prompt = self.prompt_builder.build(question.text, language, context, history_messages, strict=strict)

        provider_started = time.perf_counter()
        try:
            response = await self.provider.generate(
                prompt, self._generation_config(strict), deadline_ms=self._remaining_ms(deadline)
            )
        except ProviderUnavailableError as e:
            timings.provider_ms = _elapsed_ms(provider_started)
            log_with_context(
                logger, logging.WARNING, f"Provider unavailable: {e}",
                user_id=question.user_id, session_id=question.session_id, action="generate",
            )
            events.append((TelemetryKind.AI_ERROR, {
                "error": str(e),
                "provider_ms": round(timings.provider_ms, 2),
                "language": language,
            }))
            bundle = self._error_bundle(ErrorKind.PROVIDER_UNAVAILABLE, language, timings, started)
            bundle.moderation = moderation
            await self._persist_exchange(question, bundle, moderation, False, timings, events)
            return self._finish(bundle, timings, started)

        alignment = self.validator.validate(response.text, question.text, context)
        regenerated = False
        if alignment.score < self.alignment.regenerate_threshold:
            response, alignment, regenerated = await self._regenerate(
                question, language, context, history_messages, response, alignment, deadline
            )
        timings.provider_ms = _elapsed_ms(provider_started)

        events.append((TelemetryKind.PROVIDER_LATENCY, {
            "model_id": response.model_id,
            "latency_ms": round(response.latency_ms, 2),
            "provider_ms": round(timings.provider_ms, 2),
            "finish_reason": response.finish_reason,
            "regenerated": regenerated,
        }))
        events.append((TelemetryKind.ALIGNMENT, {
            "score": alignment.score,
            "is_aligned": alignment.is_aligned,
            "regenerated": regenerated,
            "issues": len(alignment.issues),
            "language": language,
        }))

        moderation_warning = None
        escalation_id = None
        if alignment.score < self.alignment.escalate_threshold:
            moderation = moderation.model_copy(update={
                "needs_review": True,
                "recommended_action": ModerationAction.ESCALATE,
            })
            moderation_warning = localize("low_alignment", language)
            escalation_id = await self._escalate(
                question, "low_faith_alignment", "high", moderation.flags, alignment.score, events,
                answer=response.text,
            )

        bundle = AnswerBundle(
            text=response.text,
            language=language,
            sources=[Source(title=item.title, type=item.category) for item in context.retrieved],
            related_resources=self._related_resources(question, context),
            moderation=moderation,
            faith_alignment=alignment,
            moderation_warning=moderation_warning,
            model_id=response.model_id,
            escalation_id=escalation_id,
        )

        persisted = await self._persist_exchange(
            question, bundle, moderation, escalation_id is not None, timings, events
        )
        bundle = self._finish(bundle, timings, started)
        if persisted:
            self.cache.put(cache_key, bundle.model_copy(deep=True))
        return bundle

    async def _regenerate(
        self,
        question: Question,
        language: str,
        context: Context,
        history_messages: List[Message],
        first: ProviderResponse,
        first_alignment: FaithAlignment,
        deadline: float
    ) -> Tuple[ProviderResponse, FaithAlignment, bool]:
        """One strict retry; keep whichever attempt scored higher."""
        prompt = self.prompt_builder.build(
            question.text, language, context, history_messages, strict=True, issues=first_alignment.issues
        )
        try:
            second = await self.provider.generate(
                prompt, self._generation_config(True), deadline_ms=self._remaining_ms(deadline)
            )
        except ProviderUnavailableError as e:
            logger.warning(f"Regeneration failed, keeping first answer: {e}")
            return first, first_alignment, False

        second_alignment = self.validator.validate(second.text, question.text, context)
        logger.info(
            f"Regenerated answer: {first_alignment.score:.2f} -> {second_alignment.score:.2f}",
            extra={"action": "regenerate"},
        )
        if second_alignment.score > first_alignment.score:
            return second, second_alignment, True
        return first, first_alignment, True

    async def _moderation_stop(
        self,
        question: Question,
        language: str,
        moderation: ModerationResult,
        timings: LatencyBreakdown,
        started: float,
        events: List[Tuple[str, Dict[str, Any]]]
    ) -> AnswerBundle:
        """Blocked or escalated before generation: persist, escalate, return guidance."""
        warning_key = "blocked" if moderation.recommended_action == ModerationAction.BLOCK else "sensitive_review"
        bundle = AnswerBundle(
            text=" ".join(moderation.guidance),
            language=language,
            moderation=moderation,
            guidance=moderation.guidance,
            guidance_only=True,
            moderation_warning=localize(warning_key, language),
        )
        await self._persist_exchange(question, bundle, moderation, True, timings, events)
        escalation_id = await self._escalate(
            question,
            f"moderation_{moderation.recommended_action.value}",
            priority_for(moderation.severity),
            moderation.flags,
            moderation.faith_alignment_score,
            events,
        )
        bundle.escalation_id = escalation_id
        return self._finish(bundle, timings, started)

    async def _moderation_history(
        self,
        user_id: str,
        events: List[Tuple[str, Dict[str, Any]]]
    ) -> Optional[ModerationHistory]:
        since = utc_now() - timedelta(days=MODERATION_HISTORY_DAYS)
        try:
            records = await asyncio.to_thread(self.store.moderation_log_since, user_id, since)
        except PersistenceError as e:
            events.append((TelemetryKind.PERSISTENCE_FAILURE, {"stage": "moderation_history", "error": str(e)}))
            return None
        return ModerationHistory(
            flagged_last_7_days=len(records),
            prior_flags=[record.flags for record in records],
        )

    async def _log_moderation(
        self,
        user_id: str,
        moderation: ModerationResult,
        events: List[Tuple[str, Dict[str, Any]]]
    ):
        record = ModerationRecord(
            user_id=user_id,
            flags=moderation.flags,
            severity=moderation.severity.value,
            action=moderation.recommended_action.value,
            ts=format_ts(),
        )
        try:
            await asyncio.to_thread(self.store.moderation_log_insert, record)
        except PersistenceError as e:
            events.append((TelemetryKind.PERSISTENCE_FAILURE, {"stage": "moderation_log", "error": str(e)}))

    async def _history(
        self,
        question: Question,
        events: List[Tuple[str, Dict[str, Any]]]
    ) -> List[Message]:
        try:
            return await self.conversations.history(
                question.user_id, question.session_id, 2 * self.config.history_exchanges
            )
        except PersistenceError as e:
            events.append((TelemetryKind.PERSISTENCE_FAILURE, {"stage": "history", "error": str(e)}))
            return []

    async def _retrieve(self, question: Question, deadline: float) -> Context:
        remaining = self._remaining_ms(deadline) / 1000
        try:
            return await asyncio.wait_for(self.retriever.retrieve(question.text, question.ctx), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning("Retrieval exceeded the request deadline, continuing without sources")
            return Context()

    async def _escalate(
        self,
        question: Question,
        reason: str,
        priority: str,
        flags: List[str],
        score: Optional[float],
        events: List[Tuple[str, Dict[str, Any]]],
        answer: Optional[str] = None
    ) -> Optional[int]:
        content = question.text if answer is None else f"Q: {question.text}\nA: {answer}"
        try:
            escalation_id = await self.escalations.create(
                question.user_id, content, reason, priority, flags, score
            )
        except PersistenceError as e:
            events.append((TelemetryKind.PERSISTENCE_FAILURE, {"stage": "escalation", "error": str(e)}))
            return None
        events.append((TelemetryKind.ESCALATION, {
            "escalation_id": escalation_id,
            "reason": reason,
            "priority": priority,
        }))
        return escalation_id

    async def _persist_exchange(
        self,
        question: Question,
        bundle: AnswerBundle,
        moderation: ModerationResult,
        needs_moderation: bool,
        timings: LatencyBreakdown,
        events: List[Tuple[str, Dict[str, Any]]]
    ) -> bool:
        """Append the (user, assistant) pair. Failures become telemetry, not errors."""
        persistence_started = time.perf_counter()
        ctx_fields = question.ctx.model_dump(exclude_none=True)
        question_metadata = MessageMetadata(
            language=bundle.language,
            moderation_action=moderation.recommended_action.value,
            flags=moderation.flags,
            extensions={"ctx": ctx_fields} if ctx_fields else {},
        )
        answer_metadata = MessageMetadata(
            language=bundle.language,
            model_id=bundle.model_id,
            faith_alignment_score=bundle.faith_alignment.score if bundle.faith_alignment else None,
            moderation_action=moderation.recommended_action.value,
            cache_hit=bundle.cache_hit,
        )
        try:
            await self.conversations.append_exchange(
                question.user_id,
                question.session_id,
                question.text,
                bundle.text,
                question_metadata,
                answer_metadata,
                needs_moderation,
            )
            return True
        except PersistenceError as e:
            log_with_context(
                logger, logging.WARNING, f"Conversation write failed: {e}",
                user_id=question.user_id, session_id=question.session_id, action="persist",
            )
            events.append((TelemetryKind.PERSISTENCE_FAILURE, {"stage": "conversation", "error": str(e)}))
            return False
        finally:
            timings.persistence_ms += _elapsed_ms(persistence_started)

    def _related_resources(self, question: Question, context: Context):
        keywords = tokenize(question.text) + [point for point in context.focus_points]
        return self.retriever.catalog.find_resources(keywords, limit=3)

    def _generation_config(self, strict: bool) -> GenerationConfig:
        if strict:
            return GenerationConfig(temperature=self.llm.strict_temperature, max_tokens=self.llm.strict_max_tokens)
        return GenerationConfig(temperature=self.llm.temperature, max_tokens=self.llm.max_tokens)

    def _remaining_ms(self, deadline: float) -> float:
        return max(0.0, (deadline - time.perf_counter()) * 1000)

    def _fallback_language(self, question: Question) -> str:
        language = self.detector.resolve(question.text, question.lang_hint)
        return "en" if language == UNSUPPORTED else language

    def _error_bundle(
        self,
        kind: ErrorKind,
        language: str,
        timings: LatencyBreakdown,
        started: float
    ) -> AnswerBundle:
        key = "provider_unavailable" if kind == ErrorKind.PROVIDER_UNAVAILABLE else "internal_error"
        guidance = [localize("consult_clergy", language)]
        return self._finish(AnswerBundle(
            text=localize(key, language),
            language=language,
            guidance=guidance,
            error=kind,
        ), timings, started)

    def _finish(self, bundle: AnswerBundle, timings: LatencyBreakdown, started: float) -> AnswerBundle:
        timings.total_ms = _elapsed_ms(started)
        bundle.latency_breakdown = timings.model_copy()
        return bundle

    async def _emit(self, kind: str, request: Question, **fields: Any):
        try:
            await self.telemetry.record(kind, request.user_id, request.session_id, **fields)
        except PersistenceError as e:
            logger.warning(f"Telemetry write failed for {kind}: {e}")

    def status(self) -> Dict[str, Any]:
        """Live service status."""
        return {
            "active_model": self.provider.active_model,
            "model_candidates": list(self.provider.candidates),
            "cache_enabled": self.cache.enabled,
            "cache_size": len(self.cache),
            "cache_capacity": self.cache.capacity,
            "inflight": self.scheduler.inflight,
            "queued": self.scheduler.queued,
            "max_inflight": self.scheduler.max_inflight,
            "queue_capacity": self.scheduler.queue_capacity,
        }

    async def sweep_retention(
        self,
        now: Optional[datetime] = None,
        retention_days: Optional[int] = None
    ) -> Dict[str, int]:
        """Delete persisted rows older than the retention window; returns per-table counts."""
        days = retention_days if retention_days is not None else self.telemetry.retention_days
        cutoff = (now or utc_now()) - timedelta(days=days)
        counts = await asyncio.to_thread(self.store.sweep, cutoff)
        logger.info(f"Retention sweep removed {sum(counts.values())} rows", extra={"action": "retention"})
        return counts


def create_pipeline(
    db_path=None,
    backend: Optional[LLMBackend] = None,
    knowledge_base: Optional[KnowledgeBase] = None,
    catalog: Optional[CurriculumCatalog] = None
) -> Pipeline:
    """Build a pipeline from settings."""
    backend = backend or create_backend()
    store = PersistenceStore(db_path)

    embedding_client = None
    if knowledge_base is not None:
        try:
            embedding_client = EmbeddingClient()
        except EmbeddingError as e:
            logger.warning(f"Embeddings disabled, retrieval will return no sources: {e}")

    return Pipeline(
        provider=ProviderClient(backend),
        store=store,
        retriever=ContextRetriever(knowledge_base, embedding_client, catalog),
    )

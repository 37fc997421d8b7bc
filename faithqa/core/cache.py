"""
Response cache: bounded LRU map with TTL, gated on alignment score.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from faithqa.core.models import AnswerBundle, QuestionContext
from faithqa.shared.config import settings
from faithqa.shared.logging import get_logger
from faithqa.shared.text import normalize_question

logger = get_logger(__name__)


def make_cache_key(text: str, language: str, ctx: Optional[QuestionContext] = None) -> str:
    """sha256 over normalized question, language and chapter/course/lesson ids."""
    ctx = ctx or QuestionContext()
    parts = [
        normalize_question(text),
        language,
        ctx.chapter_id or "",
        ctx.course_id or "",
        ctx.lesson_id or "",
    ]
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    value: AnswerBundle
    created_ts: float
    last_hit_ts: float


class ResponseCache:
    """In-process LRU cache. All mutation happens under one lock."""

    def __init__(
        self,
        capacity: Optional[int] = None,
        ttl_ms: Optional[int] = None,
        min_score: Optional[float] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.capacity = capacity if capacity is not None else settings.cache.capacity
        self.ttl_ms = ttl_ms if ttl_ms is not None else settings.cache.ttl_ms
        self.min_score = min_score if min_score is not None else settings.alignment.ok_threshold
        self.enabled = enabled if enabled is not None else settings.cache.enabled
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[AnswerBundle]:
        """Return the cached bundle if present and not older than the TTL."""
        if not self.enabled:
            return None
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if (now - entry.created_ts) * 1000 > self.ttl_ms:
                del self._entries[key]
                self.misses += 1
                return None
            entry.last_hit_ts = now
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    def put(self, key: str, value: AnswerBundle) -> bool:
        """
        Insert a bundle. Returns False when caching is disabled or the
        bundle's alignment score is below the gate.
        """
        if not self.enabled or self.capacity <= 0:
            return False
        if value.faith_alignment is None or value.faith_alignment.score < self.min_score:
            logger.debug("Cache insert rejected: alignment below gate")
            return False

        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted LRU entry {evicted[:12]}")
            self._entries[key] = CacheEntry(key=key, value=value, created_ts=now, last_hit_ts=now)
        return True

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
        }

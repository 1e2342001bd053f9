"""Ledger of per-word performance records."""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from vocabengine.config import SpacedRepetitionConfig
from vocabengine.models.base import utcnow
from vocabengine.models.selection_models import WordPerformanceRecord
from vocabengine.services.stores import PerformanceStore

logger = logging.getLogger(__name__)

RecordKey = Tuple[str, str, str]
RecordUpdate = Callable[[Optional[WordPerformanceRecord]], WordPerformanceRecord]

LOCK_STRIPES = 64


class PerformanceLedger:
    """Read and update performance records, one writer per key at a time."""

    def __init__(self, store: PerformanceStore, config: Optional[SpacedRepetitionConfig] = None):
        """Initialize the ledger with a performance store."""
        self.store = store
        self.config = config or SpacedRepetitionConfig()
        # Keys share a fixed pool of locks so memory stays bounded
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, key: RecordKey) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def get(self, user_id: str, word: str, language: str) -> Optional[WordPerformanceRecord]:
        """Get the record for a word, or None if it was never seen."""
        return self.store.get(user_id, word, language)

    def update(self, user_id: str, word: str, language: str, change: RecordUpdate) -> WordPerformanceRecord:
        """Re-read the record, apply ``change`` and write the result under the key's lock.

        ``change`` receives the current record (None if absent) and returns the
        record to store. Identity fields cannot be changed.
        """
        key = (user_id, word, language)
        with self._lock_for(key):
            current = self.store.get(user_id, word, language)
            updated = change(current)
            if updated.key != key:
                raise ValueError(f"Record identity changed from {key} to {updated.key}")
            if current is not None:
                self._check_transition(current, updated)
            self.store.upsert(updated)
        return updated

    def ensure(self, user_id: str, word: str, language: str, factory: Callable[[], WordPerformanceRecord]) -> WordPerformanceRecord:
        """Create the record with ``factory`` unless one already exists."""
        return self.update(user_id, word, language, lambda current: current or factory())

    def _check_transition(self, current: WordPerformanceRecord, updated: WordPerformanceRecord) -> None:
        if updated.total_reviews < current.total_reviews or updated.correct_reviews < current.correct_reviews:
            raise ValueError(f"Review counters of {current.word!r} cannot decrease")
        if abs(updated.mastery_level - current.mastery_level) > 1:
            raise ValueError(f"Mastery level of {current.word!r} may only change by one step")
        if not 1 <= updated.mastery_level <= self.config.max_mastery_level:
            raise ValueError(f"Mastery level {updated.mastery_level} out of range")

    def get_due(self, user_id: str, language: str, cutoff: datetime, limit: int) -> List[WordPerformanceRecord]:
        """Records due at or before ``cutoff``, most overdue first."""
        return self.store.list_due(user_id, language, cutoff, limit)

    def get_struggling(self, user_id: str, language: str, limit: int) -> List[WordPerformanceRecord]:
        """Records the learner keeps getting wrong, worst first."""
        return self.store.list_struggling(
            user_id,
            language,
            threshold=self.config.struggling_threshold,
            min_reviews=self.config.min_reviews_for_struggling,
            limit=limit,
        )

    def created_since(self, user_id: str, language: str, since: datetime) -> List[WordPerformanceRecord]:
        """Records first seen at or after ``since``."""
        return self.store.created_since(user_id, language, since)

    def is_struggling(self, record: Optional[WordPerformanceRecord]) -> bool:
        if record is None:
            return False
        return record.is_struggling_at(
            self.config.struggling_threshold, self.config.min_reviews_for_struggling
        )

    def staleness_days(self, record: Optional[WordPerformanceRecord], now: Optional[datetime] = None) -> Optional[float]:
        """Days since the word was last reviewed, None if never reviewed."""
        if record is None:
            return None
        return record.days_since_review(now or utcnow())

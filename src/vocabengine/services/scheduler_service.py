"""Spaced repetition scheduling of vocabulary reviews."""
import logging
import math
from datetime import datetime, timedelta, UTC
from typing import Callable, List, Optional

from vocabengine import monitoring
from vocabengine.config import SpacedRepetitionConfig
from vocabengine.models.base import utcnow
from vocabengine.models.selection_models import WordPerformanceRecord
from vocabengine.services.ledger_service import PerformanceLedger

logger = logging.getLogger(__name__)


def end_of_day(moment: datetime) -> datetime:
    """Last instant of ``moment``'s UTC calendar day."""
    start = moment.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    return start + timedelta(days=1) - timedelta(microseconds=1)


class SpacedRepetitionScheduler:
    """Owns mastery levels and review dates of learner words."""

    def __init__(
        self,
        ledger: PerformanceLedger,
        config: Optional[SpacedRepetitionConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the scheduler with a performance ledger."""
        self.ledger = ledger
        self.config = config or ledger.config
        self.clock = clock

    def calculate_next_interval(self, current_level: int, was_correct: bool, accuracy: float) -> int:
        """Days until the next review, growing geometrically with the level."""
        multiplier = self.config.easy_multiplier if was_correct else self.config.hard_multiplier

        # Adjust multiplier based on accuracy
        if accuracy > 0.9:
            multiplier *= 1.2
        elif accuracy < 0.7:
            multiplier *= 0.8

        interval = math.ceil(self.config.initial_interval * multiplier ** (current_level - 1))
        return min(interval, self.config.max_interval)

    def calculate_mastery_level(self, correct_reviews: int, total_reviews: int, current_level: int) -> int:
        """Move the level at most one step up or down."""
        accuracy = correct_reviews / total_reviews if total_reviews > 0 else 0.0

        if (
            accuracy >= self.config.min_accuracy_for_promotion
            and correct_reviews >= current_level * 2
        ):
            return min(current_level + 1, self.config.max_mastery_level)

        if (
            accuracy < self.config.struggling_threshold
            and total_reviews >= self.config.min_reviews_for_demotion
        ):
            return max(current_level - 1, 1)

        return current_level

    def record_answer(self, user_id: str, word: str, language: str, was_correct: bool) -> WordPerformanceRecord:
        """Record an answered exercise and reschedule the word."""
        now = self.clock()

        previous_level: List[int] = []

        def apply_answer(existing: Optional[WordPerformanceRecord]) -> WordPerformanceRecord:
            current = existing or WordPerformanceRecord(user_id=user_id, word=word, language=language)
            correct = current.correct_reviews + (1 if was_correct else 0)
            total = current.total_reviews + 1
            accuracy = correct / total

            interval = self.calculate_next_interval(current.mastery_level, was_correct, accuracy)
            level = self.calculate_mastery_level(correct, total, current.mastery_level)

            previous_level.append(current.mastery_level)
            return WordPerformanceRecord(
                user_id=user_id,
                word=word,
                language=language,
                total_reviews=total,
                correct_reviews=correct,
                mastery_level=level,
                last_reviewed_at=now,
                next_review_date=now + timedelta(days=interval),
                created_at=current.created_at or now,
            )

        record = self.ledger.update(user_id, word, language, apply_answer)
        if record.mastery_level > previous_level[-1]:
            monitoring.mastery_transitions.labels(direction="promote").inc()
        elif record.mastery_level < previous_level[-1]:
            monitoring.mastery_transitions.labels(direction="demote").inc()
        monitoring.answers_recorded.labels(correct=str(was_correct).lower()).inc()
        logger.info(
            f"Updated word performance: {word} ({language}) - correct: {was_correct}, "
            f"mastery: {record.mastery_level}, next review: {record.next_review_date.date().isoformat()}"
        )
        return record

    def get_words_for_review(self, user_id: str, language: str, limit: int = 10) -> List[str]:
        """Words due today or earlier, most overdue first."""
        cutoff = end_of_day(self.clock())
        return [record.word for record in self.ledger.get_due(user_id, language, cutoff, limit)]

    def get_struggling_words(self, user_id: str, language: str, limit: int = 5) -> List[str]:
        """Words with enough reviews and low accuracy, fewest correct answers first."""
        return [record.word for record in self.ledger.get_struggling(user_id, language, limit)]

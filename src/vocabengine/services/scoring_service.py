"""Multi-factor scoring of candidate words."""
import logging
import math
import random
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from vocabengine import monitoring
from vocabengine.config import ScoringConfig
from vocabengine.models.base import utcnow
from vocabengine.models.selection_models import WordCandidate, WordPerformanceRecord
from vocabengine.services.cooldown_service import CooldownTracker
from vocabengine.services.ledger_service import PerformanceLedger
from vocabengine.services.scheduler_service import end_of_day

logger = logging.getLogger(__name__)

NEVER_USED_DAYS = 999


def calculate_novelty_score(usage_frequency: int, days_since_review: Optional[float]) -> float:
    """Higher for words used rarely and not reviewed within the last week."""
    usage_score = max(0.0, 1 - usage_frequency / 5)
    recency_score = 1.0 if days_since_review is None else min(1.0, days_since_review / 7)
    return usage_score * 0.6 + recency_score * 0.4


def calculate_difficulty_score(word: str, record: Optional[WordPerformanceRecord]) -> float:
    """Longer and less mastered words are harder."""
    length_score = min(1.0, len(word) / 10)
    mastery = record.mastery_score / 100 if record is not None else 0.5
    return length_score * 0.3 + (1 - mastery) * 0.7


def calculate_review_urgency(
    is_struggling: bool, is_review: bool, is_new: bool, days_since_review: Optional[float]
) -> float:
    if is_struggling:
        return 1.0
    if is_review:
        return 0.8
    if is_new:
        return 0.3
    return min(1.0, (days_since_review or 0.0) / 7)  # Max urgency after 1 week


class WordScorer:
    """Ranks candidate words for a learner."""

    def __init__(
        self,
        ledger: PerformanceLedger,
        cooldown: CooldownTracker,
        config: Optional[ScoringConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the scorer.

        Args:
            ledger: Source of per-word performance.
            cooldown: Source of recent usage counts.
            config: Score weights; ``jitter=0`` makes scores deterministic.
            rng: Random source for tie-breaking jitter.
            clock: Current time provider.
        """
        self.ledger = ledger
        self.cooldown = cooldown
        self.config = config or ScoringConfig()
        self.rng = rng or random.Random()
        self.clock = clock

    def _lookup(self, user_id: str, word: str, language: str) -> Optional[WordPerformanceRecord]:
        try:
            return self.ledger.get(user_id, word, language)
        except Exception as e:
            monitoring.scoring_degraded.inc()
            logger.warning(f"Performance lookup failed for {word!r} ({language}), scoring as new: {e}")
            return None

    def score(self, candidates: Iterable[str], user_id: str, language: str, session_id: str) -> List[WordCandidate]:
        """Score candidates, best first. Ties are broken by word."""
        now = self.clock()
        due_cutoff = end_of_day(now)
        usage_stats: Dict[str, int] = self.cooldown.get_word_usage_stats(
            session_id, self.config.usage_lookback_hours
        )

        scored = []
        seen = set()
        for word in candidates:
            if word in seen:
                continue
            seen.add(word)
            record = self._lookup(user_id, word, language)
            scored.append(self._score_word(word, record, usage_stats.get(word.lower(), 0), now, due_cutoff))

        scored.sort(key=lambda c: (-c.score, c.word))
        return scored

    def _score_word(
        self,
        word: str,
        record: Optional[WordPerformanceRecord],
        usage_frequency: int,
        now: datetime,
        due_cutoff: datetime,
    ) -> WordCandidate:
        config = self.config
        is_new = record is None or record.is_new
        is_struggling = not is_new and self.ledger.is_struggling(record)
        is_review = not is_new and record.is_due(due_cutoff)
        days_since_review = record.days_since_review(now) if record is not None else None

        novelty_score = calculate_novelty_score(usage_frequency, days_since_review)
        difficulty_score = calculate_difficulty_score(word, record)
        review_urgency = calculate_review_urgency(is_struggling, is_review, is_new, days_since_review)

        score = config.base_score
        reasons: List[str] = []

        if is_struggling:
            score += config.struggling_bonus
            reasons.append("Needs reinforcement")

        if is_review and not is_struggling:
            score += config.review_bonus
            reasons.append("Due for review")

        if is_new:
            score += config.new_bonus
            reasons.append("New vocabulary")

        score += novelty_score * config.novelty_weight
        if novelty_score > config.high_novelty_reason_threshold:
            reasons.append("High novelty")

        # Penalize overused words heavily
        if usage_frequency > config.overuse_threshold:
            score -= usage_frequency * config.overuse_penalty
            reasons.append(f"Used {usage_frequency} times recently")

        if config.jitter > 0:
            score += self.rng.uniform(-config.jitter, config.jitter)

        return WordCandidate(
            word=word,
            score=max(0.0, score),
            novelty_score=novelty_score,
            difficulty_score=difficulty_score,
            review_urgency=review_urgency,
            usage_frequency=usage_frequency,
            last_used_days=math.floor(days_since_review) if days_since_review is not None else NEVER_USED_DAYS,
            mastery_level=record.mastery_level if record is not None else 0,
            is_review=is_review,
            is_struggling=is_struggling,
            is_new=is_new,
            reasons=reasons,
        )

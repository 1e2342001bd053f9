"""Adaptive introduction of unseen vocabulary."""
import logging
import random
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from vocabengine import monitoring
from vocabengine.config import NoveltyConfig
from vocabengine.models.base import utcnow
from vocabengine.models.selection_models import (
    InjectionDecision,
    NoveltyCandidate,
    SessionSummary,
    UserNoveltyProfile,
    WordPerformanceRecord,
)
from vocabengine.services.ledger_service import PerformanceLedger
from vocabengine.services.stores import CandidateProvider, SessionHistory

logger = logging.getLogger(__name__)

LEVEL_SCORES = {"beginner": 0.3, "intermediate": 0.6, "advanced": 0.9}
DIFFICULT_CLUSTERS = ("sch", "tsch", "pf", "kn", "gn", "th", "ch", "ght")
ABSTRACT_SUFFIXES = ("ung", "heit", "keit", "schaft", "tion", "sion", "idad", "ité")
CONSONANT_CLUSTER = re.compile(r"[bcdfghjklmnpqrstvwxyz]{3,}", re.IGNORECASE)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def word_complexity(word: str) -> float:
    """Rough orthographic complexity in [0, 1]."""
    complexity = min(0.3, len(word) / 15)
    complexity += min(0.3, len(set(word.lower())) / 10)
    if "-" in word or "'" in word:
        complexity += 0.2
    complexity += min(0.2, len(CONSONANT_CLUSTER.findall(word)) * 0.1)
    return _clamp(complexity)


def estimate_word_frequency(word: str) -> float:
    """Short words tend to be frequent, long ones rare."""
    if len(word) <= 3:
        return 0.9
    if len(word) >= 10:
        return 0.2
    return _clamp(1 - len(word) / 15, 0.1, 0.9)


def phonetics_complexity(word: str) -> float:
    complexity = 0.3
    lowered = word.lower()
    for cluster in DIFFICULT_CLUSTERS:
        if cluster in lowered:
            complexity += 0.2
    return _clamp(complexity)


def semantic_richness(word: str) -> float:
    richness = 0.5
    if len(word) > 8:
        richness += 0.2
    if len(word) > 12:
        richness += 0.1
    if word.lower().endswith(ABSTRACT_SUFFIXES):
        richness += 0.3
    return _clamp(richness)


class ContextMatcher(ABC):
    """Strategy for how well a word fits the exercise context, in [0, 1]."""

    @abstractmethod
    def fit(self, word: str, context_hints: Sequence[str]) -> float:
        """Return the context fit of ``word``."""


class SubstringContextMatcher(ContextMatcher):
    """Case-insensitive substring match in either direction."""

    def __init__(self, match: float = 0.8, miss: float = 0.3, neutral: float = 0.5):
        self.match = match
        self.miss = miss
        self.neutral = neutral

    def fit(self, word: str, context_hints: Sequence[str]) -> float:
        hints = [hint.lower() for hint in context_hints if hint]
        if not hints:
            return self.neutral
        lowered = word.lower()
        if any(lowered in hint or hint in lowered for hint in hints):
            return self.match
        return self.miss


class NoveltyPolicy:
    """Decides when to introduce unseen words and which ones."""

    def __init__(
        self,
        ledger: PerformanceLedger,
        sessions: SessionHistory,
        provider: CandidateProvider,
        config: Optional[NoveltyConfig] = None,
        context_matcher: Optional[ContextMatcher] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the policy.

        Args:
            ledger: Performance records, used for the novelty budget and to skip known words.
            sessions: Recent session results the profile is derived from.
            provider: Pool of words eligible for introduction.
            config: Novelty thresholds and weights.
            context_matcher: Context fit strategy, substring matching by default.
            rng: Random source for the injection draw.
            clock: Current time provider.
        """
        self.ledger = ledger
        self.sessions = sessions
        self.provider = provider
        self.config = config or NoveltyConfig()
        self.context_matcher = context_matcher or SubstringContextMatcher()
        self.rng = rng or random.Random()
        self.clock = clock

    # Profile

    def default_profile(self, user_id: str, language: str) -> UserNoveltyProfile:
        return UserNoveltyProfile(
            user_id=user_id,
            language=language,
            average_accuracy=0.7,
            novelty_sensitivity=0.7,
            preferred_complexity=0.5,
            recent_novelty_count=0,
            adaptation_rate=0.7,
        )

    def build_profile(self, user_id: str, language: str) -> UserNoveltyProfile:
        """Derive the learner's novelty profile from recent sessions and records."""
        try:
            sessions = self.sessions.recent_sessions(user_id, language, self.config.session_lookback)
            since = self.clock() - timedelta(hours=self.config.novelty_window_hours)
            introduced = self.ledger.created_since(user_id, language, since)
        except Exception as e:
            logger.error(f"Error building novelty profile for user {user_id} ({language}): {e}")
            return self.default_profile(user_id, language)

        total = sum(s.total_exercises for s in sessions)
        correct = sum(s.correct_exercises for s in sessions)
        average_accuracy = correct / total if total > 0 else 0.5

        created = [record.created_at for record in introduced if record.created_at is not None]
        return UserNoveltyProfile(
            user_id=user_id,
            language=language,
            average_accuracy=average_accuracy,
            novelty_sensitivity=self.calculate_novelty_sensitivity(sessions),
            preferred_complexity=self.estimate_preferred_complexity(average_accuracy),
            recent_novelty_count=len(introduced),
            adaptation_rate=self.calculate_adaptation_rate(sessions),
            last_novelty_introduced=max(created) if created else None,
        )

    @staticmethod
    def calculate_novelty_sensitivity(sessions: Sequence[SessionSummary]) -> float:
        """How well the learner keeps accuracy up; sessions are newest first."""
        if not sessions:
            return 0.7
        recent = sessions[:3]
        recent_accuracy = sum(s.accuracy for s in recent) / len(recent)
        return _clamp(recent_accuracy + 0.2, 0.3, 1.0)

    @staticmethod
    def estimate_preferred_complexity(average_accuracy: float) -> float:
        if average_accuracy > 0.85:
            return 0.7
        if average_accuracy > 0.7:
            return 0.6
        if average_accuracy < 0.5:
            return 0.3
        return 0.5

    @staticmethod
    def calculate_adaptation_rate(sessions: Sequence[SessionSummary]) -> float:
        """Accuracy trend over the five most recent sessions (newest first)."""
        if len(sessions) < 3:
            return 0.7
        accuracies = [s.accuracy for s in sessions[:5]]
        trend = sum(accuracies[i - 1] - accuracies[i] for i in range(1, len(accuracies)))
        trend /= len(accuracies) - 1
        return _clamp(0.7 + trend, 0.3, 1.0)

    # Gates

    def check_gates(self, profile: UserNoveltyProfile, config: Optional[NoveltyConfig] = None) -> Optional[InjectionDecision]:
        """Refusal if a hard gate fails, otherwise None."""
        config = config or self.config
        if profile.average_accuracy < config.adaptive_threshold:
            return InjectionDecision(
                decision=False,
                reason=(
                    f"Accuracy gate: user accuracy ({profile.average_accuracy * 100:.1f}%) "
                    f"below threshold ({config.adaptive_threshold * 100:.1f}%)"
                ),
                confidence=0.9,
            )
        if profile.recent_novelty_count >= config.max_novelty_per_session:
            return InjectionDecision(
                decision=False,
                reason=(
                    f"Novelty budget gate: budget exhausted "
                    f"({profile.recent_novelty_count}/{config.max_novelty_per_session})"
                ),
                confidence=1.0,
            )
        return None

    def injection_probability(self, profile: UserNoveltyProfile, session_progress: float) -> float:
        progress = _clamp(session_progress)
        return (
            self.config.target_novelty_ratio
            * profile.novelty_sensitivity
            * (0.5 + 0.5 * progress)
            * profile.adaptation_rate
        )

    def should_inject_novelty(self, profile: UserNoveltyProfile, session_progress: float) -> InjectionDecision:
        """Decide whether the next exercise should introduce an unseen word.

        The hard gates are deterministic; past them the outcome is a single
        random draw against the injection probability.
        """
        refusal = self.check_gates(profile)
        if refusal is not None:
            monitoring.novelty_decisions.labels(decision="gated").inc()
            logger.info(f"Novelty refused for user {profile.user_id}: {refusal.reason}")
            return refusal

        probability = self.injection_probability(profile, session_progress)
        draw = self.rng.random()
        inject = draw < probability
        verb = "triggered" if inject else "skipped"
        monitoring.novelty_decisions.labels(decision="inject" if inject else "skip").inc()
        return InjectionDecision(
            decision=inject,
            reason=f"Novelty injection {verb} ({probability * 100:.1f}% probability)",
            confidence=abs(probability - draw) * 2,
            probability=probability,
        )

    # Candidate selection

    def calculate_novelty_score(self, word: str, profile: UserNoveltyProfile) -> float:
        score = 0.8
        if len(word) > 8:
            score += 0.1
        if "-" in word:
            score += 0.1
        complexity_gap = abs(word_complexity(word) - profile.preferred_complexity)
        score *= 1 - complexity_gap * 0.3
        return _clamp(score)

    def calculate_difficulty_rating(self, word: str, difficulty: str) -> float:
        base = LEVEL_SCORES.get(difficulty, 0.5)
        length_factor = min(1.0, len(word) / 12)
        return _clamp(base + length_factor * 0.2 + word_complexity(word) * 0.1)

    def calculate_learning_value(
        self,
        novelty_score: float,
        difficulty_rating: float,
        context_fit: float,
        profile: UserNoveltyProfile,
    ) -> float:
        value = (
            novelty_score * 0.4
            + difficulty_rating * 0.3
            + context_fit * self.config.context_relevance_weight
            + profile.adaptation_rate * 0.1
        )
        if abs(difficulty_rating - profile.preferred_complexity) < 0.2:
            value += 0.1
        return _clamp(value)

    def _is_known(self, profile: UserNoveltyProfile, word: str) -> bool:
        try:
            return self.ledger.get(profile.user_id, word, profile.language) is not None
        except Exception as e:
            logger.warning(f"Could not check whether {word!r} is known, treating as unseen: {e}")
            return False

    def select_novelty_words(
        self,
        profile: UserNoveltyProfile,
        difficulty: str,
        context_hints: Sequence[str] = (),
        avoid_words: Iterable[str] = (),
        target_count: int = 2,
    ) -> List[NoveltyCandidate]:
        """Best unseen words to introduce, at most the remaining novelty budget."""
        refusal = self.check_gates(profile)
        if refusal is not None:
            logger.info(f"Skipping novelty words for user {profile.user_id}: {refusal.reason}")
            return []

        budget = self.config.max_novelty_per_session - profile.recent_novelty_count
        count = min(target_count, budget)
        if count <= 0:
            return []

        try:
            avoid = {word.lower() for word in avoid_words}
            pool = [
                word for word in self.provider.words_for(profile.language, difficulty)
                if word.lower() not in avoid and not self._is_known(profile, word)
            ]
            scored = [self._score_candidate(word, profile, difficulty, context_hints) for word in pool]
        except Exception as e:
            logger.error(f"Error selecting novelty words for user {profile.user_id}: {e}")
            return []

        scored.sort(key=lambda c: (-c.learning_value, c.word))
        selected = scored[:count]
        logger.info(f"Selected {len(selected)} novelty candidates from {len(pool)} options")
        return selected

    def _score_candidate(
        self,
        word: str,
        profile: UserNoveltyProfile,
        difficulty: str,
        context_hints: Sequence[str],
    ) -> NoveltyCandidate:
        novelty_score = self.calculate_novelty_score(word, profile)
        difficulty_rating = self.calculate_difficulty_rating(word, difficulty)
        context_fit = _clamp(self.context_matcher.fit(word, context_hints))
        return NoveltyCandidate(
            word=word,
            novelty_score=novelty_score,
            difficulty_rating=difficulty_rating,
            context_fit=context_fit,
            learning_value=self.calculate_learning_value(novelty_score, difficulty_rating, context_fit, profile),
            frequency=estimate_word_frequency(word),
            phonetics_complexity=phonetics_complexity(word),
            semantic_richness=semantic_richness(word),
        )

    def track_novelty_introduction(
        self, user_id: str, language: str, word: str, session_id: str
    ) -> WordPerformanceRecord:
        """Start a level-1 record so the word is known but unreviewed from now on."""
        now = self.clock()

        def introduce() -> WordPerformanceRecord:
            return WordPerformanceRecord(
                user_id=user_id,
                word=word,
                language=language,
                total_reviews=0,
                correct_reviews=0,
                mastery_level=1,
                last_reviewed_at=now,
                next_review_date=now + timedelta(days=self.ledger.config.initial_interval),
                created_at=now,
            )

        record = self.ledger.ensure(user_id, word, language, introduce)
        monitoring.novelty_introductions.inc()
        logger.info(f"Tracked novelty introduction: {word} ({language}) in session {session_id}")
        return record

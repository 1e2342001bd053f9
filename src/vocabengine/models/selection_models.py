"""Value objects passed between the scheduling and selection services."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

STRUGGLING_THRESHOLD = 0.6
MIN_REVIEWS_FOR_STRUGGLING = 3


@dataclass
class WordPerformanceRecord:
    """A learner's history with one word in one language."""
    user_id: str
    word: str
    language: str
    total_reviews: int = 0
    correct_reviews: int = 0
    mastery_level: int = 1  # 1-10
    last_reviewed_at: Optional[datetime] = None
    next_review_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.word, self.language)

    @property
    def accuracy(self) -> float:
        if self.total_reviews == 0:
            return 0.0
        return self.correct_reviews / self.total_reviews

    @property
    def mastery_score(self) -> float:
        """Blend of accuracy, experience and level, in [0, 100]."""
        if self.total_reviews == 0:
            return 0.0
        experience_bonus = min(self.total_reviews / 20, 1)
        mastery_bonus = self.mastery_level / 10
        return min((self.accuracy * 0.6 + experience_bonus * 0.2 + mastery_bonus * 0.2) * 100, 100)

    @property
    def is_new(self) -> bool:
        return self.total_reviews == 0

    @property
    def is_struggling(self) -> bool:
        return self.is_struggling_at(STRUGGLING_THRESHOLD)

    def is_struggling_at(self, threshold: float, min_reviews: int = MIN_REVIEWS_FOR_STRUGGLING) -> bool:
        return self.total_reviews >= min_reviews and self.accuracy < threshold

    def is_due(self, cutoff: datetime) -> bool:
        """Whether the word is due for review at ``cutoff``."""
        return self.next_review_date is not None and self.next_review_date <= cutoff

    def days_since_review(self, now: datetime) -> Optional[float]:
        if self.last_reviewed_at is None:
            return None
        return max(0.0, (now - self.last_reviewed_at).total_seconds() / 86400)


@dataclass
class ExerciseRecord:
    """Words shown in one exercise, as read from the exercise log."""
    target_words: List[str]
    created_at: datetime


@dataclass
class SessionSummary:
    """Aggregate results of a past practice session."""
    total_exercises: int
    correct_exercises: int
    created_at: Optional[datetime] = None

    @property
    def accuracy(self) -> float:
        if self.total_exercises <= 0:
            return 0.0
        return self.correct_exercises / self.total_exercises


@dataclass
class CooldownEntry:
    """Result of tracking a word presentation."""
    word: str
    usage_count: int
    cooldown_hours: float
    cooldown_until: datetime


@dataclass
class WordCandidate:
    """A scored candidate word for one selection request."""
    word: str
    score: float
    novelty_score: float
    difficulty_score: float
    review_urgency: float
    usage_frequency: int
    last_used_days: int
    mastery_level: int
    is_review: bool = False
    is_struggling: bool = False
    is_new: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class UserNoveltyProfile:
    """How ready a learner is for unseen vocabulary, rebuilt on every request."""
    user_id: str
    language: str
    average_accuracy: float
    novelty_sensitivity: float
    preferred_complexity: float
    recent_novelty_count: int
    adaptation_rate: float
    last_novelty_introduced: Optional[datetime] = None


@dataclass
class NoveltyCandidate:
    """An unseen word scored for introduction."""
    word: str
    novelty_score: float
    difficulty_rating: float
    context_fit: float
    learning_value: float
    frequency: float
    phonetics_complexity: float
    semantic_richness: float


@dataclass(frozen=True)
class InjectionDecision:
    """Outcome of the novelty coin flip."""
    decision: bool
    reason: str
    confidence: float
    probability: float = 0.0

    def __bool__(self) -> bool:
        return self.decision


@dataclass
class SelectionResult:
    """Words chosen for an exercise plus selection diagnostics."""
    selected_words: List[str]
    candidates: List[WordCandidate]
    selection_quality: float
    diversity_score: float
    fallback_used: bool = False

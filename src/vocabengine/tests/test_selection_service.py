"""Tests for the selection orchestrator."""
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from vocabengine.config import ScoringConfig, SelectionConfig
from vocabengine.models.selection_models import WordCandidate, WordPerformanceRecord
from vocabengine.services.cooldown_service import CooldownTracker
from vocabengine.services.ledger_service import PerformanceLedger
from vocabengine.services.novelty_service import NoveltyPolicy
from vocabengine.services.scoring_service import WordScorer
from vocabengine.services.selection_service import (
    FALLBACK_DIVERSITY,
    FALLBACK_QUALITY,
    SelectionOrchestrator,
)
from vocabengine.services.stores import (
    SqlExerciseHistory,
    SqlPerformanceStore,
    SqlSessionHistory,
    StaticCandidateProvider,
)

USER = "user-1"
LANG = "german"
SESSION = "session-1"


@pytest.fixture
def scorer(ledger: PerformanceLedger, cooldown: CooldownTracker, clock) -> WordScorer:
    """Create a scorer without jitter so selections are reproducible."""
    return WordScorer(ledger, cooldown, ScoringConfig(jitter=0), clock=clock)


@pytest.fixture
def orchestrator(provider: StaticCandidateProvider, scorer: WordScorer) -> SelectionOrchestrator:
    return SelectionOrchestrator(provider, scorer)


def seed_struggling(store: SqlPerformanceStore, now: datetime, word: str = "Katze") -> None:
    store.upsert(
        WordPerformanceRecord(
            USER, word, LANG,
            total_reviews=5, correct_reviews=1, mastery_level=1,
            last_reviewed_at=now - timedelta(days=7),
            next_review_date=now - timedelta(days=1),
        )
    )


def seed_review(store: SqlPerformanceStore, now: datetime, word: str = "Hund") -> None:
    store.upsert(
        WordPerformanceRecord(
            USER, word, LANG,
            total_reviews=4, correct_reviews=4, mastery_level=2,
            last_reviewed_at=now - timedelta(days=3, hours=12),
            next_review_date=now - timedelta(days=1),
        )
    )


def seed_rested(store: SqlPerformanceStore, now: datetime, word: str = "Hund") -> None:
    """A mastered word not due and not seen for a while."""
    store.upsert(
        WordPerformanceRecord(
            USER, word, LANG,
            total_reviews=5, correct_reviews=5, mastery_level=3,
            last_reviewed_at=now - timedelta(days=10),
            next_review_date=now + timedelta(days=20),
            created_at=now - timedelta(days=30),
        )
    )


def make_candidate(word: str, score: float, **flags) -> WordCandidate:
    values = dict(
        word=word,
        score=score,
        novelty_score=flags.pop("novelty_score", 1.0),
        difficulty_score=0.5,
        review_urgency=0.3,
        usage_frequency=flags.pop("usage_frequency", 0),
        last_used_days=flags.pop("last_used_days", 999),
        mastery_level=0,
    )
    values.update(flags)
    return WordCandidate(**values)


def test_small_pool_returns_every_word_once(orchestrator: SelectionOrchestrator) -> None:
    """Test that a pool smaller than the target is returned in full."""
    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=10)

    assert sorted(result.selected_words) == ["Auto", "Haus", "Hund", "Katze", "Kind"]
    assert len(set(result.selected_words)) == len(result.selected_words)
    assert result.fallback_used is False
    assert result.selection_quality == pytest.approx(90)
    assert result.diversity_score == pytest.approx(100)


def test_unseen_word_selected_as_new(scorer: WordScorer) -> None:
    """Test that a never-seen word lands in the new bucket."""
    provider = StaticCandidateProvider({"beginner": {"german": ["Haus"]}})
    orchestrator = SelectionOrchestrator(provider, scorer)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=1)

    assert result.selected_words == ["Haus"]
    [candidate] = result.candidates
    assert candidate.is_new is True
    assert "New vocabulary" in candidate.reasons


def test_never_exceeds_target(orchestrator: SelectionOrchestrator) -> None:
    """Test the size and uniqueness of results for every target."""
    for target in range(1, 9):
        result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=target)
        assert len(result.selected_words) == min(target, 5)
        assert len(set(result.selected_words)) == len(result.selected_words)


def test_struggling_words_come_first(
    orchestrator: SelectionOrchestrator, performance_store: SqlPerformanceStore, now: datetime
) -> None:
    """Test that the struggling quota is filled before anything else."""
    seed_struggling(performance_store, now)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=1)

    assert result.selected_words == ["Katze"]
    assert result.candidates[0].is_struggling is True


def test_review_quota_before_new_words(
    orchestrator: SelectionOrchestrator, performance_store: SqlPerformanceStore, now: datetime
) -> None:
    """Test that due words take their share ahead of new ones."""
    seed_review(performance_store, now)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=2)

    assert result.selected_words == ["Hund", "Auto"]
    assert result.candidates[0].is_review is True


def test_struggling_word_survives_filters(
    orchestrator: SelectionOrchestrator,
    performance_store: SqlPerformanceStore,
    exercise_history: SqlExerciseHistory,
    now: datetime,
) -> None:
    """Test that heavy recent use does not filter out a struggling word."""
    seed_struggling(performance_store, now)
    for hours_ago in range(5):
        exercise_history.add(SESSION, ["Katze"], created_at=now - timedelta(hours=hours_ago))

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=1)

    assert result.selected_words == ["Katze"]
    assert result.candidates[0].usage_frequency == 5


def test_overused_word_filtered(
    orchestrator: SelectionOrchestrator, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that a word shown too often this week is skipped."""
    for days_ago in range(4):
        exercise_history.add(SESSION, ["Kind"], created_at=now - timedelta(days=days_ago))

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=10)

    assert "Kind" not in result.selected_words
    assert len(result.selected_words) == 4


def test_just_reviewed_word_filtered(
    orchestrator: SelectionOrchestrator, performance_store: SqlPerformanceStore, now: datetime
) -> None:
    """Test that a word reviewed within the last day is skipped."""
    performance_store.upsert(
        WordPerformanceRecord(
            USER, "Auto", LANG,
            total_reviews=3, correct_reviews=3, mastery_level=2,
            last_reviewed_at=now - timedelta(hours=12),
            next_review_date=now + timedelta(days=5),
        )
    )

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=10)

    assert "Auto" not in result.selected_words


def test_novelty_bucket_gated_by_readiness(
    provider: StaticCandidateProvider,
    scorer: WordScorer,
    ledger: PerformanceLedger,
    session_history: SqlSessionHistory,
    performance_store: SqlPerformanceStore,
    clock,
    now: datetime,
) -> None:
    """Test that the high-novelty quota only applies to learners who are ready."""
    seed_rested(performance_store, now)
    policy = NoveltyPolicy(ledger, session_history, provider, clock=clock)
    orchestrator = SelectionOrchestrator(provider, scorer, novelty_policy=policy)

    # No session history: accuracy defaults to 0.5, below the gate
    gated = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=3)
    assert gated.selected_words == ["Auto", "Haus", "Katze"]

    session_history.add(USER, LANG, 10, 9, created_at=now - timedelta(hours=1))
    ready = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=3)
    assert ready.selected_words == ["Auto", "Hund", "Haus"]


def test_novelty_bucket_without_policy(
    orchestrator: SelectionOrchestrator, performance_store: SqlPerformanceStore, now: datetime
) -> None:
    """Test that the novelty quota is filled when no policy is wired."""
    seed_rested(performance_store, now)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=3)

    assert result.selected_words == ["Auto", "Hund", "Haus"]


def test_per_call_config(orchestrator: SelectionOrchestrator, performance_store: SqlPerformanceStore, now: datetime) -> None:
    """Test that a per-call config replaces the defaults."""
    seed_review(performance_store, now)
    config = SelectionConfig(review_word_ratio=0.0, new_word_ratio=1.0, struggling_word_ratio=0.0, novelty_word_ratio=0.0)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=2, config=config)

    assert result.selected_words == ["Auto", "Haus"]


def test_scoring_failure_uses_fallback(provider: StaticCandidateProvider) -> None:
    """Test that an internal error degrades to the head of the pool."""
    scorer = Mock()
    scorer.score.side_effect = RuntimeError("database is locked")
    orchestrator = SelectionOrchestrator(provider, scorer)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=2)

    assert result.selected_words == ["Haus", "Auto"]
    assert result.candidates == []
    assert result.selection_quality == FALLBACK_QUALITY
    assert result.diversity_score == FALLBACK_DIVERSITY
    assert result.fallback_used is True


def test_provider_failure_returns_empty(scorer: WordScorer) -> None:
    """Test that an unavailable pool yields an empty fallback result."""
    provider = Mock()
    provider.words_for.side_effect = OSError("pool file missing")
    orchestrator = SelectionOrchestrator(provider, scorer)

    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=3)

    assert result.selected_words == []
    assert result.fallback_used is True


def test_empty_pool(orchestrator: SelectionOrchestrator) -> None:
    """Test selection for a tier without words."""
    result = orchestrator.select_optimal_words(USER, LANG, "advanced", SESSION, target_count=3)

    assert result.selected_words == []
    assert result.selection_quality == 0
    assert result.diversity_score == 0
    assert result.fallback_used is False


def test_non_positive_target(orchestrator: SelectionOrchestrator) -> None:
    result = orchestrator.select_optimal_words(USER, LANG, "beginner", SESSION, target_count=0)
    assert result.selected_words == []


def test_language_fallback(orchestrator: SelectionOrchestrator) -> None:
    """Test that a language without pools uses the fallback language."""
    result = orchestrator.select_optimal_words(USER, "french", "beginner", SESSION, target_count=2)
    assert len(result.selected_words) == 2


def test_partition_is_exclusive() -> None:
    """Test that each candidate lands in exactly one bucket."""
    candidates = [
        make_candidate("a", 110, is_struggling=True, is_review=True),
        make_candidate("b", 96, is_review=True),
        make_candidate("c", 90, is_new=True),
        make_candidate("d", 70, novelty_score=0.9),
        make_candidate("e", 60, novelty_score=0.7),
    ]

    buckets = SelectionOrchestrator.partition(candidates, SelectionConfig())

    assert [c.word for c in buckets["struggling"]] == ["a"]
    assert [c.word for c in buckets["review"]] == ["b"]
    assert [c.word for c in buckets["new"]] == ["c"]
    assert [c.word for c in buckets["novelty"]] == ["d"]


def test_select_optimal_mix_backfills_by_score(orchestrator: SelectionOrchestrator) -> None:
    """Test that empty buckets leave slots for the best remaining words."""
    candidates = [
        make_candidate("b", 80, novelty_score=0.5),
        make_candidate("c", 60, novelty_score=0.5),
        make_candidate("a", 40, novelty_score=0.5, is_new=True),
    ]

    result = orchestrator.select_optimal_mix(candidates, 2, SelectionConfig())

    assert result.selected_words == ["a", "b"]
    assert result.selection_quality == pytest.approx(60)
    assert result.diversity_score == pytest.approx(50)


def test_quality_is_capped(orchestrator: SelectionOrchestrator) -> None:
    result = orchestrator.select_optimal_mix([make_candidate("a", 140, is_struggling=True)], 1, SelectionConfig())
    assert result.selection_quality == 100


if __name__ == "__main__":
    pytest.main([__file__])

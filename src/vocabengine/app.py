"""Engine assembly for host applications."""
import logging
import random
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from vocabengine import monitoring
from vocabengine.config import (
    CooldownConfig,
    NoveltyConfig,
    ScoringConfig,
    SelectionConfig,
    Settings,
    SpacedRepetitionConfig,
    settings as default_settings,
)
from vocabengine.models.base import SessionLocal, init_db
from vocabengine.models.selection_models import (
    CooldownEntry,
    InjectionDecision,
    NoveltyCandidate,
    SelectionResult,
    UserNoveltyProfile,
    WordPerformanceRecord,
)
from vocabengine.services.cooldown_service import CooldownTracker
from vocabengine.services.ledger_service import PerformanceLedger
from vocabengine.services.novelty_service import ContextMatcher, NoveltyPolicy
from vocabengine.services.scheduler_service import SpacedRepetitionScheduler
from vocabengine.services.scoring_service import WordScorer
from vocabengine.services.selection_service import SelectionOrchestrator
from vocabengine.services.stores import (
    CandidateProvider,
    ExerciseHistory,
    PerformanceStore,
    SessionHistory,
    SqlExerciseHistory,
    SqlPerformanceStore,
    SqlSessionHistory,
)


class VocabEngine:
    """Wires the scheduling and selection services together.

    Stores default to the bundled SQLAlchemy implementations; hosts can pass
    their own implementations of the store interfaces instead.
    """

    def __init__(
        self,
        provider: CandidateProvider,
        novelty_provider: Optional[CandidateProvider] = None,
        session_factory: sessionmaker = SessionLocal,
        performance_store: Optional[PerformanceStore] = None,
        exercise_history: Optional[ExerciseHistory] = None,
        session_history: Optional[SessionHistory] = None,
        scheduling_config: Optional[SpacedRepetitionConfig] = None,
        cooldown_config: Optional[CooldownConfig] = None,
        scoring_config: Optional[ScoringConfig] = None,
        novelty_config: Optional[NoveltyConfig] = None,
        selection_config: Optional[SelectionConfig] = None,
        context_matcher: Optional[ContextMatcher] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the engine."""
        self.logger = logging.getLogger(__name__)
        rng = rng or random.Random()

        self.ledger = PerformanceLedger(
            performance_store or SqlPerformanceStore(session_factory), scheduling_config
        )
        self.scheduler = SpacedRepetitionScheduler(self.ledger)
        self.cooldown = CooldownTracker(exercise_history or SqlExerciseHistory(session_factory), cooldown_config)
        self.scorer = WordScorer(self.ledger, self.cooldown, scoring_config, rng=rng)
        self.novelty = NoveltyPolicy(
            self.ledger,
            session_history or SqlSessionHistory(session_factory),
            novelty_provider or provider,
            novelty_config,
            context_matcher=context_matcher,
            rng=rng,
        )
        self.orchestrator = SelectionOrchestrator(provider, self.scorer, self.novelty, selection_config)

    @staticmethod
    def setup(app_settings: Settings = default_settings, bind: Optional[Engine] = None) -> None:
        """Prepare process-wide resources: logging, tables and the metrics exporter.

        Tables are created on ``bind``, or on the default engine from
        ``DATABASE_URL`` when no bind is given. Pass the engine behind a custom
        ``session_factory``.
        """
        from vocabengine.logging_config import setup_logging

        setup_logging(app_settings.logging.level, app_settings.logging.dir)
        init_db(bind)
        logging.getLogger(__name__).info("Database initialized")
        if app_settings.monitoring.enabled:
            monitoring.start_monitoring(app_settings.monitoring.port)
            logging.getLogger(__name__).info(
                f"Metrics exporter listening on port {app_settings.monitoring.port}"
            )

    def select_optimal_words(
        self,
        user_id: str,
        language: str,
        difficulty: str,
        session_id: str,
        target_count: int = 1,
        config: Optional[SelectionConfig] = None,
    ) -> SelectionResult:
        return self.orchestrator.select_optimal_words(
            user_id, language, difficulty, session_id, target_count, config
        )

    def record_answer(self, user_id: str, word: str, language: str, was_correct: bool) -> WordPerformanceRecord:
        return self.scheduler.record_answer(user_id, word, language, was_correct)

    def get_words_for_review(self, user_id: str, language: str, limit: int = 10) -> List[str]:
        return self.scheduler.get_words_for_review(user_id, language, limit)

    def get_struggling_words(self, user_id: str, language: str, limit: int = 5) -> List[str]:
        return self.scheduler.get_struggling_words(user_id, language, limit)

    def track_word_usage(
        self, session_id: str, word: str, user_id: Optional[str] = None, language: Optional[str] = None
    ) -> CooldownEntry:
        return self.cooldown.track_word_usage(session_id, word, user_id=user_id, language=language)

    def build_novelty_profile(self, user_id: str, language: str) -> UserNoveltyProfile:
        return self.novelty.build_profile(user_id, language)

    def should_inject_novelty(self, profile: UserNoveltyProfile, session_progress: float) -> InjectionDecision:
        return self.novelty.should_inject_novelty(profile, session_progress)

    def select_novelty_words(
        self,
        profile: UserNoveltyProfile,
        difficulty: str,
        context_hints: Sequence[str] = (),
        avoid_words: Iterable[str] = (),
        target_count: int = 2,
    ) -> List[NoveltyCandidate]:
        return self.novelty.select_novelty_words(profile, difficulty, context_hints, avoid_words, target_count)

    def track_novelty_introduction(
        self, user_id: str, language: str, word: str, session_id: str
    ) -> WordPerformanceRecord:
        return self.novelty.track_novelty_introduction(user_id, language, word, session_id)

"""Selection of the word mix for a practice exercise."""
import logging
import math
import time
from typing import Dict, List, Optional

from vocabengine import monitoring
from vocabengine.config import SelectionConfig
from vocabengine.models.selection_models import SelectionResult, WordCandidate
from vocabengine.services.novelty_service import NoveltyPolicy
from vocabengine.services.scoring_service import WordScorer
from vocabengine.services.stores import CandidateProvider

logger = logging.getLogger(__name__)

FALLBACK_QUALITY = 50.0
FALLBACK_DIVERSITY = 30.0

# Buckets in priority order
BUCKETS = ("struggling", "review", "new", "novelty")


class SelectionOrchestrator:
    """Public entry point for choosing the words of an exercise."""

    def __init__(
        self,
        provider: CandidateProvider,
        scorer: WordScorer,
        novelty_policy: Optional[NoveltyPolicy] = None,
        config: Optional[SelectionConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            provider: Candidate vocabulary by language and difficulty.
            scorer: Scores candidates for the learner.
            novelty_policy: Optional readiness gate for the high-novelty bucket.
            config: Library defaults, used when a call passes no config.
        """
        self.provider = provider
        self.scorer = scorer
        self.novelty_policy = novelty_policy
        self.config = config or SelectionConfig()

    def select_optimal_words(
        self,
        user_id: str,
        language: str,
        difficulty: str,
        session_id: str,
        target_count: int = 1,
        config: Optional[SelectionConfig] = None,
    ) -> SelectionResult:
        """Choose up to ``target_count`` words. Never raises on store failures."""
        config = config or self.config
        started = time.perf_counter()
        logger.info(f"Selecting {target_count} words for user {user_id} ({language}, {difficulty})")

        if target_count <= 0:
            return SelectionResult([], [], 0.0, 0.0)

        try:
            pool = list(dict.fromkeys(self.provider.words_for(language, difficulty)))
        except Exception as e:
            logger.error(f"Could not load candidate pool for {language} ({difficulty}): {e}")
            monitoring.selections.labels(outcome="fallback").inc()
            return SelectionResult([], [], 0.0, 0.0, fallback_used=True)

        if not pool:
            logger.warning(f"Empty candidate pool for {language} ({difficulty})")
            monitoring.selections.labels(outcome="empty").inc()
            return SelectionResult([], [], 0.0, 0.0)

        try:
            scored = self.scorer.score(pool, user_id, language, session_id)
            filtered = self.apply_filters(scored, config)
            novelty_allowed = self._novelty_allowed(user_id, language, config)
            result = self.select_optimal_mix(filtered, target_count, config, novelty_allowed)
        except Exception as e:
            logger.error(f"Error in word selection for user {user_id}, using fallback: {e}")
            monitoring.selections.labels(outcome="fallback").inc()
            return SelectionResult(
                selected_words=pool[:target_count],
                candidates=[],
                selection_quality=FALLBACK_QUALITY,
                diversity_score=FALLBACK_DIVERSITY,
                fallback_used=True,
            )
        finally:
            monitoring.selection_duration.observe(time.perf_counter() - started)

        monitoring.selections.labels(outcome="ok").inc()
        logger.info(
            f"Selected {len(result.selected_words)} words with quality score: "
            f"{result.selection_quality:.1f}"
        )
        return result

    def apply_filters(self, candidates: List[WordCandidate], config: SelectionConfig) -> List[WordCandidate]:
        """Drop stale, overused and just-seen words; struggling words are always kept."""
        filtered = []
        for candidate in candidates:
            if candidate.is_struggling:
                filtered.append(candidate)
                continue
            if candidate.novelty_score < config.min_novelty_score and not candidate.is_review:
                continue
            if candidate.usage_frequency > config.max_usage_frequency:
                continue
            if candidate.last_used_days < config.recent_use_days:
                continue
            filtered.append(candidate)
        logger.debug(f"Filters kept {len(filtered)} of {len(candidates)} candidates")
        return filtered

    def _novelty_allowed(self, user_id: str, language: str, config: SelectionConfig) -> bool:
        if self.novelty_policy is None:
            return True
        profile = self.novelty_policy.build_profile(user_id, language)
        gates = self.novelty_policy.config.with_overrides(
            adaptive_threshold=config.adaptive_threshold,
            max_novelty_per_session=config.max_novelty_per_session,
        )
        refusal = self.novelty_policy.check_gates(profile, gates)
        if refusal is not None:
            logger.info(f"Novelty bucket disabled for user {user_id}: {refusal.reason}")
            return False
        return True

    @staticmethod
    def partition(candidates: List[WordCandidate], config: SelectionConfig) -> Dict[str, List[WordCandidate]]:
        """Split candidates into mutually exclusive buckets, keeping score order."""
        buckets: Dict[str, List[WordCandidate]] = {name: [] for name in BUCKETS}
        for candidate in candidates:
            if candidate.is_struggling:
                buckets["struggling"].append(candidate)
            elif candidate.is_review:
                buckets["review"].append(candidate)
            elif candidate.is_new:
                buckets["new"].append(candidate)
            elif candidate.novelty_score > config.novelty_bucket_threshold:
                buckets["novelty"].append(candidate)
        return buckets

    def select_optimal_mix(
        self,
        candidates: List[WordCandidate],
        target_count: int,
        config: SelectionConfig,
        novelty_allowed: bool = True,
    ) -> SelectionResult:
        """Fill bucket quotas in priority order, then backfill by score."""
        selected: List[WordCandidate] = []
        chosen = set()

        def take(source: List[WordCandidate], count: int) -> None:
            for candidate in source:
                if count <= 0 or len(selected) >= target_count:
                    break
                if candidate.word not in chosen:
                    chosen.add(candidate.word)
                    selected.append(candidate)
                    count -= 1

        buckets = self.partition(candidates, config)
        for name in BUCKETS:
            if name == "novelty" and not novelty_allowed:
                continue
            quota = math.ceil(target_count * config.ratios[name])
            take(buckets[name], min(quota, target_count - len(selected)))

        # Fill remaining slots with best candidates
        take(candidates, target_count - len(selected))

        if selected:
            quality = min(100.0, sum(c.score for c in selected) / len(selected))
            diversity = min(100.0, sum(c.novelty_score for c in selected) / len(selected) * 100)
        else:
            quality = diversity = 0.0

        return SelectionResult(
            selected_words=[c.word for c in selected],
            candidates=selected,
            selection_quality=quality,
            diversity_score=diversity,
        )

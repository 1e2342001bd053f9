"""Short-term cooldown of recently presented words."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from vocabengine import monitoring
from vocabengine.config import CooldownConfig
from vocabengine.models.base import utcnow
from vocabengine.models.selection_models import CooldownEntry
from vocabengine.services.stores import ExerciseHistory

logger = logging.getLogger(__name__)


class CooldownTracker:
    """Keeps recently shown words out of new exercises."""

    def __init__(
        self,
        history: ExerciseHistory,
        config: Optional[CooldownConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the tracker with the session exercise log."""
        self.history = history
        self.config = config or CooldownConfig()
        self.clock = clock

    def _recent_words(self, session_id: str, lookback_hours: float) -> List[str]:
        since = self.clock() - timedelta(hours=lookback_hours)
        words: List[str] = []
        for exercise in self.history.recent(session_id, since):
            words.extend(word.lower() for word in exercise.target_words if word)
        return words

    def get_recently_used(self, session_id: str, lookback_hours: Optional[float] = None) -> Set[str]:
        """Lowercased words shown in the session within the lookback window."""
        hours = self.config.lookback_hours if lookback_hours is None else lookback_hours
        return set(self._recent_words(session_id, hours))

    def get_available_words(
        self,
        candidates: Iterable[str],
        session_id: str,
        lookback_hours: Optional[float] = None,
        keep: Iterable[str] = (),
    ) -> List[str]:
        """Candidates not shown recently, in input order.

        Words in ``keep`` (struggling words) are never excluded.
        """
        candidates = list(candidates)
        if not candidates:
            return []

        try:
            recently_used = self.get_recently_used(session_id, lookback_hours)
        except Exception as e:
            logger.error(f"Error checking word availability for session {session_id}: {e}")
            return candidates

        always_keep = {word.lower() for word in keep}
        available = [
            word for word in candidates
            if word.lower() not in recently_used or word.lower() in always_keep
        ]
        logger.debug(
            f"Word cooldown check: {len(candidates)} candidates -> {len(available)} available"
        )
        return available

    def get_word_usage_stats(self, session_id: str, lookback_hours: float = 24) -> Dict[str, int]:
        """How often each lowercased word was shown in the session within the window."""
        try:
            return dict(Counter(self._recent_words(session_id, lookback_hours)))
        except Exception as e:
            logger.error(f"Error getting word usage stats for session {session_id}: {e}")
            return {}

    def calculate_cooldown_duration(self, usage_count: int) -> float:
        """Cooldown in hours; grows geometrically once usage passes the threshold."""
        config = self.config
        if usage_count < config.usage_threshold:
            return config.base_cooldown_hours

        multiplied = config.base_cooldown_hours * config.cooldown_multiplier ** (
            usage_count - config.usage_threshold
        )
        return min(multiplied, config.max_cooldown_hours)

    def track_word_usage(
        self,
        session_id: str,
        word: str,
        user_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> CooldownEntry:
        """Record one presentation of ``word`` and return its cooldown.

        Call once per word actually shown to the learner, not per candidate,
        after the host has logged the exercise. The exercise log is only read:
        the usage count is how often the word appears in the session log within
        ``max_cooldown_hours``, at least one.
        """
        now = self.clock()
        logged = self.get_word_usage_stats(session_id, self.config.max_cooldown_hours).get(word.lower(), 0)
        usage_count = max(1, logged)
        cooldown_hours = self.calculate_cooldown_duration(usage_count)

        monitoring.word_usage_tracked.inc()

        entry = CooldownEntry(
            word=word,
            usage_count=usage_count,
            cooldown_hours=cooldown_hours,
            cooldown_until=now + timedelta(hours=cooldown_hours),
        )
        logger.info(
            f"Tracking word usage: {word} ({language}) for user {user_id} - usage count: {usage_count}, "
            f"cooldown until: {entry.cooldown_until.isoformat()}"
        )
        return entry

"""Tests for the cooldown tracker."""
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from vocabengine.config import CooldownConfig
from vocabengine.services.cooldown_service import CooldownTracker
from vocabengine.services.stores import SqlExerciseHistory

SESSION = "session-1"


def test_calculate_cooldown_duration(cooldown: CooldownTracker) -> None:
    """Test base duration, geometric growth and cap."""
    assert cooldown.calculate_cooldown_duration(0) == 2
    assert cooldown.calculate_cooldown_duration(2) == 2
    assert cooldown.calculate_cooldown_duration(3) == 2
    assert cooldown.calculate_cooldown_duration(4) == pytest.approx(3.0)
    assert cooldown.calculate_cooldown_duration(5) == pytest.approx(4.5)
    assert cooldown.calculate_cooldown_duration(20) == 24


def test_get_available_words_excludes_recent(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that words shown within the window are excluded case-insensitively."""
    exercise_history.add(SESSION, ["haus", "Auto"], created_at=now - timedelta(hours=1))
    exercise_history.add(SESSION, ["Hund"], created_at=now - timedelta(hours=8))
    exercise_history.add("other-session", ["Katze"], created_at=now - timedelta(minutes=5))

    available = cooldown.get_available_words(["Haus", "Auto", "Hund", "Katze", "Kind"], SESSION)

    assert available == ["Hund", "Katze", "Kind"]


def test_get_available_words_custom_lookback(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that a longer lookback widens the cooldown."""
    exercise_history.add(SESSION, ["Hund"], created_at=now - timedelta(hours=8))

    assert cooldown.get_available_words(["Hund", "Kind"], SESSION, lookback_hours=12) == ["Kind"]


def test_get_available_words_keeps_struggling(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that struggling words bypass the cooldown."""
    exercise_history.add(SESSION, ["Haus", "Auto"], created_at=now - timedelta(minutes=30))

    available = cooldown.get_available_words(["Haus", "Auto"], SESSION, keep=["haus"])

    assert available == ["Haus"]


def test_get_available_words_empty(cooldown: CooldownTracker) -> None:
    """Test that no candidates yield no words."""
    assert cooldown.get_available_words([], SESSION) == []


def test_get_available_words_history_failure(clock) -> None:
    """Test that a failing history leaves candidates untouched."""
    history = Mock()
    history.recent.side_effect = RuntimeError("store unavailable")
    tracker = CooldownTracker(history, clock=clock)

    assert tracker.get_available_words(["Haus", "Auto"], SESSION) == ["Haus", "Auto"]
    assert tracker.get_word_usage_stats(SESSION) == {}


def test_get_word_usage_stats(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test usage counts within the window."""
    exercise_history.add(SESSION, ["Haus", "Auto"], created_at=now - timedelta(hours=1))
    exercise_history.add(SESSION, ["haus"], created_at=now - timedelta(hours=2))
    exercise_history.add(SESSION, ["Haus"], created_at=now - timedelta(hours=30))

    assert cooldown.get_word_usage_stats(SESSION, lookback_hours=24) == {"haus": 2, "auto": 1}
    assert cooldown.get_word_usage_stats(SESSION, lookback_hours=48) == {"haus": 3, "auto": 1}


def test_track_word_usage(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that repeated presentations logged by the host lengthen the cooldown."""
    entries = []
    for minutes_ago in (30, 20, 10, 0):
        exercise_history.add(SESSION, ["Haus", "Auto"], created_at=now - timedelta(minutes=minutes_ago))
        entries.append(cooldown.track_word_usage(SESSION, "Haus", user_id="u1", language="german"))

    assert [entry.usage_count for entry in entries] == [1, 2, 3, 4]
    assert entries[0].cooldown_hours == 2
    assert entries[3].cooldown_hours == pytest.approx(3.0)
    assert entries[3].cooldown_until == now + timedelta(hours=3)
    assert cooldown.get_available_words(["Haus"], SESSION) == []


def test_track_word_usage_does_not_write_the_log(
    cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime
) -> None:
    """Test that tracking a logged presentation does not count it twice."""
    exercise_history.add(SESSION, ["Haus", "Auto"], created_at=now)

    entry = cooldown.track_word_usage(SESSION, "Haus")

    assert entry.usage_count == 1
    assert cooldown.get_word_usage_stats(SESSION, 24) == {"haus": 1, "auto": 1}
    assert len(exercise_history.recent(SESSION, now - timedelta(hours=1))) == 1


def test_track_word_usage_before_logging(cooldown: CooldownTracker, exercise_history: SqlExerciseHistory, now: datetime) -> None:
    """Test that a presentation not yet in the log still counts once."""
    entry = cooldown.track_word_usage(SESSION, "Hund")

    assert entry.usage_count == 1
    assert entry.cooldown_until == now + timedelta(hours=2)
    assert exercise_history.recent(SESSION, now - timedelta(hours=24)) == []



def test_custom_config(exercise_history: SqlExerciseHistory, clock) -> None:
    """Test that cooldown parameters come from the config."""
    config = CooldownConfig(base_cooldown_hours=1, max_cooldown_hours=4, usage_threshold=1, cooldown_multiplier=2)
    tracker = CooldownTracker(exercise_history, config=config, clock=clock)

    assert tracker.calculate_cooldown_duration(1) == 1
    assert tracker.calculate_cooldown_duration(3) == 4
    assert tracker.calculate_cooldown_duration(10) == 4


if __name__ == "__main__":
    pytest.main([__file__])

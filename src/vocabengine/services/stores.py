"""Persistence and content interfaces used by the engine, with SQLAlchemy implementations."""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vocabengine.config import WORD_POOLS_FILE
from vocabengine.models.base import SessionLocal, ensure_utc, utcnow
from vocabengine.models.models import Exercise, KnownWord, PracticeSession
from vocabengine.models.selection_models import (
    ExerciseRecord,
    SessionSummary,
    WordPerformanceRecord,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class PerformanceStore(ABC):
    """Per-user, per-word performance records keyed by (user, word, language)."""

    @abstractmethod
    def get(self, user_id: str, word: str, language: str) -> Optional[WordPerformanceRecord]:
        """Return the record for the key, or None if the word was never seen."""

    @abstractmethod
    def upsert(self, record: WordPerformanceRecord) -> None:
        """Insert or replace the record; must be atomic per key."""

    @abstractmethod
    def list_due(
        self, user_id: str, language: str, cutoff: datetime, limit: int
    ) -> List[WordPerformanceRecord]:
        """Records with next_review_date <= cutoff, most overdue first."""

    @abstractmethod
    def list_struggling(
        self, user_id: str, language: str, threshold: float, min_reviews: int, limit: int
    ) -> List[WordPerformanceRecord]:
        """Records with enough reviews and accuracy below threshold, worst first."""

    @abstractmethod
    def created_since(self, user_id: str, language: str, since: datetime) -> List[WordPerformanceRecord]:
        """Records first created at or after ``since``."""


class ExerciseHistory(ABC):
    """Log of the words shown in each exercise of a session, written by the host."""

    @abstractmethod
    def recent(self, session_id: str, since: datetime) -> List[ExerciseRecord]:
        """Exercises of the session created at or after ``since``, oldest first."""


class SessionHistory(ABC):
    """Aggregate results of past practice sessions."""

    @abstractmethod
    def recent_sessions(self, user_id: str, language: str, limit: int) -> List[SessionSummary]:
        """The learner's most recent sessions, newest first."""


class CandidateProvider(ABC):
    """Static vocabulary eligible for selection."""

    @abstractmethod
    def words_for(self, language: str, difficulty: str) -> List[str]:
        """Words for a language and difficulty tier."""


def _to_record(row: KnownWord) -> WordPerformanceRecord:
    return WordPerformanceRecord(
        user_id=row.user_id,
        word=row.word,
        language=row.language,
        total_reviews=row.review_count or 0,
        correct_reviews=row.correct_count or 0,
        mastery_level=row.mastery_level or 1,
        last_reviewed_at=ensure_utc(row.last_reviewed_at),
        next_review_date=ensure_utc(row.next_review_date),
        created_at=ensure_utc(row.created_at),
    )


def _apply_record(row: KnownWord, record: WordPerformanceRecord) -> None:
    row.review_count = record.total_reviews
    row.correct_count = record.correct_reviews
    row.mastery_level = record.mastery_level
    row.last_reviewed_at = record.last_reviewed_at
    row.next_review_date = record.next_review_date


class SqlPerformanceStore(PerformanceStore):
    """Performance records in the ``known_words`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        """Initialize the store with a session factory."""
        self.session_factory = session_factory

    @staticmethod
    def _key_query(user_id: str, word: str, language: str):
        return select(KnownWord).where(
            KnownWord.user_id == user_id,
            KnownWord.word == word,
            KnownWord.language == language,
        )

    def get(self, user_id: str, word: str, language: str) -> Optional[WordPerformanceRecord]:
        with self.session_factory() as db:
            row = db.scalars(self._key_query(user_id, word, language)).first()
            return _to_record(row) if row else None

    def upsert(self, record: WordPerformanceRecord) -> None:
        query = self._key_query(*record.key).with_for_update()
        with self.session_factory() as db:
            row = db.scalars(query).first()
            if row is None:
                row = KnownWord(user_id=record.user_id, word=record.word, language=record.language)
                if record.created_at is not None:
                    row.created_at = record.created_at
                db.add(row)
            _apply_record(row, record)
            try:
                db.commit()
                return
            except IntegrityError:
                # Another writer inserted the key first; update its row instead
                db.rollback()
                logger.debug(f"Concurrent insert for {record.key}, retrying as update")

            row = db.scalars(query).one()
            _apply_record(row, record)
            db.commit()

    def list_due(
        self, user_id: str, language: str, cutoff: datetime, limit: int
    ) -> List[WordPerformanceRecord]:
        query = (
            select(KnownWord)
            .where(
                KnownWord.user_id == user_id,
                KnownWord.language == language,
                KnownWord.next_review_date.is_not(None),
                KnownWord.next_review_date <= cutoff,
            )
            .order_by(KnownWord.next_review_date.asc(), KnownWord.word.asc())
            .limit(limit)
        )
        with self.session_factory() as db:
            return [_to_record(row) for row in db.scalars(query)]

    def list_struggling(
        self, user_id: str, language: str, threshold: float, min_reviews: int, limit: int
    ) -> List[WordPerformanceRecord]:
        query = (
            select(KnownWord)
            .where(
                KnownWord.user_id == user_id,
                KnownWord.language == language,
                KnownWord.review_count >= min_reviews,
                KnownWord.correct_count < KnownWord.review_count * threshold,
            )
            .order_by(KnownWord.correct_count.asc(), KnownWord.word.asc())
            .limit(limit)
        )
        with self.session_factory() as db:
            return [_to_record(row) for row in db.scalars(query)]

    def created_since(self, user_id: str, language: str, since: datetime) -> List[WordPerformanceRecord]:
        query = (
            select(KnownWord)
            .where(
                KnownWord.user_id == user_id,
                KnownWord.language == language,
                KnownWord.created_at >= since,
            )
            .order_by(KnownWord.created_at.desc())
        )
        with self.session_factory() as db:
            return [_to_record(row) for row in db.scalars(query)]


class SqlExerciseHistory(ExerciseHistory):
    """Exercise log in the ``exercises`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        """Initialize the history with a session factory."""
        self.session_factory = session_factory

    def recent(self, session_id: str, since: datetime) -> List[ExerciseRecord]:
        query = (
            select(Exercise)
            .where(Exercise.session_id == session_id, Exercise.created_at >= since)
            .order_by(Exercise.created_at.asc(), Exercise.id.asc())
        )
        with self.session_factory() as db:
            return [
                ExerciseRecord(
                    target_words=list(row.target_words or []),
                    created_at=ensure_utc(row.created_at),
                )
                for row in db.scalars(query)
            ]

    def add(
        self,
        session_id: str,
        target_words: Sequence[str],
        created_at: Optional[datetime] = None,
        user_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> None:
        """Log an exercise generated by the host application."""
        with self.session_factory() as db:
            db.add(
                Exercise(
                    session_id=session_id,
                    user_id=user_id,
                    language=language,
                    target_words=list(target_words),
                    created_at=created_at or utcnow(),
                )
            )
            db.commit()


class SqlSessionHistory(SessionHistory):
    """Session aggregates in the ``practice_sessions`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        """Initialize the history with a session factory."""
        self.session_factory = session_factory

    def recent_sessions(self, user_id: str, language: str, limit: int) -> List[SessionSummary]:
        query = (
            select(PracticeSession)
            .where(PracticeSession.user_id == user_id, PracticeSession.language == language)
            .order_by(PracticeSession.created_at.desc(), PracticeSession.id.desc())
            .limit(limit)
        )
        with self.session_factory() as db:
            return [
                SessionSummary(
                    total_exercises=row.total_exercises,
                    correct_exercises=row.correct_exercises,
                    created_at=ensure_utc(row.created_at),
                )
                for row in db.scalars(query)
            ]

    def add(
        self,
        user_id: str,
        language: str,
        total_exercises: int,
        correct_exercises: int,
        created_at: Optional[datetime] = None,
    ) -> None:
        """Store the results of a finished session."""
        if correct_exercises > total_exercises:
            raise ValueError("correct_exercises cannot exceed total_exercises")
        with self.session_factory() as db:
            db.add(
                PracticeSession(
                    user_id=user_id,
                    language=language,
                    total_exercises=total_exercises,
                    correct_exercises=correct_exercises,
                    created_at=created_at or utcnow(),
                )
            )
            db.commit()


class StaticCandidateProvider(CandidateProvider):
    """Word pools held in memory as ``{difficulty: {language: [words]}}``."""

    def __init__(
        self,
        pools: Mapping[str, Mapping[str, Sequence[str]]],
        fallback_language: Optional[str] = None,
    ):
        self.pools: Dict[str, Dict[str, List[str]]] = {
            tier: {language: list(words) for language, words in by_language.items()}
            for tier, by_language in pools.items()
        }
        self.fallback_language = fallback_language

    def words_for(self, language: str, difficulty: str) -> List[str]:
        tier = self.pools.get(difficulty, {})
        words = tier.get(language)
        if words is None and self.fallback_language:
            logger.info(f"No {difficulty} pool for {language}, using {self.fallback_language}")
            words = tier.get(self.fallback_language)
        return list(words or [])


class JsonCandidateProvider(StaticCandidateProvider):
    """Word pools loaded from a JSON file with the same shape."""

    def __init__(self, path: Path = WORD_POOLS_FILE, fallback_language: Optional[str] = None):
        self.path = Path(path)
        with self.path.open(encoding="utf-8") as f:
            pools = json.load(f)
        if not isinstance(pools, dict):
            raise ValueError(f"Word pool file {self.path} must contain an object")
        super().__init__(pools, fallback_language=fallback_language)
        logger.info(f"Loaded word pools for tiers {sorted(self.pools)} from {self.path}")

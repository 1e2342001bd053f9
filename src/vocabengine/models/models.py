"""Database models for the vocabulary engine."""
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from vocabengine.models.base import Base, TimestampMixin, utcnow


class KnownWord(Base, TimestampMixin):
    """Per-user, per-word performance record."""

    __tablename__ = "known_words"
    __table_args__ = (
        UniqueConstraint("user_id", "word", "language", name="uq_known_words_user_word_language"),
        Index("ix_known_words_due", "user_id", "language", "next_review_date"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    word = Column(String, nullable=False)
    language = Column(String, nullable=False)
    review_count = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    mastery_level = Column(Integer, nullable=False, default=1)  # 1-10
    last_reviewed_at = Column(DateTime(timezone=True))
    next_review_date = Column(DateTime(timezone=True))


class Exercise(Base):
    """Exercise log entry: the words shown in one exercise of a session."""

    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True)
    session_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    language = Column(String, nullable=True)
    target_words = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class PracticeSession(Base, TimestampMixin):
    """Aggregate results of one practice session."""

    __tablename__ = "practice_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    language = Column(String, nullable=False)
    total_exercises = Column(Integer, nullable=False, default=0)
    correct_exercises = Column(Integer, nullable=False, default=0)

"""Test configuration."""
import os
import random
from datetime import datetime, UTC
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import sessionmaker

from vocabengine.models.base import build_engine, init_db
from vocabengine.services.cooldown_service import CooldownTracker
from vocabengine.services.ledger_service import PerformanceLedger
from vocabengine.services.stores import (
    SqlExerciseHistory,
    SqlPerformanceStore,
    SqlSessionHistory,
    StaticCandidateProvider,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed current time for tests."""
    return NOW


@pytest.fixture
def clock(now: datetime):
    return lambda: now


@pytest.fixture
def fake() -> Faker:
    Faker.seed(1234)
    return Faker()


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    """Fresh file-backed SQLite database for each test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def performance_store(session_factory: sessionmaker) -> SqlPerformanceStore:
    return SqlPerformanceStore(session_factory)


@pytest.fixture
def exercise_history(session_factory: sessionmaker) -> SqlExerciseHistory:
    return SqlExerciseHistory(session_factory)


@pytest.fixture
def session_history(session_factory: sessionmaker) -> SqlSessionHistory:
    return SqlSessionHistory(session_factory)


@pytest.fixture
def ledger(performance_store: SqlPerformanceStore) -> PerformanceLedger:
    return PerformanceLedger(performance_store)


@pytest.fixture
def cooldown(exercise_history: SqlExerciseHistory, clock) -> CooldownTracker:
    return CooldownTracker(exercise_history, clock=clock)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def provider() -> StaticCandidateProvider:
    return StaticCandidateProvider(
        {
            "beginner": {
                "german": ["Haus", "Auto", "Hund", "Katze", "Kind"],
            },
            "intermediate": {
                "german": ["Gesellschaft", "Wirtschaft", "Politik", "Bildung", "Umwelt", "Kultur"],
            },
        },
        fallback_language="german",
    )

"""Base model configuration."""
from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import Column, DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from vocabengine.config import settings


def build_engine(url: str, echo: bool = False, timeout: float = settings.database.timeout) -> Engine:
    """Create an engine whose connections give up after ``timeout`` seconds."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
    return create_engine(url, echo=echo, pool_timeout=timeout, pool_pre_ping=True)


# Create SQLAlchemy engine
engine = build_engine(settings.database.url, echo=settings.database.echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base class
Base = declarative_base()


def utcnow() -> datetime:
    """Current timezone-aware UTC time."""
    return datetime.now(UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


def init_db(bind: Any = None) -> None:
    """Initialize database."""
    # Import models so that they register with the metadata
    from vocabengine.models import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)  # Create tables if they don't exist

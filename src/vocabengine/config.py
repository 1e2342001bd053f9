"""Configuration settings for the vocabulary engine."""
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)

DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
WORD_POOLS_FILE = DATA_DIR / "word_pools.json"


class _Overridable:
    """Mixin for frozen config objects that can be copied with overrides."""

    def with_overrides(self, **overrides: Any):
        """Return a copy of this config with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


@dataclass(frozen=True)
class SpacedRepetitionConfig(_Overridable):
    """Spaced repetition scheduling parameters."""
    initial_interval: int = 1  # days
    easy_multiplier: float = 2.5
    hard_multiplier: float = 1.3
    max_interval: int = 365  # days
    min_accuracy_for_promotion: float = 0.8
    struggling_threshold: float = 0.6
    min_reviews_for_struggling: int = 3
    min_reviews_for_demotion: int = 5
    max_mastery_level: int = 10

    def __post_init__(self) -> None:
        if self.initial_interval < 1:
            raise ValueError("initial_interval must be at least one day")
        if self.max_interval < self.initial_interval:
            raise ValueError("max_interval cannot be less than initial_interval")
        if self.max_mastery_level < 1:
            raise ValueError("max_mastery_level must be positive")


@dataclass(frozen=True)
class CooldownConfig(_Overridable):
    """Word cooldown parameters."""
    base_cooldown_hours: float = 2
    max_cooldown_hours: float = 24
    usage_threshold: int = 3
    cooldown_multiplier: float = 1.5
    lookback_hours: float = 6

    def __post_init__(self) -> None:
        if self.base_cooldown_hours > self.max_cooldown_hours:
            raise ValueError("base_cooldown_hours cannot exceed max_cooldown_hours")


@dataclass(frozen=True)
class ScoringConfig(_Overridable):
    """Word scoring weights."""
    base_score: float = 50
    struggling_bonus: float = 40
    review_bonus: float = 30
    new_bonus: float = 20
    novelty_weight: float = 20
    overuse_penalty: float = 15
    overuse_threshold: int = 2
    jitter: float = 5.0  # +/- points, 0 disables
    usage_lookback_hours: float = 168  # one week
    high_novelty_reason_threshold: float = 0.7


@dataclass(frozen=True)
class NoveltyConfig(_Overridable):
    """Novelty injection parameters."""
    target_novelty_ratio: float = 0.25
    max_novelty_per_session: int = 3
    adaptive_threshold: float = 0.75
    context_relevance_weight: float = 0.4
    session_lookback: int = 10
    novelty_window_hours: float = 24


@dataclass(frozen=True)
class SelectionConfig(_Overridable):
    """Per-call word selection policy."""
    review_word_ratio: float = 0.3
    struggling_word_ratio: float = 0.2
    new_word_ratio: float = 0.3
    novelty_word_ratio: float = 0.2
    min_novelty_score: float = 0.6
    max_usage_frequency: int = 3
    adaptive_threshold: float = 0.75
    max_novelty_per_session: int = 3
    novelty_bucket_threshold: float = 0.8
    recent_use_days: int = 1

    def __post_init__(self) -> None:
        self.validate()

    @property
    def ratios(self) -> dict[str, float]:
        return {
            "struggling": self.struggling_word_ratio,
            "review": self.review_word_ratio,
            "new": self.new_word_ratio,
            "novelty": self.novelty_word_ratio,
        }

    def validate(self) -> None:
        """Validate the config and raise ValueError if invalid."""
        for name, ratio in self.ratios.items():
            if ratio < 0 or ratio > 1:
                raise ValueError(f"{name} ratio must be between 0 and 1")
        if sum(self.ratios.values()) > 1.0 + 1e-9:
            raise ValueError("Category ratios must not sum to more than 1.0")
        if self.min_novelty_score < 0 or self.max_usage_frequency < 0:
            raise ValueError("Thresholds must be non-negative")
        if self.adaptive_threshold < 0 or self.adaptive_threshold > 1:
            raise ValueError("adaptive_threshold must be between 0 and 1")
        if self.max_novelty_per_session < 0:
            raise ValueError("max_novelty_per_session must be non-negative")


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocabengine.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"
    timeout: float = float(os.getenv("DATABASE_TIMEOUT", "10"))


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not self.database.url:
            raise ValueError("DATABASE_URL is required")

        if self.database.timeout <= 0:
            raise ValueError("DATABASE_TIMEOUT must be positive")

        if self.monitoring.port < 1 or self.monitoring.port > 65535:
            raise ValueError("METRICS_PORT must be a valid port number")


# Create global settings instance
settings = Settings()
settings.validate()

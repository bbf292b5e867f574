"""
Configuration settings for the adaptive mastery engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every threshold used by the scheduling, estimation, classification and scoring
rules lives here so it can be overridden per deployment or per test.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (prefix ``EXAMPREP_``)."""

    model_config = SettingsConfigDict(
        env_prefix="EXAMPREP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///examprep.db",
        description="SQLAlchemy connection string for the SQL store",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level for the stderr log sink",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path for a rotating log file",
    )

    # ========================================
    # Review Scheduling
    # ========================================
    review_first_interval: int = Field(default=1, description="Interval (days) after the first review")
    review_excellent_threshold: float = Field(default=0.8, description="Lower bound of the top bucket")
    review_good_threshold: float = Field(default=0.6, description="Lower bound of the good bucket")
    review_fair_threshold: float = Field(default=0.4, description="Lower bound of the fair bucket")
    review_excellent_multiplier: float = Field(default=2.0)
    review_excellent_max_interval: int = Field(default=365)
    review_good_multiplier: float = Field(default=1.5)
    review_good_max_interval: int = Field(default=180)
    review_poor_multiplier: float = Field(default=0.5)

    # ========================================
    # Mastery Estimation
    # ========================================
    mastery_recent_window: int = Field(default=5, description="Recent reviews averaged for mastery")
    mastery_performance_weight: float = Field(default=80.0)
    mastery_consistency_weight: float = Field(default=20.0)
    mastery_variance_normalizer: float = Field(
        default=30.0,
        description="Gap variance (days^2) that drives consistency to zero",
    )
    mastered_item_threshold: float = Field(default=80.0, description="Item mastery counted as mastered")
    retention_performance_threshold: float = Field(
        default=0.7,
        description="Performance counted as retained in set summaries",
    )

    # ========================================
    # Difficulty Adaptation
    # ========================================
    difficulty_promote_accuracy: float = Field(default=0.8)
    difficulty_demote_accuracy: float = Field(default=0.5)
    difficulty_history_limit: int = Field(default=10, description="Most recent records considered")
    difficulty_window_days: int = Field(default=7, description="Look-back window for rolling accuracy")

    # ========================================
    # Weak / Strong Classification
    # ========================================
    weak_area_threshold: float = Field(default=60.0, description="Strictly below is weak")
    strong_area_threshold: float = Field(default=75.0, description="At or above is strong")
    weak_area_limit: int = Field(default=5)
    strong_area_limit: int = Field(default=3)
    weak_subtopic_limit: int = Field(default=10)

    # ========================================
    # Progress Analysis
    # ========================================
    default_window_days: int = Field(default=30)
    consistency_day_cap: int = Field(default=30)
    confidence_attempt_cap: int = Field(default=10)
    confidence_attempt_weight: float = Field(default=0.4)
    confidence_accuracy_weight: float = Field(default=0.6)

    # ========================================
    # Test Evaluation
    # ========================================
    numeric_tolerance: float = Field(default=0.01, description="Relative tolerance for numeric answers")
    time_too_fast_ratio: float = Field(default=0.5)
    time_too_slow_ratio: float = Field(default=1.5)
    default_allotted_seconds: int = Field(default=60)
    passing_score: float = Field(default=60.0)
    comparison_history_limit: int = Field(default=5, description="Previous scores used for comparison")

    # ========================================
    # Recommendations
    # ========================================
    recommendation_limit: int = Field(default=5)
    foundation_accuracy: float = Field(default=50.0)
    practice_accuracy: float = Field(default=75.0)
    subject_focus_accuracy: float = Field(default=60.0)
    study_consistency_threshold: float = Field(default=60.0)
    path_foundation_accuracy: float = Field(default=40.0)
    path_practice_accuracy: float = Field(default=70.0)
    high_priority_weak_topics: int = Field(default=2)

    # ========================================
    # Cache
    # ========================================
    cache_ttl_seconds: int = Field(default=300)
    cache_max_entries: int = Field(default=1024)

    # ========================================
    # Content Generator
    # ========================================
    content_api_url: str | None = Field(
        default=None,
        description="Chat-completions endpoint used to generate questions",
    )
    content_api_key: str | None = Field(default=None)
    content_model: str = Field(default="llama-3.1-8b")
    content_timeout_seconds: float = Field(default=30.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

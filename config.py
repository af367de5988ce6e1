"""
Configuration settings for the quiz session engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QUIZ_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Grading
    # ========================================
    essay_pass_threshold: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Minimum essay score (0-100) counted as correct",
    )
    report_pass_accuracy: float = Field(
        default=70.0,
        ge=0.0,
        le=100.0,
        description="Attempt accuracy percentage reported as a pass",
    )
    grading_api_url: str | None = Field(
        default=None,
        description="Remote essay grading service URL (offline grader when unset)",
    )
    grading_api_key: str | None = Field(
        default=None,
        description="Bearer token for the remote essay grading service",
    )
    grading_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds before an essay grading call counts as failed",
    )

    # ========================================
    # Session
    # ========================================
    exam_seconds_per_question: int = Field(
        default=60,
        gt=0,
        description="Exam time budget per question when no explicit limit is given",
    )
    immediate_learning: bool = Field(
        default=False,
        description="Update SM-2 state as soon as a multiple-choice answer is recorded",
    )

    # ========================================
    # SM-2 Settings (for spaced repetition)
    # ========================================
    sm2_initial_ease: float = Field(
        default=2.5,
        description="Ease factor assigned to a never-seen question",
    )
    sm2_minimum_ease: float = Field(
        default=1.3,
        description="Ease factor floor",
    )
    sm2_recall_threshold: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Lowest grade counted as successful recall",
    )

    # ========================================
    # Persistence
    # ========================================
    state_db_path: Path = Field(
        default=Path.home() / ".quizcore" / "state.db",
        description="SQLite file holding scheduling state and attempt history",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def has_remote_grader(self) -> bool:
        """Check if a remote essay grader is configured."""
        return bool(self.grading_api_url)

    def get_grading_config(self) -> dict[str, object]:
        """Get essay grading configuration as a dictionary."""
        return {
            "api_url": self.grading_api_url,
            "api_key": self.grading_api_key,
            "timeout_seconds": self.grading_timeout_seconds,
            "pass_threshold": self.essay_pass_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""
Configuration settings for the daily practice tracker.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are read with the ``PRACTICE_`` prefix (e.g. ``PRACTICE_LOG_LEVEL``).
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
        env_prefix="PRACTICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".daily-practice",
        description="Directory holding the local practice database",
    )
    db_filename: str = Field(
        default="practice.db",
        description="SQLite file name inside data_dir",
    )
    persist_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts before a storage failure is surfaced to the user",
    )

    # ========================================
    # User & Calendar
    # ========================================
    user_id: str = Field(
        default="local",
        description="Logical user whose stats and history are tracked",
    )
    timezone: str | None = Field(
        default=None,
        description="IANA timezone used to decide the calendar day (None = system local time)",
    )

    # ========================================
    # Questions
    # ========================================
    question_file: Path | None = Field(
        default=None,
        description="Optional .txt (one question per line) or .json question pool",
    )

    # ========================================
    # Submission Rules
    # ========================================
    min_answer_length: int = Field(
        default=10,
        ge=0,
        description="Minimum answer length in characters after trimming",
    )
    duplicate_policy: Literal["reject", "idempotent"] = Field(
        default="reject",
        description="What a second submission on the same day does",
    )
    score_delta: float = Field(
        default=5.0,
        ge=0,
        description="Average score bump per answer when no scorer returns a score",
    )

    # ========================================
    # Feedback Collaborator
    # ========================================
    placeholder_feedback: str = Field(
        default=(
            "Great response! Your answer shows good understanding of the topic "
            "and demonstrates clear communication skills."
        ),
        description="Feedback text used when no scoring service is configured",
    )
    feedback_url: str | None = Field(
        default=None,
        description="Optional scoring service endpoint returning {feedback, score}",
    )
    feedback_timeout_ms: int = Field(
        default=10000,
        description="Scoring service request timeout in milliseconds",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="WARNING",
        description="Loguru level for the CLI stderr sink",
    )

    @property
    def db_path(self) -> Path:
        """Full path to the SQLite database."""
        return self.data_dir / self.db_filename


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

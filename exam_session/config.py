"""
Configuration settings for exam-session.

Uses Pydantic Settings for environment variable management with .env file support.
All variables use the EXAM_SESSION_ prefix, e.g. EXAM_SESSION_API_BASE_URL.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from exam_session.core.retry import Backoff, RetryPolicy


class Settings(BaseSettings):
    """Settings for a test attempt session."""

    model_config = SettingsConfigDict(
        env_prefix="EXAM_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Backend API
    # ========================================
    api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL the /tests/... endpoints hang off",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Per-request HTTP timeout",
    )

    # ========================================
    # Timers
    # ========================================
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Wall-clock seconds between countdown ticks",
    )
    autosave_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Period of the scheduled progress save while answers exist",
    )
    teardown_save_timeout_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Upper bound on the final best-effort save during dispose()",
    )

    # ========================================
    # Local cache
    # ========================================
    cache_dir: Path = Field(
        default=Path.home() / ".exam_session",
        description="Directory for the local attempt-id cache",
    )

    # ========================================
    # Retry policies (per call site)
    # ========================================
    fetch_test_max_attempts: int = Field(default=2, ge=1)
    fetch_test_base_delay: float = Field(default=2.0, ge=0)
    fetch_test_backoff: Backoff = Backoff.LINEAR

    fetch_progress_max_attempts: int = Field(default=2, ge=1)
    fetch_progress_base_delay: float = Field(default=1.0, ge=0)
    fetch_progress_backoff: Backoff = Backoff.LINEAR

    submit_max_attempts: int = Field(default=3, ge=1)
    submit_base_delay: float = Field(default=2.0, ge=0)
    submit_backoff: Backoff = Backoff.FIXED

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(default="INFO", description="Loguru level for configure_logging()")

    def retry_policy(self, name: str) -> RetryPolicy:
        """Build the retry policy for ``fetch_test``, ``fetch_progress`` or ``submit``."""
        if name not in ("fetch_test", "fetch_progress", "submit"):
            raise ValueError(f"Unknown retry call site: {name}")
        return RetryPolicy(
            max_attempts=getattr(self, f"{name}_max_attempts"),
            base_delay=getattr(self, f"{name}_base_delay"),
            backoff=getattr(self, f"{name}_backoff"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

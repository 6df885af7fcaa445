"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Anthropic API
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key for the default AI service",
    )

    # Logging
    taskforge_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    taskforge_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    taskforge_log_dir: str = Field(
        default="logs",
        description="Directory for rotating log files",
    )

    # Execution engine
    taskforge_max_concurrent_executions: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum number of concurrently active executions",
    )
    taskforge_default_timeout_ms: int = Field(
        default=300_000,
        ge=1_000,
        description="Default script/test/build timeout in milliseconds",
    )

    # Queue pump
    taskforge_stuck_task_threshold_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Age after which a running queue item is reclaimed",
    )
    taskforge_queue_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Idle poll interval of the queue pump",
    )
    taskforge_requeue_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Delay before the next tick after an item settles",
    )

    # Workflows
    taskforge_default_workflow: str = Field(
        default="standard",
        description="Workflow used when no task mode is given",
    )

    # AI
    taskforge_ai_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Default model for the Claude AI service",
    )
    taskforge_ai_max_tokens: int = Field(
        default=4000,
        ge=256,
        description="Maximum completion tokens per AI call",
    )

    # Refactoring
    taskforge_refactoring_min_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for an opportunity to enter a refactoring plan",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.taskforge_max_concurrent_executions
        5
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()

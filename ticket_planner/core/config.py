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
        description="Anthropic API key, required only by the Anthropic adapter",
    )

    # Logging
    planner_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    planner_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    planner_log_file: str | None = Field(
        default=None,
        description="Optional log file path pattern, e.g. logs/planner_{time:YYYY-MM-DD}.log",
    )

    # Model selection
    planner_high_capability_model: str = Field(
        default="claude-opus-4-20250514",
        description="Model used by planning-heavy stages",
    )
    planner_standard_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for ticket text and documents",
    )
    planner_max_output_tokens: int = Field(
        default=4096,
        ge=256,
        description="Maximum output tokens per generation call",
    )
    planner_language: str = Field(
        default="en",
        description="Language of generated ticket and document text",
    )

    # Resilience
    planner_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retries for rate-limited generation calls",
    )
    planner_retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base retry delay in seconds",
    )

    # Pipeline limits
    planner_max_spec_tokens: int = Field(
        default=150_000,
        ge=1,
        description="Pre-flight token budget for a specification",
    )
    planner_ticket_batch_size: int = Field(
        default=5,
        ge=1,
        description="Components per ticket-generation call",
    )
    planner_ticket_concurrency: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Concurrent ticket-generation batches (1 = sequential)",
    )
    planner_max_tickets_per_epic: int = Field(
        default=10,
        ge=1,
        description="Maximum tickets grouped into one epic",
    )
    planner_default_tracks: int = Field(
        default=3,
        ge=1,
        description="Execution tracks when the caller supplies no resource counts",
    )
    planner_blocker_count: int = Field(
        default=5,
        ge=0,
        description="Number of blockers reported on the dependency graph",
    )

    # Storage
    planner_storage_dir: str = Field(
        default="./planner-output",
        description="Root directory for the local document store",
    )

    # Pricing (USD per million tokens)
    planner_high_capability_input_price: float = Field(default=15.0, ge=0.0)
    planner_high_capability_output_price: float = Field(default=75.0, ge=0.0)
    planner_standard_input_price: float = Field(default=3.0, ge=0.0)
    planner_standard_output_price: float = Field(default=15.0, ge=0.0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.planner_ticket_batch_size
        5
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()

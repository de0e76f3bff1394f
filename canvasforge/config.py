"""
Engine Configuration

Uses pydantic-settings for environment variable loading with validation.
All tunables for the canvas engine are centralized here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CANVAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "testing", "production"] = Field(
        default="development",
        description="Runtime environment"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level used by configure_logging()"
    )

    # ==========================================================================
    # Calculations
    # ==========================================================================
    calculation_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-token evaluation timeout; a slow reference renders as an inline error"
    )

    max_calculation_depth: int = Field(
        default=16,
        ge=1,
        description="Maximum nesting depth when referenced elements contain calculations themselves"
    )

    # ==========================================================================
    # Element value source
    # ==========================================================================
    value_source_url: str | None = Field(
        default=None,
        description="Base URL of the backend serving element values (None = read values locally)"
    )

    value_source_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="HTTP timeout for element value lookups"
    )

    # ==========================================================================
    # Database steps
    # ==========================================================================
    database_url: str | None = Field(
        default=None,
        description="Base URL of the database query API (None = database steps fail inline)"
    )

    database_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for database step queries"
    )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @computed_field
    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()

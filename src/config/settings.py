"""Application settings using Pydantic Settings.

Centralized configuration for the care-team service. Every field can be
overridden through the environment (``APP_`` and ``RESILIENCE_`` prefixes)
or a local ``.env`` file.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ResilienceSettings(BaseSettings):
    """Bounded retry configuration for optimistic-concurrency writes."""

    model_config = SettingsConfigDict(
        env_prefix="RESILIENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    conflict_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts (including the first) before a stale write surfaces as a conflict",
    )
    conflict_retry_delay: float = Field(
        default=0.05,
        ge=0.0,
        description="Initial delay in seconds between attempts",
    )
    conflict_retry_max_delay: float = Field(
        default=0.5,
        ge=0.0,
        description="Max delay between attempts",
    )
    conflict_retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Care Team Service", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: Optional[bool] = Field(
        default=None,
        description="JSON log output; defaults to on in production",
    )
    log_file: Optional[Path] = Field(default=None, description="Optional JSON log file")

    # Actor identity is supplied by the upstream gateway
    actor_header: str = Field(default="X-Actor-Id", description="Header carrying the acting user id")
    actor_name_header: str = Field(default="X-Actor-Name", description="Header carrying the acting user's display name")

    # CORS
    cors_origins: list = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins"
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def resilience(self) -> ResilienceSettings:
        return ResilienceSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()

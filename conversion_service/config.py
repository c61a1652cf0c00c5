"""
Conversion Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    """
    Conversion service configuration with validation.

    All settings can be overridden via environment variables
    (MAX_CONCURRENT_RENDERS, BROWSER_HEADLESS, ...).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # === Concurrency & Limits ===
    max_concurrent_renders: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum render sessions in flight, also the per-merge worker pool size (1-50)"
    )
    default_timeout_ms: int = Field(
        default=0,
        ge=0,
        description="Timeout applied to conversions that set none (0 = unbounded)"
    )

    # === Browser ===
    browser_headless: bool = Field(
        default=True,
        description="Run Chromium headless"
    )

    # === Storage ===
    temp_dir: Optional[str] = Field(
        default=None,
        description="Base directory for temporary HTML files (system temp dir if unset)"
    )

    # === Runtime ===
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one the logging module knows."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> ServiceSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached; call get_settings.cache_clear()
    after changing the environment in tests.
    """
    return ServiceSettings()

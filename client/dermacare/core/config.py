"""
Application configuration - Settings
Project: DermaCare Client

Defines the client settings loaded from environment variables.
"""


from __future__ import annotations
import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Client configuration.

    Loads settings from environment variables (prefix-free) or a `.env` file.
    Defaults are suitable for a local backend on the developer machine.

    To get the singleton instance use `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------
    # Backend API
    # ------------------------------------------------------------
    api_base_url: str = Field(
        default="http://127.0.0.1:8000/api",
        description="Base URL of the clinic REST backend",
    )

    api_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for every backend request, in seconds",
    )

    api_max_retries: int = Field(
        default=2,
        ge=0,
        description="Extra attempts for GET requests after a network error",
    )

    api_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pause between GET retries, in seconds",
    )

    # ------------------------------------------------------------
    # Application
    # ------------------------------------------------------------
    app_name: str = Field(
        default="DermaCare Client",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    app_env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Runtime environment (development | production | testing)",
    )

    debug: bool = Field(
        default=False,
        description="Debug mode",
    )

    # ------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # ------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------
    currency_label: str = Field(
        default="L.E",
        description="Currency label printed next to amounts",
    )

    # ------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------
    default_min_stock_level: int = Field(
        default=5,
        ge=0,
        description="Low-stock threshold used when an item has none",
    )

    near_expiry_days: int = Field(
        default=60,
        ge=0,
        description="Look-ahead window in days for items expiring soon",
    )

    dashboard_refresh_seconds: int = Field(
        default=30,
        ge=1,
        description="Auto-refresh interval for dashboards",
    )

    @property
    def is_production(self) -> bool:
        """True when running in production."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """True when running in development."""
        return self.app_env == "development"

    # ------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Strips the trailing slash and checks the scheme."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return v

    @field_validator("currency_label")
    @classmethod
    def validate_currency_label(cls, v: str) -> str:
        """Warns when the currency label is empty."""
        if not v.strip():
            logging.getLogger(__name__).warning(
                "currency_label is empty: printed amounts will carry no currency"
            )
        return v.strip()

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Rejects development-only values in production."""
        if self.app_env != "production":
            return self

        errors = []

        if self.debug:
            errors.append("- debug: must be False in production")

        if "localhost" in self.api_base_url or "127.0.0.1" in self.api_base_url:
            errors.append(
                f"- api_base_url: '{self.api_base_url}' is not allowed in production"
            )

        if errors:
            error_msg = "Invalid production configuration:\n" + "\n".join(errors)
            raise ValueError(error_msg)

        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Returns the singleton settings instance.

    In tests, call get_settings.cache_clear() to reset it.

    Returns:
        Settings: application settings
    """
    return Settings()


settings = get_settings()

"""Application settings and configuration."""

import sys
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REFERRAL_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "referral-engine"
    env: str = "development"
    allowed_origins: str = "http://localhost:3000"
    brand_name: str = Field(
        default="Kleanr",
        description="Product name used in share messages",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./referrals.db"

    # Rate Limiting
    default_rate_limit: str = "200/minute"
    validate_rate_limit: str = Field(
        default="30/minute",
        description="Limit for the public code validation endpoint",
    )


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\nFATAL: REFERRAL_JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)

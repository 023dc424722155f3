"""
Centralized configuration management.

Follows Layer 5 rules:
- All secrets (DB URLs, JWT keys, Redis credentials) MUST come from
  environment variables or a secure secret store (never hardcoded)
- Centralize configuration in this module
- Do not spread os.getenv calls all over the codebase
- Do not log secrets or environment values
"""
from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Postgres ---
    PG_HOST: str = Field(..., description="PostgreSQL host")
    PG_PORT: int = Field(default=5432, description="PostgreSQL port")
    PG_DB: str = Field(..., description="PostgreSQL database name")
    PG_USER: str = Field(..., description="PostgreSQL user")
    PG_PASSWORD: str = Field(..., description="PostgreSQL password")
    PG_SSLMODE: str = Field(default="require", description="PostgreSQL SSL mode (require/disable)")

    # --- Sessions (web) ---
    JWT_SECRET: str = Field(..., description="JWT signing secret key")
    SESSION_COOKIE_NAME: str = Field(default="hr_session", description="Session cookie name")
    SESSION_COOKIE_SECURE: bool = Field(default=True, description="Send session cookie over HTTPS only")
    SESSION_MAX_AGE_MIN: int = Field(default=30, description="Session lifetime (idle threshold) in minutes")
    SESSION_UPDATE_AGE_MIN: int = Field(default=5, description="Minimum session age before keep-alive re-issues it")

    # --- Mobile tokens ---
    MOBILE_ACCESS_TTL_MIN: int = Field(default=30, description="Mobile access token lifetime in minutes")
    MOBILE_REFRESH_TTL_DAYS: int = Field(default=30, description="Mobile refresh token lifetime in days")

    # --- Redis/Valkey ---
    REDIS_HOST: str = Field(default="redis", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password")
    REDIS_SSL: str = Field(default="false", description="Redis SSL enabled (true/false)")

    # --- CORS ---
    CORS_ORIGINS: str = Field(default="*", description="CORS allowed origins (comma-separated)")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"postgresql+psycopg2://"
            f"{self.PG_USER}:{self.PG_PASSWORD}"
            f"@{self.PG_HOST}:{self.PG_PORT}"
            f"/{self.PG_DB}?sslmode={self.PG_SSLMODE}"
        )


settings = Settings()

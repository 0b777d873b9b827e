"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


USER_STORE_BACKENDS = ("firestore", "postgres", "memory")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")
    VERSION: str = Field(default="1.0.0")

    # Server
    PORT: int = Field(default=8000, description="Port to bind to")
    LOG_LEVEL: str = Field(default="INFO")

    # RevenueCat webhook secret (RC_AUTH_TOKEN is the Cloud Functions name)
    REVENUECAT_WEBHOOK_SECRET: str = Field(
        default="",
        validation_alias=AliasChoices("REVENUECAT_WEBHOOK_SECRET", "RC_AUTH_TOKEN"),
    )

    # User document store
    USER_STORE_BACKEND: str = Field(default="firestore")
    USERS_COLLECTION: str = Field(default="users")

    # Google Cloud / Firestore
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = Field(default=None)
    GOOGLE_CLOUD_PROJECT: Optional[str] = Field(default=None)

    # Postgres (USER_STORE_BACKEND=postgres)
    DATABASE_URL: str = Field(default="")

    # Product ids containing this marker are attributed to Android
    ANDROID_PRODUCT_MARKER: str = Field(default="android")

    # CORS
    ALLOWED_ORIGINS: str = Field(default="*")

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def database_url_async(self) -> str:
        """Convert database URL to async format for asyncpg."""
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://", 1
            )
        return self.DATABASE_URL

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @field_validator("USER_STORE_BACKEND")
    @classmethod
    def validate_user_store_backend(cls, v: str) -> str:
        """Only known store backends are accepted."""
        backend = v.strip().lower()
        if backend not in USER_STORE_BACKENDS:
            raise ValueError(
                f"USER_STORE_BACKEND must be one of {', '.join(USER_STORE_BACKENDS)}"
            )
        return backend


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()

"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
    APP_VERSION: str = Field(default="1.0.0")

    # Server
    PORT: int = Field(default=8000)

    # Development Settings
    DEV_AUTH_DISABLED: bool = Field(
        default=False,
        description="Disable authentication for local development/testing"
    )

    # Database
    DATABASE_URL: str = Field(default="")

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # JWT Authentication
    JWT_SECRET: str = Field(default="change-this-secret-in-production-please")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440)  # 24 hours
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=30)

    # Google OAuth
    GOOGLE_OAUTH_CLIENT_ID: Optional[str] = Field(default=None)

    # Stripe
    STRIPE_SECRET_KEY: str = Field(default="")
    STRIPE_WEBHOOK_SECRET: str = Field(default="")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = Field(default=300)
    STRIPE_API_BASE_URL: str = Field(default="https://api.stripe.com/v1")

    # Weather / marine data (Open-Meteo)
    WEATHER_API_BASE_URL: str = Field(default="https://api.open-meteo.com/v1")
    MARINE_API_BASE_URL: str = Field(default="https://marine-api.open-meteo.com/v1")

    # Azure Blob Storage (fishing diary media)
    AZURE_STORAGE_CONNECTION_STRING: str = Field(default="")
    AZURE_STORAGE_ACCOUNT_NAME: str = Field(default="")
    AZURE_STORAGE_ACCOUNT_KEY: str = Field(default="")
    AZURE_STORAGE_CONTAINER: str = Field(default="fishing-charter-dev")

    # Marketplace economics
    PLATFORM_COMMISSION_RATE: float = Field(default=0.10)
    DEFAULT_COMMISSION_RATE: float = Field(default=0.15)
    CAPTAIN_SUBSCRIPTION_PRICE: float = Field(default=29.99)
    DEFAULT_PRICE_PER_PERSON: float = Field(default=95.00)

    # App Configuration
    FRONTEND_URL: str = Field(default="http://localhost:3000")
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://localhost:8000")

    # File Upload
    MAX_DIARY_MEDIA_SIZE_MB: int = Field(default=25)
    DIARY_MEDIA_SAS_DAYS: int = Field(default=365)

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def database_url_async(self) -> str:
        """Convert database URL to async format for asyncpg."""
        if self.DATABASE_URL:
            return self.DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://"
            )
        return ""

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def auth_disabled(self) -> bool:
        """Check if auth is disabled (only allowed in development)."""
        return self.is_development and self.DEV_AUTH_DISABLED

    @property
    def google_oauth_client_ids(self) -> List[str]:
        """Accepted ID-token audiences (comma-separated GOOGLE_OAUTH_CLIENT_ID)."""
        if not self.GOOGLE_OAUTH_CLIENT_ID:
            return []
        return [cid.strip() for cid in self.GOOGLE_OAUTH_CLIENT_ID.split(",") if cid.strip()]

    @property
    def stripe_configured(self) -> bool:
        """Stripe calls are only possible with a secret key."""
        return bool(self.STRIPE_SECRET_KEY)

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure JWT secret is sufficiently long."""
        if len(v) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()

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


PAYFAST_PROCESS_URL_LIVE = "https://www.payfast.co.za/eng/process"
PAYFAST_PROCESS_URL_SANDBOX = "https://sandbox.payfast.co.za/eng/process"


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

    # Server
    PORT: int = Field(default=8000, description="Port to bind to")

    # Development Settings
    DEV_AUTH_DISABLED: bool = Field(
        default=False,
        description="Disable authentication for local development/testing"
    )

    # Database
    DATABASE_URL: str = Field(default="")

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # JWT Authentication (tokens issued by the identity service)
    JWT_SECRET: str = Field(default="change-this-secret-in-production")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440)  # 24 hours

    # PayFast
    PAYFAST_MERCHANT_ID: str = Field(default="")
    PAYFAST_MERCHANT_KEY: str = Field(default="")
    PAYFAST_PASSPHRASE: str = Field(default="")
    PAYFAST_SANDBOX: bool = Field(default=True)
    PAYFAST_API_URL: str = Field(default="https://api.payfast.co.za")
    PAYFAST_API_TIMEOUT_SECONDS: float = Field(default=10.0)
    PAYFAST_NOTIFY_URL: Optional[str] = Field(default=None)

    # Subscription plan
    SUBSCRIPTION_PLAN_TYPE: str = Field(default="pro_annual")
    SUBSCRIPTION_PLAN_NAME: str = Field(default="Pro Plan - Annual Subscription")
    SUBSCRIPTION_PRICE: str = Field(default="99.00")
    SUBSCRIPTION_CURRENCY: str = Field(default="ZAR")
    SUBSCRIPTION_BILLING_INTERVAL: str = Field(default="year")

    # App Configuration
    API_BASE_URL: str = Field(default="http://localhost:8000")
    FRONTEND_URL: str = Field(default="http://localhost:3000")
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://localhost:8000")

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
    def payfast_process_url(self) -> str:
        """Hosted payment page for the selected PayFast environment."""
        if self.PAYFAST_SANDBOX:
            return PAYFAST_PROCESS_URL_SANDBOX
        return PAYFAST_PROCESS_URL_LIVE

    @property
    def payfast_notify_url(self) -> str:
        """ITN callback URL handed to PayFast at checkout."""
        if self.PAYFAST_NOTIFY_URL:
            return self.PAYFAST_NOTIFY_URL
        return f"{self.API_BASE_URL.rstrip('/')}/api/v1/webhooks/payfast"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def auth_disabled(self) -> bool:
        """Check if auth is disabled (only allowed in development)."""
        return self.is_development and self.DEV_AUTH_DISABLED

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure JWT secret is sufficiently long."""
        if len(v) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long")
        return v

    @field_validator("SUBSCRIPTION_BILLING_INTERVAL")
    @classmethod
    def validate_billing_interval(cls, v: str) -> str:
        """Only monthly and annual PayFast frequencies are supported."""
        v = v.strip().lower()
        if v not in ("month", "year"):
            raise ValueError("SUBSCRIPTION_BILLING_INTERVAL must be 'month' or 'year'")
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

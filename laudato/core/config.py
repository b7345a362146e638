"""
Application Configuration
Loads settings from environment variables
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # APPLICATION
    # ========================================================================
    ENV: str = Field(default="development", description="Environment name")
    DEBUG: bool = Field(default=True, description="Debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    API_VERSION: str = Field(default="v1", description="API version")
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # ========================================================================
    # SESSIONS
    # ========================================================================
    SESSION_SECRET_KEY: str = Field(
        default="change-this-in-production",
        description="Secret for signing session tokens"
    )
    SESSION_ALGORITHM: str = Field(default="HS256")
    SESSION_EXPIRE_MINUTES: int = Field(default=60)

    # ========================================================================
    # REDEMPTION QR CODES
    # ========================================================================
    QR_SECRET: str = Field(
        default="laudato-si-qr-secret-2026",
        description="Shared HMAC secret for redemption QR codes"
    )
    QR_VALIDITY_MS: int = Field(default=5 * 60 * 1000, description="QR code validity window")
    QR_REFRESH_MS: int = Field(default=4 * 60 * 1000, description="Age after which wallets regenerate")

    # ========================================================================
    # PAGINATION
    # ========================================================================
    USERS_PAGE_LIMIT_MAX: int = Field(default=100)
    AUDIT_LOG_PAGE_LIMIT_MAX: int = Field(default=200)

    # ========================================================================
    # COMPUTED PROPERTIES
    # ========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENV.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance"""
    return Settings()

"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

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

    # Server
    PORT: int = Field(default=8000, description="Port to bind to")

    # Database
    DATABASE_URL: str = Field(default="")

    # Redis (pending loop cache)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    PENDING_LOOP_TTL_SECONDS: int = Field(default=60 * 60 * 24 * 7)  # 7 days

    # App Configuration
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://localhost:8000")

    # Calendar
    LOCAL_TIMEZONE: str = Field(default="UTC")
    FIRST_WEEKDAY: int = Field(
        default=6,
        ge=0,
        le=6,
        description="First column of the calendar grid (0=Monday ... 6=Sunday)",
    )

    # Trends
    EMOTION_PALETTE: str = Field(
        default="B784A7,94A7B7,C2E5C9,E2C9B5,B5D5E2,E2DCB5,A28497,1E3D59",
        description="Comma separated hex colors assigned round-robin to emotion labels",
    )
    TOP_EMOTIONS_LIMIT: int = Field(default=4, ge=1)
    CORRELATION_MIN_SUPPORT: int = Field(
        default=2,
        ge=1,
        description="Minimum number of rated days a bucket needs to be reported",
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def emotion_palette_list(self) -> List[str]:
        """Parse EMOTION_PALETTE into a list of upper-case hex strings."""
        return [
            color.strip().lstrip("#").upper()
            for color in self.EMOTION_PALETTE.split(",")
            if color.strip()
        ]

    @property
    def local_tz(self) -> ZoneInfo:
        """Timezone used to normalize timestamps to calendar days."""
        return ZoneInfo(self.LOCAL_TIMEZONE)

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

    @field_validator("EMOTION_PALETTE")
    @classmethod
    def validate_palette(cls, v: str) -> str:
        """Palette must contain at least one color."""
        if not any(part.strip() for part in v.split(",")):
            raise ValueError("EMOTION_PALETTE must contain at least one color")
        return v

    @field_validator("LOCAL_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
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

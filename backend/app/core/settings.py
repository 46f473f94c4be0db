# backend/app/core/settings.py
"""
BuildOps - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate path to .env in project root (4 levels up from this file)
# backend/app/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"

CONSUMPTION_POINTS = ("start", "complete")


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "BuildOps"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="buildops", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None
    AUDIT_LOG_FILE: Optional[str] = "./logs/audit.log"

    # ===================
    # Build Lifecycle
    # ===================
    # "start" is the supported model: reservations are consumed in full when the
    # build starts. "complete" is an opt-in for sites that consume per unit built
    # at completion. Each order keeps the value in force when it was created.
    MATERIAL_CONSUMPTION_POINT: str = Field(
        default="start",
        description=(
            "When reserved materials are consumed: 'start' (default, supported) "
            "or 'complete' (opt-in, consumes built units at completion)"
        ),
    )
    BUILD_NUMBER_PREFIX: str = Field(default="BUILD", description="Build number prefix")
    TRANSITION_MAX_RETRIES: int = Field(
        default=3, ge=0, description="Retries for a transition after a concurrency conflict"
    )
    TRANSITION_RETRY_BACKOFF_MS: int = Field(
        default=50, ge=0, description="Linear backoff between transition retries (ms)"
    )

    @field_validator("MATERIAL_CONSUMPTION_POINT", mode="before")
    @classmethod
    def validate_consumption_point(cls, v):
        value = str(v).strip().lower()
        if value not in CONSUMPTION_POINTS:
            raise ValueError(
                f"MATERIAL_CONSUMPTION_POINT must be one of {', '.join(CONSUMPTION_POINTS)}"
            )
        return value

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def normalize_log_format(cls, v):
        return str(v).strip().lower()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Convenience alias for modules that import settings directly
settings = get_settings()

"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # PARKS API
    # ===================
    parks_api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the parks-management REST API"
    )
    parks_api_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Network timeout for parks API requests"
    )

    # ===================
    # COLLECTION CACHE
    # ===================
    cache_stale_seconds: Optional[float] = Field(
        default=60.0,
        ge=0,
        description="Seconds before a cached collection is refetched (unset = only on invalidation)"
    )

    # ===================
    # LIST PAGES
    # ===================
    default_page_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Page size for resources that do not declare one"
    )
    import_preview_rows: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Rows shown in the import preview before commit"
    )
    page_session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=24 * 60,
        description="Minutes an idle list-page session is kept in memory"
    )
    fuzzy_header_threshold: int = Field(
        default=85,
        ge=50,
        le=100,
        description="Minimum rapidfuzz score for fuzzy CSV header mapping"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call this service"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()

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
    # PRODUCTBOARD API
    # ===================
    productboard_api_url: str = Field(
        default="https://api.productboard.com",
        description="Base URL of the v1 REST API"
    )
    productboard_v2_api_url: str = Field(
        default="https://api.productboard.com/v2",
        description="Base URL of the v2 entities API"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout applied to every outbound request"
    )
    notes_page_limit: int = Field(
        default=2000,
        ge=1,
        le=2000,
        description="Page size when listing notes"
    )
    companies_page_limit: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size when listing companies"
    )
    entities_page_limit: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size when listing v2 entities"
    )

    # ===================
    # THROTTLING
    # ===================
    write_throttle_every: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Pause after this many processed write items"
    )
    write_throttle_delay_ms: int = Field(
        default=200,
        ge=0,
        le=60000,
        description="Pause length for general writes"
    )
    delete_throttle_every: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Pause after this many processed deletions"
    )
    delete_throttle_delay_ms: int = Field(
        default=1000,
        ge=0,
        le=60000,
        description="Pause length for note deletion"
    )
    field_value_batch_size: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Concurrent custom field value reads per batch"
    )
    field_value_batch_pause_ms: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Pause between field value read batches"
    )

    # ===================
    # DISPLAY LIMITS
    # ===================
    preview_sample_limit: int = Field(
        default=100,
        ge=1,
        le=5000,
        description="Classified items shown in a preview (display only)"
    )
    failure_display_limit: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Failure messages listed inline in run status"
    )
    preview_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="How long a preview plan stays confirmable"
    )
    run_retention_minutes: int = Field(
        default=120,
        ge=1,
        le=10080,
        description="How long a finished run stays pollable and downloadable"
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL (migration logs, usage stats)"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
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

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if the datastore is configured."""
        return bool(self.supabase_url and self.supabase_key)


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

"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Every ingestion threshold and limit used by the pipeline lives here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from decimal import Decimal
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
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )

    # ===================
    # TELEGRAM
    # ===================
    telegram_bot_token: Optional[str] = Field(
        None,
        description="Telegram bot token from @BotFather"
    )
    telegram_chat_id: Optional[str] = Field(
        None,
        description="Telegram chat ID for upload notifications"
    )
    telegram_language: str = Field(
        default="en",
        pattern="^(en|es)$",
        description="Language of Telegram notifications"
    )

    # ===================
    # COLUMN MAPPING
    # ===================
    fuzzy_match_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Minimum fuzzy similarity for a header to map to a field"
    )
    learned_mapping_threshold: float = Field(
        default=0.8,
        ge=0,
        le=1,
        description="Minimum confirmed ratio for a learned mapping to apply"
    )
    mapping_review_threshold: float = Field(
        default=0.6,
        ge=0,
        le=1,
        description="Mean mapping confidence below which a job goes to review"
    )

    # ===================
    # VALIDATION RULES
    # ===================
    min_unit_price: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Lowest accepted unit price"
    )
    max_unit_price: Decimal = Field(
        default=Decimal("999999.99"),
        gt=0,
        description="Unit prices above this raise a warning"
    )
    description_max_length: int = Field(
        default=500,
        ge=10,
        le=5000,
        description="Maximum description length"
    )
    default_currency: str = Field(
        default="USD",
        pattern="^[A-Z]{3}$",
        description="Currency used when a file does not specify one"
    )
    default_unit_of_measure: str = Field(
        default="EA",
        description="Unit of measure used when a file does not specify one"
    )

    # ===================
    # FILE LIMITS
    # ===================
    max_file_size_mb: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Largest accepted upload in megabytes"
    )
    max_rows: int = Field(
        default=50000,
        ge=1,
        description="Largest accepted number of data rows"
    )
    extraction_timeout_seconds: float = Field(
        default=60,
        gt=0,
        le=900,
        description="Upper bound for PDF/Word/Email extraction"
    )

    # ===================
    # UPLOAD PROCESSING
    # ===================
    default_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Items per persistence batch"
    )
    default_max_errors: int = Field(
        default=50,
        ge=1,
        description="Critical validation errors collected before stopping"
    )
    checkpoint_retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days a finished upload is kept before purge"
    )
    checkpoint_dir: str = Field(
        default=".checkpoints",
        description="Directory for file-backed upload checkpoints"
    )
    learning_store_path: str = Field(
        default="mapping_feedback.json",
        description="File for learned column mappings"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
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
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


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

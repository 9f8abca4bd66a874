"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    configure_logging: structlog setup
    get_supabase_client: Supabase client factory
    check_connection: Health check function
"""

from config.settings import settings, get_settings, Settings
from config.logging import configure_logging
from config.database import (
    get_supabase_client,
    check_connection,
    reset_connection,
    DatabaseError,
    ConnectionError
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Logging
    "configure_logging",

    # Database
    "get_supabase_client",
    "check_connection",
    "reset_connection",
    "DatabaseError",
    "ConnectionError",
]

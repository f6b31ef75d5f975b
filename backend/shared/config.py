"""
Centralized configuration for the Planora auth client.

All settings are loaded from environment variables with sensible defaults.
Settings are namespaced by concern (e.g., SUPABASE_*, VERIFICATION_*).
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Planora Auth"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_db_url: str = ""

    # Frontend URLs (for password reset redirects)
    frontend_url: str = "http://localhost:5173"

    # Verification codes
    verification_code_length: int = 6
    verification_code_ttl_minutes: int = 15
    verification_timeout_seconds: float = 10.0

    # Sessions
    session_refresh_leeway_seconds: int = 60

    # Credentials
    password_min_length: int = 8

    # Outbound email (Resend)
    resend_api_key: str = ""
    email_from: str = "Planora <noreply@getplanora.app>"

    # Local storage hint for onboarding status
    local_storage_path: str = ".planora/local_storage.json"
    onboarding_flag_key: str = "hasCompletedInitialFlow"

    # Feature Flags
    reconcile_on_login: bool = True


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()

"""
Shared infrastructure for the Planora auth client.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management
- clock: Injectable time source
- database: Supabase client factory
- exceptions: Base exception classes and the auth error taxonomy
- remote: Translation of Supabase / httpx failures into that taxonomy
- repository: Base class for Supabase-backed repositories

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings
from .database import get_supabase_client, get_supabase_anon_client, reset_client_cache
from .exceptions import (
    PlanoraError,
    ValidationError,
    AuthenticationError,
    ExternalServiceError,
    AuthErrorCode,
    AuthError,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_supabase_client",
    "get_supabase_anon_client",
    "reset_client_cache",
    "PlanoraError",
    "ValidationError",
    "AuthenticationError",
    "ExternalServiceError",
    "AuthErrorCode",
    "AuthError",
]

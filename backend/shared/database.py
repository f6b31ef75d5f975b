"""
Database client factory for Supabase.

Provides a service-role client (admin user management, verification codes,
profile repair) and an anon-key client (end-user sign-in and token refresh).
"""

from typing import Optional
from supabase import create_client, Client, ClientOptions

from .config import get_settings

# SessionManager is the only refresher of the user session; the clients
# must not rotate or keep tokens behind its back.
CLIENT_OPTIONS = dict(auto_refresh_token=False, persist_session=False)

# Module-level client cache
_service_client: Optional[Client] = None
_anon_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client with service role (bypasses RLS).

    Use this for operations that need admin access, such as creating
    identities after a verified signup or writing verification codes.

    Returns:
        Supabase client configured with service role key
    """
    global _service_client

    if _service_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables."
            )
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
            options=ClientOptions(**CLIENT_OPTIONS),
        )

    return _service_client


def get_supabase_anon_client() -> Client:
    """
    Get Supabase client with the public anon key.

    Password sign-in and refresh-token exchange go through this client,
    exactly as the browser would perform them.

    Returns:
        Supabase client configured with anon key
    """
    global _anon_client

    if _anon_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables."
            )
        _anon_client = create_client(
            settings.supabase_url,
            settings.supabase_anon_key,
            options=ClientOptions(**CLIENT_OPTIONS),
        )

    return _anon_client


def reset_client_cache() -> None:
    """
    Reset the cached database clients.

    Useful for testing or when configuration changes.
    """
    global _service_client, _anon_client
    _service_client = None
    _anon_client = None

"""
Error translation for calls into Supabase.

Every adapter funnels its remote calls through these helpers so that
transport failures and backend failures reach the auth service as members
of the auth error taxonomy rather than as library exceptions.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

import httpx
from supabase import AuthError as SupabaseAuthError, AuthRetryableError, PostgrestAPIError

from .exceptions import AuthError, NetworkUnavailableError, RemoteServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def translate_error(service: str, error: Exception) -> AuthError:
    """Map a library exception to the auth taxonomy."""
    if isinstance(error, AuthError):
        return error
    if isinstance(error, (httpx.TransportError, AuthRetryableError)):
        return NetworkUnavailableError(service)
    if isinstance(error, (PostgrestAPIError, SupabaseAuthError, httpx.HTTPStatusError)):
        logger.warning(f"{service} rejected request: {error}")
        return RemoteServiceError(service)
    logger.error(f"Unexpected {type(error).__name__} from {service}: {error}")
    return RemoteServiceError(service)


async def call_remote(
    service: str,
    operation: Awaitable[T],
    timeout: Optional[float] = None,
) -> T:
    """
    Await a remote operation, translating failures.

    Args:
        service: Name used in error details and logs (e.g., "profiles")
        operation: The awaitable performing the remote call
        timeout: Optional bound in seconds; expiry raises asyncio.TimeoutError
                 untouched so callers can map it to their own timeout error

    Returns:
        The operation's result
    """
    try:
        if timeout is not None:
            return await asyncio.wait_for(operation, timeout=timeout)
        return await operation
    except (AuthError, asyncio.TimeoutError):
        raise
    except (httpx.HTTPError, PostgrestAPIError, SupabaseAuthError) as e:
        raise translate_error(service, e) from e


def first_row(result: Any) -> Optional[dict]:
    """Return the first row of a postgrest response, or None."""
    data = getattr(result, "data", None)
    if not data:
        return None
    return data[0]

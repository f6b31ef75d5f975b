"""
Identity module.

Adapter to the remote identity service (Supabase Auth).

Public API:
- IIdentityProvider: Interface for identity operations
- Identity, ProviderSession: Snapshots returned by the provider
- SupabaseIdentityProvider, InMemoryIdentityProvider: Implementations
"""

from .interfaces import IIdentityProvider
from .models import Identity, ProviderSession
from .service import (
    SupabaseIdentityProvider,
    InMemoryIdentityProvider,
    get_identity_provider,
    reset_identity_provider,
)

__all__ = [
    # Interface
    "IIdentityProvider",
    # Models
    "Identity",
    "ProviderSession",
    # Implementations
    "SupabaseIdentityProvider",
    "InMemoryIdentityProvider",
    "get_identity_provider",
    "reset_identity_provider",
]

"""
Profile module interfaces.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from .models import Profile


@runtime_checkable
class IProfileStore(Protocol):
    """
    Interface to the remote profile table.

    Implementations raise members of the auth error taxonomy.
    """

    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        """Fetch a profile, or None if it does not exist."""
        ...

    async def upsert_profile(self, identity_id: str, fields: dict[str, Any]) -> Profile:
        """
        Create the profile or update the named fields of an existing one.

        Fields not named are left untouched on update.
        """
        ...

    async def profile_exists(self, identity_id: str) -> bool:
        ...


@runtime_checkable
class ITravelPreferencesLookup(Protocol):
    """Read-only view of the travel preferences table."""

    async def has_travel_preferences(self, identity_id: str) -> bool:
        """Whether a travel-preferences record exists for the identity."""
        ...

"""
Profiles module.

Adapter to the relational profile store and the travel-preferences table.

Public API:
- IProfileStore, ITravelPreferencesLookup: Interfaces
- Profile: Model
- ProfileRepository, TravelPreferencesRepository: Supabase implementations
- InMemoryProfileStore, InMemoryTravelPreferences: In-memory implementations
"""

from .interfaces import IProfileStore, ITravelPreferencesLookup
from .models import Profile
from .repository import (
    ProfileRepository,
    TravelPreferencesRepository,
    InMemoryProfileStore,
    InMemoryTravelPreferences,
)

__all__ = [
    "IProfileStore",
    "ITravelPreferencesLookup",
    "Profile",
    "ProfileRepository",
    "TravelPreferencesRepository",
    "InMemoryProfileStore",
    "InMemoryTravelPreferences",
]

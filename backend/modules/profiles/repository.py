"""
Profile repositories.

Supabase-backed repositories for the `profiles` and `travel_preferences`
tables, plus in-memory stand-ins with failure injection for tests.
"""

from datetime import date, datetime
from typing import Any, Optional

from shared.clock import Clock, utcnow
from shared.repository import BaseRepository
from shared.exceptions import RemoteServiceError
from shared.remote import call_remote, first_row

from .models import Profile

SERVICE_NAME = "profiles"


def _serialize(fields: dict[str, Any]) -> dict[str, Any]:
    """Make field values JSON-safe for postgrest."""
    return {
        key: value.isoformat() if isinstance(value, (date, datetime)) else value
        for key, value in fields.items()
    }


class ProfileRepository(BaseRepository[Profile]):
    """
    Repository for the profiles table.

    Note: This repository does NOT perform authorization checks.
    It runs with the service-role client.
    """

    TABLE = "profiles"

    async def _run(self, query: Any) -> Any:
        return await call_remote(SERVICE_NAME, self._execute(query))

    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        result = await self._run(
            lambda: self._db.table(self.TABLE).select("*").eq("id", identity_id).limit(1).execute()
        )
        data = first_row(result)
        return Profile(**data) if data else None

    async def upsert_profile(self, identity_id: str, fields: dict[str, Any]) -> Profile:
        row = _serialize({**fields, "id": identity_id, "updated_at": utcnow()})
        result = await self._run(
            lambda: self._db.table(self.TABLE).upsert(row, on_conflict="id").execute()
        )
        data = first_row(result)
        if data is not None:
            return Profile(**data)
        # No representation returned; read it back
        profile = await self.get_profile(identity_id)
        if profile is None:
            raise RemoteServiceError(SERVICE_NAME, "Profile write was not persisted")
        return profile

    async def profile_exists(self, identity_id: str) -> bool:
        result = await self._run(
            lambda: self._db.table(self.TABLE).select("id").eq("id", identity_id).limit(1).execute()
        )
        return bool(result.data)


class TravelPreferencesRepository(BaseRepository[dict]):
    """Existence checks against the travel_preferences table."""

    TABLE = "travel_preferences"

    async def has_travel_preferences(self, identity_id: str) -> bool:
        result = await call_remote(
            "travel_preferences",
            self._execute(
                lambda: self._db.table(self.TABLE)
                .select("user_id")
                .eq("user_id", identity_id)
                .limit(1)
                .execute()
            ),
        )
        return bool(result.data)


class InMemoryProfileStore:
    """Profile store with in-memory storage, for testing and development."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utcnow
        self._profiles: dict[str, Profile] = {}
        self._failures: dict[str, list[Exception]] = {}
        self.upsert_calls = 0

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call to `operation` raise `error`."""
        self._failures.setdefault(operation, []).append(error)

    def _maybe_fail(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def delete(self, identity_id: str) -> None:
        """Drop a profile, simulating a lost or never-written record."""
        self._profiles.pop(identity_id, None)

    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        self._maybe_fail("get_profile")
        return self._profiles.get(identity_id)

    async def upsert_profile(self, identity_id: str, fields: dict[str, Any]) -> Profile:
        self._maybe_fail("upsert_profile")
        self.upsert_calls += 1
        now = self._clock()
        existing = self._profiles.get(identity_id)
        if existing is None:
            profile = Profile(id=identity_id, created_at=now, updated_at=now, **fields)
        else:
            profile = Profile(**{**existing.model_dump(), **fields, "updated_at": now})
        self._profiles[identity_id] = profile
        return profile

    async def profile_exists(self, identity_id: str) -> bool:
        self._maybe_fail("profile_exists")
        return identity_id in self._profiles


class InMemoryTravelPreferences:
    """Travel-preferences lookup backed by a set of identity IDs."""

    def __init__(self, identity_ids: Optional[set[str]] = None):
        self._identity_ids = set(identity_ids or ())
        self._failures: list[Exception] = []

    def fail_next(self, error: Exception) -> None:
        self._failures.append(error)

    def add(self, identity_id: str) -> None:
        self._identity_ids.add(identity_id)

    async def has_travel_preferences(self, identity_id: str) -> bool:
        if self._failures:
            raise self._failures.pop(0)
        return identity_id in self._identity_ids

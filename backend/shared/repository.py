"""
Base repository class for database access.

Provides a common abstraction layer for all repositories, encapsulating
Supabase client access and running its blocking calls off the event loop.
"""

import asyncio
from typing import Any, Callable, TypeVar, Generic
from supabase import Client


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for database operations:
    - Supabase client access via self._db
    - Generic type parameter for model type hints
    - _execute() to run a blocking query in a worker thread

    Subclasses should implement domain-specific data access methods
    and handle dict-to-Pydantic model mapping internally.

    Example:
        class ProfileRepository(BaseRepository[Profile]):
            async def get_profile(self, identity_id: str) -> Optional[Profile]:
                result = await self._execute(
                    lambda: self._db.table("profiles").select("*").eq("id", identity_id).execute()
                )
                if not result.data:
                    return None
                return Profile(**result.data[0])
    """

    def __init__(self, db: Client) -> None:
        """
        Initialize the repository with a Supabase client.

        Args:
            db: Supabase client instance for database operations.
        """
        self._db = db

    async def _execute(self, query: Callable[[], Any]) -> Any:
        """Run a synchronous Supabase query without blocking the event loop."""
        return await asyncio.to_thread(query)

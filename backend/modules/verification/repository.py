"""
Verification code stores.

VerificationCodeRepository persists codes in the Supabase
`verification_codes` table. InMemoryVerificationCodeStore keeps them in a
list for tests and offline runs.
"""

import asyncio
import uuid
from typing import Any, Optional

from shared.repository import BaseRepository
from shared.remote import call_remote, first_row

from .models import CodePurpose, VerificationCode

SERVICE_NAME = "verification_codes"


class VerificationCodeRepository(BaseRepository[VerificationCode]):
    """
    Repository for the verification_codes table.

    Consumption is a conditional update (used = false -> true) so two
    concurrent verifications of one code cannot both succeed.
    """

    TABLE = "verification_codes"

    async def _run(self, query: Any) -> Any:
        return await call_remote(SERVICE_NAME, self._execute(query))

    async def insert(self, code: VerificationCode) -> VerificationCode:
        row = {
            "target": code.target,
            "code_type": code.purpose.value,
            "code": code.code,
            "created_at": code.issued_at.isoformat(),
            "expires_at": code.expires_at.isoformat(),
            "used": False,
        }
        result = await self._run(lambda: self._db.table(self.TABLE).insert(row).execute())
        data = first_row(result)
        if data is None:
            return code
        return self._map_to_code(data)

    async def find_latest(
        self,
        target: str,
        purpose: CodePurpose,
        code: str,
    ) -> Optional[VerificationCode]:
        result = await self._run(
            lambda: self._db.table(self.TABLE)
            .select("*")
            .eq("target", target)
            .eq("code_type", purpose.value)
            .eq("code", code)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        data = first_row(result)
        return self._map_to_code(data) if data else None

    async def mark_used(self, code_id: str) -> bool:
        result = await self._run(
            lambda: self._db.table(self.TABLE)
            .update({"used": True})
            .eq("id", code_id)
            .eq("used", False)
            .execute()
        )
        return bool(result.data)

    async def revoke_outstanding(self, target: str, purpose: CodePurpose) -> int:
        result = await self._run(
            lambda: self._db.table(self.TABLE)
            .delete()
            .eq("target", target)
            .eq("code_type", purpose.value)
            .eq("used", False)
            .execute()
        )
        return len(result.data or [])

    def _map_to_code(self, data: dict[str, Any]) -> VerificationCode:
        return VerificationCode(
            id=str(data["id"]),
            target=data["target"],
            purpose=CodePurpose(data["code_type"]),
            code=data["code"],
            issued_at=data["created_at"],
            expires_at=data["expires_at"],
            used=bool(data.get("used", False)),
        )


class InMemoryVerificationCodeStore:
    """Code store with in-memory storage, for testing and development."""

    def __init__(self, delay_seconds: float = 0.0):
        self._codes: list[VerificationCode] = []
        self._failures: list[Exception] = []
        self.delay_seconds = delay_seconds

    def fail_next(self, error: Exception) -> None:
        """Make the next store call raise `error`."""
        self._failures.append(error)

    async def _enter(self) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self._failures:
            raise self._failures.pop(0)

    @property
    def codes(self) -> list[VerificationCode]:
        return list(self._codes)

    def latest_for(self, target: str, purpose: CodePurpose) -> Optional[VerificationCode]:
        """Most recent code for a pair, used or not."""
        matching = [c for c in self._codes if c.target == target and c.purpose == purpose]
        return matching[-1] if matching else None

    async def insert(self, code: VerificationCode) -> VerificationCode:
        await self._enter()
        stored = code.model_copy(update={"id": str(uuid.uuid4())})
        self._codes.append(stored)
        return stored

    async def find_latest(
        self,
        target: str,
        purpose: CodePurpose,
        code: str,
    ) -> Optional[VerificationCode]:
        await self._enter()
        for stored in reversed(self._codes):
            if stored.target == target and stored.purpose == purpose and stored.code == code:
                return stored
        return None

    async def mark_used(self, code_id: str) -> bool:
        await self._enter()
        for index, stored in enumerate(self._codes):
            if stored.id == code_id:
                if stored.used:
                    return False
                self._codes[index] = stored.model_copy(update={"used": True})
                return True
        return False

    async def revoke_outstanding(self, target: str, purpose: CodePurpose) -> int:
        await self._enter()
        kept = [
            c for c in self._codes
            if not (c.target == target and c.purpose == purpose and not c.used)
        ]
        revoked = len(self._codes) - len(kept)
        self._codes = kept
        return revoked

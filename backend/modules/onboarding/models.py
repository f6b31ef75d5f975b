"""
Onboarding module data models.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class OnboardingSource(str, Enum):
    """The three places the onboarding flag is replicated to, most authoritative first."""

    IDENTITY = "identity"
    PROFILE = "profile"
    LOCAL = "local"


class StoreWrite(BaseModel):
    """Outcome of writing the flag to one store."""

    source: OnboardingSource = Field(..., description="Store written")
    ok: bool = Field(..., description="Whether the write succeeded")
    error: Optional[str] = Field(None, description="Error code if it failed")

    model_config = {"frozen": True}


class OnboardingWriteReport(BaseModel):
    """Result of marking onboarding complete across all stores."""

    identity_id: str = Field(..., description="Identity written for")
    writes: list[StoreWrite] = Field(default_factory=list, description="Per-store outcomes")

    @property
    def failed_stores(self) -> list[str]:
        return [w.source.value for w in self.writes if not w.ok]

    @property
    def degraded(self) -> bool:
        """True if a non-authoritative store missed the write."""
        return bool(self.failed_stores)


class OnboardingSnapshot(BaseModel):
    """
    The three copies of the onboarding flag as read right now.

    Each is True / False, or None when the store could not be read or holds
    no value.
    """

    identity: Optional[bool] = Field(None, description="Identity metadata copy (authoritative)")
    profile: Optional[bool] = Field(None, description="Profile record copy")
    local: Optional[bool] = Field(None, description="Local storage hint")
    profile_exists: Optional[bool] = Field(None, description="Whether the profile record exists")

    def disagreeing(self) -> list[OnboardingSource]:
        """Stores whose value differs from the identity's. Empty if the identity value is unknown."""
        if self.identity is None:
            return []
        stale = []
        if self.profile != self.identity:
            stale.append(OnboardingSource.PROFILE)
        if self.local != self.identity:
            stale.append(OnboardingSource.LOCAL)
        return stale


class ReconcileReport(BaseModel):
    """What reconcile() found and repaired."""

    identity_id: str = Field(..., description="Identity reconciled")
    before: OnboardingSnapshot = Field(..., description="Values read before repair")
    writes: list[StoreWrite] = Field(default_factory=list, description="Repairs attempted")
    profile_created: bool = Field(default=False, description="Whether a missing profile was recreated")

    @property
    def changed(self) -> bool:
        return any(w.ok for w in self.writes)

    @property
    def converged(self) -> bool:
        return all(w.ok for w in self.writes)

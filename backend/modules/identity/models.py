"""
Identity module data models.

An Identity is owned by the remote identity service. This client only ever
holds read-only snapshots of it.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class Identity(BaseModel):
    """
    Snapshot of a remote identity record.

    `metadata` is the provider's user metadata. It carries the profile
    fields collected at signup and the authoritative onboarding flag.
    """

    id: str = Field(..., description="Identity ID (UUID from Supabase)")
    email: str = Field(..., description="Email address")
    email_verified: bool = Field(default=False, description="Whether the email has been confirmed")
    email_confirmed_at: Optional[datetime] = Field(None, description="When the email was confirmed")
    metadata: dict[str, Any] = Field(default_factory=dict, description="User metadata")
    created_at: Optional[datetime] = Field(None, description="Identity creation time")

    model_config = {"frozen": True}

    @property
    def has_completed_onboarding(self) -> Optional[bool]:
        """Onboarding flag from metadata, or None when the key is absent."""
        value = self.metadata.get("has_completed_onboarding")
        if value is None:
            return None
        return bool(value)

    @property
    def first_name(self) -> Optional[str]:
        return self.metadata.get("first_name")

    @property
    def last_name(self) -> Optional[str]:
        return self.metadata.get("last_name")


class ProviderSession(BaseModel):
    """Tokens returned by the identity provider on sign-in or refresh."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Opaque refresh token")
    expires_at: Optional[int] = Field(None, description="Access token expiry (epoch seconds)")
    identity: Identity = Field(..., description="Identity the tokens belong to")

    model_config = {"frozen": True}

"""
Session module data models.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from modules.identity.models import Identity, ProviderSession


class Session(BaseModel):
    """
    The authenticated session held by this client.

    Owned exclusively by the SessionManager. Replaced wholesale on refresh,
    never mutated field by field.
    """

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Refresh token")
    expires_at: datetime = Field(..., description="Access token expiry (UTC)")
    identity: Identity = Field(..., description="Identity the session belongs to")

    model_config = {"frozen": True}

    @classmethod
    def from_provider(cls, provided: ProviderSession, expires_at: datetime) -> "Session":
        return cls(
            access_token=provided.access_token,
            refresh_token=provided.refresh_token,
            expires_at=expires_at,
            identity=provided.identity,
        )

    def expires_within(self, now: datetime, leeway_seconds: int = 0) -> bool:
        """True if the access token expires within `leeway_seconds` of `now`."""
        return now + timedelta(seconds=leeway_seconds) >= self.expires_at

    @property
    def identity_id(self) -> str:
        return self.identity.id


def epoch_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SessionEvent(str, Enum):
    """Kinds of session change pushed to observers."""

    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SIGNED_OUT = "SIGNED_OUT"


class SessionChange(BaseModel):
    """Notification delivered to session observers."""

    event: SessionEvent = Field(..., description="What happened")
    session: Optional[Session] = Field(None, description="Session after the change (None when signed out)")
    reason: Optional[str] = Field(None, description="Why the session ended, for SIGNED_OUT")

    model_config = {"frozen": True}

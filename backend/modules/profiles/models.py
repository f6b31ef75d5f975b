"""
Profile module data models.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class Profile(BaseModel):
    """
    Relational profile record, keyed 1:1 by identity ID.

    Eventually consistent with the identity. It may be missing entirely,
    in which case reconciliation recreates it from identity data.
    """

    id: str = Field(..., description="Identity ID (UUID)")
    email: Optional[str] = Field(None, description="Email address")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    birthdate: Optional[date] = Field(None, description="Date of birth")
    email_verified: bool = Field(default=False, description="Whether the email is verified")
    has_completed_onboarding: bool = Field(default=False, description="Onboarding copy held by the profile")
    account_status: str = Field(default="active", description="Account status")
    pending_email_change: Optional[str] = Field(None, description="Requested new email, awaiting its code")
    email_change_requested_at: Optional[datetime] = Field(None, description="When the email change was requested")
    created_at: Optional[datetime] = Field(None, description="Creation time")
    updated_at: Optional[datetime] = Field(None, description="Last update time")

    model_config = {"frozen": True}

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

"""
Verification module data models.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field


class CodePurpose(str, Enum):
    """What a verification code proves. Values are the stored `code_type`."""

    SIGNUP = "EMAIL_VERIFICATION"
    EMAIL_CHANGE = "EMAIL_CHANGE"


class VerificationCode(BaseModel):
    """
    A single-use code bound to (target email, purpose).

    Valid only once and only before `expires_at`.
    """

    id: Optional[str] = Field(None, description="Row ID")
    target: str = Field(..., description="Normalised email the code was sent to")
    purpose: CodePurpose = Field(..., description="What the code proves")
    code: str = Field(..., description="The code value")
    issued_at: datetime = Field(..., description="When the code was issued")
    expires_at: datetime = Field(..., description="When the code stops being accepted")
    used: bool = Field(default=False, description="Whether the code has been consumed")

    model_config = {"frozen": True}

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CodeDispatch(BaseModel):
    """
    Result of issuing a code.

    Deliberately says nothing about whether the address is registered.
    """

    sent: Literal[True] = Field(default=True, description="A code was dispatched")
    expires_at: datetime = Field(..., description="When the dispatched code expires")


class VerificationReceipt(BaseModel):
    """Result of a successful verification."""

    consumed: Literal[True] = Field(default=True, description="The code is now used")
    target: str = Field(..., description="Email the code proved")
    purpose: CodePurpose = Field(..., description="What the code proved")

"""
Authentication module data models.

These models define the data structures the auth service exposes to the
UI layer: the signup state machine, results and their typed failures.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar
from pydantic import BaseModel, Field, SecretStr

from shared.exceptions import AuthError, AuthErrorCode, RESENDABLE_CODES
from modules.identity.models import Identity
from modules.sessions.models import Session


T = TypeVar("T")


class SignupState(str, Enum):
    """States of the two-phase signup flow."""

    IDLE = "idle"
    DETAILS_COLLECTED = "details_collected"
    CODE_ISSUED = "code_issued"
    VERIFIED = "verified"
    ACCOUNT_CREATED = "account_created"
    LOGGED_IN = "logged_in"
    ABANDONED = "abandoned"


class RegistrationStatus(str, Enum):
    """Where a signed-in identity should be routed."""

    NEW_USER = "new_user"
    RETURNING_USER = "returning_user"
    INCOMPLETE_ONBOARDING = "incomplete_onboarding"
    ERROR = "error"


class ProfileFields(BaseModel):
    """Profile details collected alongside signup credentials."""

    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    birthdate: Optional[date] = Field(None, description="Date of birth")

    def merged(self, other: Optional["ProfileFields"]) -> "ProfileFields":
        """Fields of `other` that are set win over ours."""
        if other is None:
            return self
        return self.model_copy(update=other.model_dump(exclude_none=True))

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class PendingSignup(BaseModel):
    """
    In-progress signup data, held in memory only.

    The password is kept as a SecretStr so it never shows up in reprs or
    logs. Discarded on completion or abandonment.
    """

    flow_id: int = Field(..., description="Flow identifier guarding late results")
    email: str = Field(..., description="Normalised email")
    password: SecretStr = Field(..., description="Chosen password")
    profile_fields: ProfileFields = Field(default_factory=ProfileFields)
    created_at: datetime = Field(..., description="When the flow started")
    codes_issued: int = Field(default=0, description="Codes sent so far in this flow")


class AuthFailure(BaseModel):
    """Typed failure carried by an AuthResult."""

    code: AuthErrorCode = Field(..., description="Stable error code")
    message: str = Field(..., description="User-facing message")
    details: dict[str, Any] = Field(default_factory=dict)
    can_resend: bool = Field(default=False, description="Whether to offer sending a new code")

    @classmethod
    def from_error(cls, error: AuthError) -> "AuthFailure":
        return cls(
            code=error.error_code,
            message=error.message,
            details=error.details,
            can_resend=error.error_code in RESENDABLE_CODES,
        )


class AuthResult(BaseModel, Generic[T]):
    """
    Outcome of a public auth operation.

    Expected failures are returned here, never raised.
    """

    ok: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[T] = Field(None, description="Payload on success")
    error: Optional[AuthFailure] = Field(None, description="Failure on error")

    @classmethod
    def success(cls, data: Optional[T] = None) -> "AuthResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: AuthError) -> "AuthResult[T]":
        return cls(ok=False, error=AuthFailure.from_error(error))

    @property
    def error_code(self) -> Optional[AuthErrorCode]:
        return self.error.code if self.error else None


class SignupProgress(BaseModel):
    """State of the signup flow after collecting details or issuing a code."""

    state: SignupState = Field(..., description="Current signup state")
    email: str = Field(..., description="Email the flow is for")
    codes_issued: int = Field(default=0, description="Codes sent so far")
    code_expires_at: Optional[datetime] = Field(None, description="Expiry of the latest code")
    resent: bool = Field(default=False, description="Whether this was a resend for the same flow")


class SignupOutcome(BaseModel):
    """Result of completing a signup."""

    identity: Identity = Field(..., description="The created identity")
    profile_created: bool = Field(..., description="Whether the profile write succeeded")
    logged_in: bool = Field(..., description="Whether the automatic login succeeded")
    session: Optional[Session] = Field(None, description="Session if logged in")
    login_error: Optional[AuthFailure] = Field(
        None, description="Why the automatic login failed; send the user to manual login"
    )
    state: SignupState = Field(..., description="Signup state after completion")


class RegistrationReport(BaseModel):
    """Aggregated registration signals for an identity."""

    identity_id: str = Field(..., description="Identity checked")
    status: RegistrationStatus = Field(..., description="Routing decision")
    profile_exists: Optional[bool] = Field(None, description="Whether a profile exists")
    onboarding_complete: Optional[bool] = Field(None, description="Profile onboarding flag")
    has_travel_preferences: Optional[bool] = Field(None, description="Whether preferences exist")


class PasswordResetRequest(BaseModel):
    """
    Result of requesting a password reset.

    Always `sent`, whether or not the address has an account.
    """

    sent: bool = Field(default=True)
    email: str = Field(..., description="Address the request was made for")

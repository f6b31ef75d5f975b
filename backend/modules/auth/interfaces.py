"""
Authentication module interface.

The UI layer depends on IAuthService, not the concrete implementation.
Every operation returns an AuthResult; expected failures never raise.
"""

from typing import Optional, Protocol, runtime_checkable

from modules.identity.models import Identity
from modules.onboarding.models import OnboardingWriteReport, ReconcileReport
from modules.sessions.models import Session
from modules.verification.models import CodeDispatch

from .models import (
    AuthResult,
    PasswordResetRequest,
    ProfileFields,
    RegistrationReport,
    SignupOutcome,
    SignupProgress,
    SignupState,
)


@runtime_checkable
class IAuthService(Protocol):
    """
    Interface for the authentication and registration lifecycle.

    This protocol defines the contract the auth module exposes to the UI.
    """

    @property
    def state(self) -> SignupState:
        """Current state of the signup / login state machine."""
        ...

    async def collect_signup_details(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupProgress]:
        """Validate and hold signup details without contacting any service."""
        ...

    async def initiate_signup(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupProgress]:
        """
        Send a signup code to `email`.

        Calling it again for the same email while a code is outstanding is a
        resend: a fresh code replaces the old one and the flow is kept.
        """
        ...

    async def resend_signup_code(self) -> AuthResult[SignupProgress]:
        """Re-issue the code for the current signup flow."""
        ...

    async def complete_signup(
        self,
        code: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupOutcome]:
        """
        Verify the code, create the account and log in.

        Returns:
            AuthResult with SignupOutcome; CODE_INVALID, CODE_EXPIRED or
            CODE_ALREADY_USED leave the flow waiting for a code
        """
        ...

    async def abandon_signup(self) -> AuthResult[SignupState]:
        """Drop the current signup flow; late results for it are discarded."""
        ...

    async def login(self, email: str, password: str) -> AuthResult[Session]:
        """
        Log in with email and password.

        Identities with an unverified email get EMAIL_UNVERIFIED and no session.
        """
        ...

    async def logout(self) -> AuthResult[None]:
        """End the current session."""
        ...

    async def refresh_session(self) -> AuthResult[Session]:
        """Force a token refresh."""
        ...

    async def get_current_user(self) -> AuthResult[Optional[Identity]]:
        """The signed-in identity, or None when nobody is signed in."""
        ...

    async def check_user_registration_status(self, identity_id: str) -> AuthResult[RegistrationReport]:
        """Classify an identity as new, returning or mid-onboarding."""
        ...

    async def mark_onboarding_complete(
        self,
        identity_id: Optional[str] = None,
    ) -> AuthResult[OnboardingWriteReport]:
        """Record onboarding completion (for the signed-in identity by default)."""
        ...

    async def reconcile_onboarding(self, identity_id: Optional[str] = None) -> AuthResult[ReconcileReport]:
        """Repair disagreeing copies of the onboarding flag."""
        ...

    async def send_password_reset(self, email: str) -> AuthResult[PasswordResetRequest]:
        """Request a password recovery email."""
        ...

    async def apply_password_reset(self, new_password: str) -> AuthResult[None]:
        """Set a new password using the current (recovery) session."""
        ...

    async def update_password(self, current_password: str, new_password: str) -> AuthResult[None]:
        """Change the password after re-checking the current one."""
        ...

    async def request_email_change(self, new_email: str) -> AuthResult[CodeDispatch]:
        """Send a confirmation code to a new email address."""
        ...

    async def update_email(
        self,
        new_email: str,
        code: str,
        password: Optional[str] = None,
    ) -> AuthResult[Identity]:
        """Switch to `new_email` once its confirmation code checks out."""
        ...

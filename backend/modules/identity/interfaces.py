"""
Identity module interface.

Other modules depend on IIdentityProvider, never on the Supabase client.
This keeps the auth flows testable against the in-memory provider.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from .models import Identity, ProviderSession


@runtime_checkable
class IIdentityProvider(Protocol):
    """
    Interface to the remote identity service.

    Implementations raise members of the auth error taxonomy
    (shared.exceptions), never library exceptions.
    """

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
    ) -> Identity:
        """
        Create a new identity with a confirmed email.

        Only called after the signup code has been verified.

        Raises:
            IdentityExistsError: If the email is already registered
        """
        ...

    async def authenticate(self, email: str, password: str) -> ProviderSession:
        """
        Exchange an email/password pair for a session.

        Raises:
            InvalidCredentialsError: If the pair is rejected
            EmailUnverifiedError: If the provider refuses unconfirmed emails
        """
        ...

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        """
        Exchange a refresh token for new tokens.

        Raises:
            SessionExpiredError: If the refresh token is revoked or expired
        """
        ...

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        """Fetch the identity record, or None if it does not exist."""
        ...

    async def update_metadata(self, identity_id: str, updates: dict[str, Any]) -> Identity:
        """
        Merge `updates` into the identity's metadata.

        Keys not named in `updates` are preserved.
        """
        ...

    async def send_password_reset(self, email: str) -> None:
        """Ask the provider to email a password recovery link."""
        ...

    async def apply_password_reset(self, identity_id: str, new_password: str) -> None:
        """Set a new password for the identity."""
        ...

    async def update_email(
        self,
        identity_id: str,
        new_email: str,
        password: Optional[str] = None,
    ) -> Identity:
        """Change the identity's email (and optionally its password)."""
        ...

    async def sign_out(self, access_token: str, scope: str = "global") -> None:
        """
        Revoke refresh tokens behind an access token.

        "global" ends every session of the identity; "local" ends only the
        grant that produced this access token.
        """
        ...

"""
Identity provider implementations.

SupabaseIdentityProvider talks to Supabase Auth. InMemoryIdentityProvider
keeps identities in a dict and issues real HS256 JWTs, for tests and for
running the CLI without a backend.
"""

import asyncio
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any, Callable, Optional

import jwt
from supabase import AuthApiError, Client

from shared.clock import Clock, utcnow
from shared.config import get_settings
from shared.database import get_supabase_anon_client, get_supabase_client
from shared.exceptions import (
    AuthError,
    EmailUnverifiedError,
    IdentityExistsError,
    InvalidCredentialsError,
    RemoteServiceError,
    SessionExpiredError,
)
from shared.remote import call_remote

from .interfaces import IIdentityProvider
from .models import Identity, ProviderSession

logger = logging.getLogger(__name__)

SERVICE_NAME = "identity"

# Refresh-token failures the provider reports for dead sessions
_DEAD_SESSION_CODES = {
    "refresh_token_not_found",
    "refresh_token_already_used",
    "session_not_found",
    "session_expired",
    "user_not_found",
}

ErrorMapper = Callable[[AuthApiError], Optional[AuthError]]


def _to_identity(user: Any) -> Identity:
    """Map a Supabase User to an Identity snapshot."""
    metadata = dict(user.user_metadata or {})
    confirmed_at = getattr(user, "email_confirmed_at", None)
    return Identity(
        id=user.id,
        email=user.email or "",
        email_verified=confirmed_at is not None or metadata.get("email_verified") is True,
        email_confirmed_at=confirmed_at,
        metadata=metadata,
        created_at=getattr(user, "created_at", None),
    )


def _to_provider_session(response: Any) -> ProviderSession:
    session = response.session
    if session is None:
        raise RemoteServiceError(SERVICE_NAME, "Sign-in returned no session")
    user = response.user or session.user
    return ProviderSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        identity=_to_identity(user),
    )


class SupabaseIdentityProvider:
    """
    Identity provider backed by Supabase Auth.

    End-user calls (password sign-in, token refresh, recovery email) go
    through the anon-key client; identity creation and updates go through
    the service-role admin API.
    """

    def __init__(
        self,
        auth_client: Client,
        admin_client: Client,
        password_reset_redirect: Optional[str] = None,
    ):
        self._auth = auth_client.auth
        self._admin = admin_client.auth.admin
        self._password_reset_redirect = password_reset_redirect

    async def _run(self, fn: Callable[[], Any], mapper: Optional[ErrorMapper] = None) -> Any:
        """Run a blocking auth call in a thread, mapping provider error codes first."""

        async def mapped() -> Any:
            try:
                return await asyncio.to_thread(fn)
            except AuthApiError as e:
                specific = mapper(e) if mapper else None
                if specific is None:
                    raise
                raise specific from e

        return await call_remote(SERVICE_NAME, mapped())

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
    ) -> Identity:
        def exists(e: AuthApiError) -> Optional[AuthError]:
            if e.code in ("email_exists", "user_already_exists"):
                return IdentityExistsError(email)
            return None

        response = await self._run(
            lambda: self._admin.create_user(
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": metadata,
                }
            ),
            exists,
        )
        identity = _to_identity(response.user)
        logger.info(f"Created identity {identity.id}")
        return identity

    async def authenticate(self, email: str, password: str) -> ProviderSession:
        def rejected(e: AuthApiError) -> Optional[AuthError]:
            if e.code == "email_not_confirmed":
                return EmailUnverifiedError(email)
            if e.code == "invalid_credentials" or e.status == 400:
                return InvalidCredentialsError()
            return None

        response = await self._run(
            lambda: self._auth.sign_in_with_password({"email": email, "password": password}),
            rejected,
        )
        return _to_provider_session(response)

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        if not refresh_token:
            raise SessionExpiredError()

        def dead(e: AuthApiError) -> Optional[AuthError]:
            if e.code in _DEAD_SESSION_CODES or e.status in (400, 401, 403):
                return SessionExpiredError()
            return None

        response = await self._run(lambda: self._auth.refresh_session(refresh_token), dead)
        return _to_provider_session(response)

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        try:
            uuid.UUID(identity_id)
        except ValueError:
            return None

        try:
            response = await self._run(lambda: self._admin.get_user_by_id(identity_id))
        except RemoteServiceError as e:
            cause = e.__cause__
            if isinstance(cause, AuthApiError) and (cause.status == 404 or cause.code == "user_not_found"):
                return None
            raise
        if response is None or response.user is None:
            return None
        return _to_identity(response.user)

    async def update_metadata(self, identity_id: str, updates: dict[str, Any]) -> Identity:
        # GoTrue merges user_metadata keys server-side
        response = await self._run(
            lambda: self._admin.update_user_by_id(identity_id, {"user_metadata": updates})
        )
        return _to_identity(response.user)

    async def send_password_reset(self, email: str) -> None:
        options = {"redirect_to": self._password_reset_redirect} if self._password_reset_redirect else None
        await self._run(lambda: self._auth.reset_password_for_email(email, options))

    async def apply_password_reset(self, identity_id: str, new_password: str) -> None:
        await self._run(lambda: self._admin.update_user_by_id(identity_id, {"password": new_password}))

    async def update_email(
        self,
        identity_id: str,
        new_email: str,
        password: Optional[str] = None,
    ) -> Identity:
        def exists(e: AuthApiError) -> Optional[AuthError]:
            if e.code in ("email_exists", "user_already_exists"):
                return IdentityExistsError(new_email)
            return None

        # The new address was proven with our own code, so it is confirmed here
        attributes: dict[str, Any] = {"email": new_email, "email_confirm": True}
        if password:
            attributes["password"] = password
        response = await self._run(
            lambda: self._admin.update_user_by_id(identity_id, attributes),
            exists,
        )
        return _to_identity(response.user)

    async def sign_out(self, access_token: str, scope: str = "global") -> None:
        await self._run(lambda: self._admin.sign_out(access_token, scope))


class InMemoryIdentityProvider:
    """
    Identity provider with in-memory storage.

    Issues HS256 access tokens with the same claims Supabase puts in its
    JWTs, so token decoding can be exercised end to end. Failures can be
    injected per operation with fail_next().
    """

    def __init__(
        self,
        jwt_secret: str = "in-memory-jwt-secret",
        access_token_ttl_seconds: int = 3600,
        clock: Optional[Clock] = None,
        refresh_delay_seconds: float = 0.0,
    ):
        self.jwt_secret = jwt_secret
        self._access_token_ttl = access_token_ttl_seconds
        self._clock = clock or utcnow
        self.refresh_delay_seconds = refresh_delay_seconds

        self._identities: dict[str, Identity] = {}
        self._passwords: dict[str, str] = {}
        self._refresh_tokens: dict[str, str] = {}
        # access token -> refresh token issued with it
        self._grants: dict[str, str] = {}
        self._failures: dict[str, list[Exception]] = {}

        self.refresh_calls = 0
        self.signed_out_tokens: list[str] = []
        self.password_resets_sent: list[str] = []

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call to `operation` raise `error`."""
        self._failures.setdefault(operation, []).append(error)

    def add_identity(
        self,
        email: str,
        password: str,
        email_verified: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Identity:
        """Seed an identity directly, bypassing signup."""
        now = self._clock()
        identity = Identity(
            id=str(uuid.uuid4()),
            email=email,
            email_verified=email_verified,
            email_confirmed_at=now if email_verified else None,
            metadata=dict(metadata or {}),
            created_at=now,
        )
        self._identities[identity.id] = identity
        self._passwords[identity.id] = password
        return identity

    def find_by_email(self, email: str) -> Optional[Identity]:
        wanted = email.strip().lower()
        for identity in self._identities.values():
            if identity.email.lower() == wanted:
                return identity
        return None

    def revoke_refresh_tokens(self, identity_id: str) -> None:
        """Invalidate every refresh token of an identity, as a remote sign-out would."""
        self._refresh_tokens = {
            token: owner for token, owner in self._refresh_tokens.items() if owner != identity_id
        }

    @property
    def identity_count(self) -> int:
        return len(self._identities)

    def _maybe_fail(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _issue_session(self, identity: Identity) -> ProviderSession:
        now = self._clock()
        expires = now + timedelta(seconds=self._access_token_ttl)
        claims = {
            "sub": identity.id,
            "email": identity.email,
            "aud": "authenticated",
            "role": "authenticated",
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "user_metadata": identity.metadata,
            "app_metadata": {"provider": "email"},
            "session_id": str(uuid.uuid4()),
        }
        if identity.email_confirmed_at is not None:
            claims["email_confirmed_at"] = identity.email_confirmed_at.isoformat()
        access_token = jwt.encode(claims, self.jwt_secret, algorithm="HS256")
        refresh_token = secrets.token_urlsafe(24)
        self._refresh_tokens[refresh_token] = identity.id
        self._grants[access_token] = refresh_token
        return ProviderSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(expires.timestamp()),
            identity=identity,
        )

    # ------------------------------------------------------------------
    # IIdentityProvider
    # ------------------------------------------------------------------

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
    ) -> Identity:
        self._maybe_fail("create_identity")
        if self.find_by_email(email) is not None:
            raise IdentityExistsError(email)
        return self.add_identity(email, password, email_verified=True, metadata=metadata)

    async def authenticate(self, email: str, password: str) -> ProviderSession:
        self._maybe_fail("authenticate")
        identity = self.find_by_email(email)
        if identity is None or self._passwords.get(identity.id) != password:
            raise InvalidCredentialsError()
        return self._issue_session(identity)

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        self.refresh_calls += 1
        if self.refresh_delay_seconds:
            await asyncio.sleep(self.refresh_delay_seconds)
        self._maybe_fail("refresh_session")
        identity_id = self._refresh_tokens.pop(refresh_token, None)
        if identity_id is None or identity_id not in self._identities:
            raise SessionExpiredError()
        return self._issue_session(self._identities[identity_id])

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        self._maybe_fail("get_identity")
        return self._identities.get(identity_id)

    async def update_metadata(self, identity_id: str, updates: dict[str, Any]) -> Identity:
        self._maybe_fail("update_metadata")
        identity = self._identities.get(identity_id)
        if identity is None:
            raise RemoteServiceError(SERVICE_NAME, "User not found")
        updated = identity.model_copy(update={"metadata": {**identity.metadata, **updates}})
        self._identities[identity_id] = updated
        return updated

    async def send_password_reset(self, email: str) -> None:
        self._maybe_fail("send_password_reset")
        # Unknown addresses are accepted silently, like the real service
        self.password_resets_sent.append(email)

    async def apply_password_reset(self, identity_id: str, new_password: str) -> None:
        self._maybe_fail("apply_password_reset")
        if identity_id not in self._identities:
            raise RemoteServiceError(SERVICE_NAME, "User not found")
        self._passwords[identity_id] = new_password

    async def update_email(
        self,
        identity_id: str,
        new_email: str,
        password: Optional[str] = None,
    ) -> Identity:
        self._maybe_fail("update_email")
        identity = self._identities.get(identity_id)
        if identity is None:
            raise RemoteServiceError(SERVICE_NAME, "User not found")
        other = self.find_by_email(new_email)
        if other is not None and other.id != identity_id:
            raise IdentityExistsError(new_email)
        updated = identity.model_copy(
            update={"email": new_email, "email_verified": True, "email_confirmed_at": self._clock()}
        )
        self._identities[identity_id] = updated
        if password:
            self._passwords[identity_id] = password
        return updated

    async def sign_out(self, access_token: str, scope: str = "global") -> None:
        self._maybe_fail("sign_out")
        self.signed_out_tokens.append(access_token)
        if scope == "local":
            self._refresh_tokens.pop(self._grants.pop(access_token, ""), None)
            return
        try:
            claims = jwt.decode(access_token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return
        self.revoke_refresh_tokens(claims.get("sub", ""))


# Module-level instance getter
_provider_instance: Optional[IIdentityProvider] = None


def get_identity_provider() -> IIdentityProvider:
    """Get the Supabase identity provider singleton."""
    global _provider_instance
    if _provider_instance is None:
        settings = get_settings()
        _provider_instance = SupabaseIdentityProvider(
            auth_client=get_supabase_anon_client(),
            admin_client=get_supabase_client(),
            password_reset_redirect=f"{settings.frontend_url}/auth/reset-password",
        )
    return _provider_instance


def reset_identity_provider() -> None:
    """Reset the identity provider singleton (for testing)."""
    global _provider_instance
    _provider_instance = None

"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules:
a controllable clock, access-token factories and an AuthService wired to the
in-memory adapters.
"""

import pytest
from datetime import datetime, timezone, timedelta
from typing import Optional
import jwt  # PyJWT

from shared.config import get_settings
from shared.database import reset_client_cache
from modules.auth.service import AuthService, reset_auth_service
from modules.identity.service import InMemoryIdentityProvider, reset_identity_provider
from modules.onboarding.local_store import InMemoryFlagStore
from modules.onboarding.service import OnboardingReconciler
from modules.profiles.repository import InMemoryProfileStore, InMemoryTravelPreferences
from modules.sessions.service import SessionManager
from modules.verification.mailer import LoggingCodeMailer
from modules.verification.repository import InMemoryVerificationCodeStore
from modules.verification.service import VerificationCodeService, reset_verification_service


# Test JWT secret (only for testing)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"

TEST_PASSWORD = "correct-horse-battery"
SIGNUP_CODE = "482913"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FixedCodes:
    """Code generator that hands out a queue of codes, then repeats the last one."""

    def __init__(self, *codes: str):
        self._codes = list(codes)
        self._last = codes[-1]

    def __call__(self) -> str:
        if self._codes:
            self._last = self._codes.pop(0)
        return self._last


def create_test_token(
    user_id: str = "test-user-123",
    email: str = "test@example.com",
    expired: bool = False,
    email_verified: bool = True,
    secret: str = TEST_JWT_SECRET,
) -> str:
    """
    Create a Supabase-shaped access token.

    Args:
        user_id: Identity ID to put in `sub`
        email: Email claim
        expired: If True, the token expired an hour ago
        email_verified: Whether to include email_confirmed_at
        secret: Signing secret

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(exp.timestamp()),
        "iat": int(now.timestamp()),
        "user_metadata": {"first_name": "Ada"},
    }
    if email_verified:
        payload["email_confirmed_at"] = now.isoformat()
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset module singletons and cached settings around each test."""
    get_settings.cache_clear()
    reset_auth_service()
    reset_identity_provider()
    reset_verification_service()
    reset_client_cache()
    yield
    reset_auth_service()
    reset_identity_provider()
    reset_verification_service()
    reset_client_cache()
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def identity_provider(clock) -> InMemoryIdentityProvider:
    return InMemoryIdentityProvider(jwt_secret=TEST_JWT_SECRET, clock=clock)


@pytest.fixture
def code_store() -> InMemoryVerificationCodeStore:
    return InMemoryVerificationCodeStore()


@pytest.fixture
def mailer() -> LoggingCodeMailer:
    return LoggingCodeMailer()


@pytest.fixture
def verification_service(code_store, mailer, clock) -> VerificationCodeService:
    return VerificationCodeService(
        code_store,
        mailer,
        ttl_minutes=15,
        timeout_seconds=0.5,
        clock=clock,
        code_generator=FixedCodes(SIGNUP_CODE, "739201", "105834"),
    )


@pytest.fixture
def profile_store(clock) -> InMemoryProfileStore:
    return InMemoryProfileStore(clock=clock)


@pytest.fixture
def travel_preferences() -> InMemoryTravelPreferences:
    return InMemoryTravelPreferences()


@pytest.fixture
def local_store() -> InMemoryFlagStore:
    return InMemoryFlagStore()


@pytest.fixture
def reconciler(identity_provider, profile_store, local_store, clock) -> OnboardingReconciler:
    return OnboardingReconciler(identity_provider, profile_store, local_store, clock=clock)


@pytest.fixture
def session_manager(identity_provider, clock) -> SessionManager:
    return SessionManager(identity_provider, refresh_leeway_seconds=60, clock=clock)


@pytest.fixture
def auth_service(
    identity_provider,
    session_manager,
    verification_service,
    profile_store,
    travel_preferences,
    reconciler,
    clock,
) -> AuthService:
    """AuthService wired entirely to in-memory adapters."""
    return AuthService(
        identity_provider=identity_provider,
        session_manager=session_manager,
        verification_service=verification_service,
        profile_store=profile_store,
        travel_preferences=travel_preferences,
        reconciler=reconciler,
        clock=clock,
    )


@pytest.fixture
def verified_identity(identity_provider):
    """A verified identity that has not finished onboarding."""
    return identity_provider.add_identity(
        "traveler@example.com",
        TEST_PASSWORD,
        email_verified=True,
        metadata={"first_name": "Ada", "has_completed_onboarding": False},
    )

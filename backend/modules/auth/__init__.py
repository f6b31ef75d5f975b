"""
Authentication module.

Orchestrates the authentication and registration lifecycle: two-phase
signup, login gated on email verification, logout, registration status,
onboarding completion and credential changes.

Public API:
- IAuthService: Interface for the UI layer
- AuthService: Implementation wired by constructor injection
- AuthResult, AuthFailure: Result shape of every operation
- SignupState, RegistrationStatus: State machine and routing enums
- Signup exceptions: InvalidSignupStateError, FlowSupersededError
"""

from .interfaces import IAuthService
from .models import (
    AuthResult,
    AuthFailure,
    SignupState,
    RegistrationStatus,
    ProfileFields,
    PendingSignup,
    SignupProgress,
    SignupOutcome,
    RegistrationReport,
    PasswordResetRequest,
)
from .exceptions import InvalidSignupStateError, FlowSupersededError
from .service import AuthService, build_auth_service, get_auth_service, reset_auth_service

__all__ = [
    # Interface
    "IAuthService",
    # Implementation
    "AuthService",
    "build_auth_service",
    "get_auth_service",
    "reset_auth_service",
    # Models
    "AuthResult",
    "AuthFailure",
    "SignupState",
    "RegistrationStatus",
    "ProfileFields",
    "PendingSignup",
    "SignupProgress",
    "SignupOutcome",
    "RegistrationReport",
    "PasswordResetRequest",
    # Exceptions
    "InvalidSignupStateError",
    "FlowSupersededError",
]

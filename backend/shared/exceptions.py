"""
Base exception classes for the Planora auth client.

Each module should define its own exceptions that inherit from these bases.
This enables consistent error handling across the application.

The auth error taxonomy lives here too: every adapter (identity, profiles,
verification, sessions) raises it, and the auth service turns it into typed
AuthResult failures so the UI can render specific remediation.
"""

from enum import Enum
from typing import Optional, Any


class PlanoraError(Exception):
    """
    Base exception for all Planora errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for result payloads."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PlanoraError):
    """Input validation failed."""

    pass


class AuthenticationError(PlanoraError):
    """Authentication failed (invalid or missing credentials)."""

    pass


class ExternalServiceError(PlanoraError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service


# =============================================================================
# Auth error taxonomy
# =============================================================================


class AuthErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_UNVERIFIED = "EMAIL_UNVERIFIED"
    CODE_INVALID = "CODE_INVALID"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_ALREADY_USED = "CODE_ALREADY_USED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    NETWORK_UNAVAILABLE = "NETWORK_UNAVAILABLE"
    REMOTE_SERVICE_ERROR = "REMOTE_SERVICE_ERROR"
    PARTIAL_WRITE_FAILURE = "PARTIAL_WRITE_FAILURE"
    VERIFICATION_TIMEOUT = "VERIFICATION_TIMEOUT"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATE = "INVALID_STATE"
    FLOW_SUPERSEDED = "FLOW_SUPERSEDED"
    IDENTITY_EXISTS = "IDENTITY_EXISTS"


# Codes for which the UI should offer "send a new code"
RESENDABLE_CODES = frozenset({AuthErrorCode.CODE_EXPIRED, AuthErrorCode.CODE_ALREADY_USED})


class AuthError(AuthenticationError):
    """Base exception for every auth subsystem failure."""

    error_code: AuthErrorCode = AuthErrorCode.REMOTE_SERVICE_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, code=self.error_code.value, details=details)


class InvalidCredentialsError(AuthError):
    """Raised when an email/password pair is rejected."""

    error_code = AuthErrorCode.INVALID_CREDENTIALS

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class EmailUnverifiedError(AuthError):
    """Raised when login is attempted for an identity whose email is not verified."""

    error_code = AuthErrorCode.EMAIL_UNVERIFIED

    def __init__(self, email: str):
        super().__init__(
            "Email address has not been verified",
            details={"email": email},
        )


class CodeInvalidError(AuthError):
    """Raised when a verification code does not match any live code."""

    error_code = AuthErrorCode.CODE_INVALID

    def __init__(self, message: str = "Invalid verification code. Please check and try again."):
        super().__init__(message)


class CodeExpiredError(AuthError):
    """Raised when a verification code is past its expiry."""

    error_code = AuthErrorCode.CODE_EXPIRED

    def __init__(self, message: str = "Verification code has expired. Please request a new one."):
        super().__init__(message)


class CodeAlreadyUsedError(AuthError):
    """Raised when a verification code has already been consumed."""

    error_code = AuthErrorCode.CODE_ALREADY_USED

    def __init__(self, message: str = "This verification code has already been used."):
        super().__init__(message)


class SessionExpiredError(AuthError):
    """Raised when there is no usable session (missing, revoked or expired refresh token)."""

    error_code = AuthErrorCode.SESSION_EXPIRED

    def __init__(self, message: str = "Your session has expired. Please log in again."):
        super().__init__(message)


class NetworkUnavailableError(AuthError):
    """Raised when a remote service cannot be reached."""

    error_code = AuthErrorCode.NETWORK_UNAVAILABLE

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(
            message or f"Could not reach {service}. Check your connection and try again.",
            details={"service": service},
        )
        self.service = service


class RemoteServiceError(AuthError):
    """Catch-all for unexpected backend failures."""

    error_code = AuthErrorCode.REMOTE_SERVICE_ERROR

    def __init__(self, service: str, message: str = "The service returned an unexpected error"):
        super().__init__(message, details={"service": service})
        self.service = service


class PartialWriteFailureError(AuthError):
    """
    Raised (or recorded) when a replicated write reached only some stores.

    Onboarding-status propagation logs this rather than surfacing it; the
    reconciler repairs the lagging stores later.
    """

    error_code = AuthErrorCode.PARTIAL_WRITE_FAILURE

    def __init__(self, failed_stores: list[str]):
        super().__init__(
            f"Write did not reach: {', '.join(failed_stores)}",
            details={"failed_stores": failed_stores},
        )
        self.failed_stores = failed_stores


class VerificationTimeoutError(AuthError):
    """Raised when issuing or checking a code takes longer than allowed."""

    error_code = AuthErrorCode.VERIFICATION_TIMEOUT

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            "The verification service is taking too long. Please try again.",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


class InvalidInputError(AuthError):
    """Raised when caller-supplied values fail validation."""

    error_code = AuthErrorCode.INVALID_INPUT

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)


class IdentityExistsError(AuthError):
    """Raised when signup completes for an email that already has an identity."""

    error_code = AuthErrorCode.IDENTITY_EXISTS

    def __init__(self, email: str):
        super().__init__(
            "An account with this email already exists. Please log in instead.",
            details={"email": email},
        )

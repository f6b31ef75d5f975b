"""
Verification code service implementation.

Issues and consumes single-use numeric codes bound to (email, purpose).
Every remote step is bounded by a timeout that surfaces as
VerificationTimeoutError, so callers can tell "slow" apart from "wrong code".
"""

import asyncio
import logging
import secrets
from datetime import timedelta
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from shared.clock import Clock, utcnow
from shared.config import get_settings
from shared.database import get_supabase_client
from shared.exceptions import (
    AuthError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeInvalidError,
    NetworkUnavailableError,
    PlanoraError,
    RemoteServiceError,
    VerificationTimeoutError,
)

from .interfaces import ICodeMailer, ICodeStore, IVerificationCodeService
from .mailer import LoggingCodeMailer, ResendCodeMailer
from .models import CodeDispatch, CodePurpose, VerificationCode, VerificationReceipt
from .repository import VerificationCodeRepository

logger = logging.getLogger(__name__)

SERVICE_NAME = "verification"

T = TypeVar("T")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def numeric_code_generator(length: int) -> Callable[[], str]:
    """Random codes of `length` digits with no leading zero (100000-999999 for 6)."""
    lower = 10 ** (length - 1)

    def generate() -> str:
        return str(lower + secrets.randbelow(9 * lower))

    return generate


class VerificationCodeService:
    """
    Issues and verifies single-use codes.

    Issuing never reveals whether the address belongs to an account:
    the result is always `sent`, and any failure is reported generically.
    """

    def __init__(
        self,
        store: ICodeStore,
        mailer: ICodeMailer,
        code_length: int = 6,
        ttl_minutes: int = 15,
        timeout_seconds: float = 10.0,
        clock: Optional[Clock] = None,
        code_generator: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the verification service.

        Args:
            store: Where codes are persisted
            mailer: How codes reach the user
            code_length: Number of digits per code
            ttl_minutes: Lifetime of a code
            timeout_seconds: Bound on each remote step
            clock: Time source (defaults to UTC wall clock)
            code_generator: Override for code generation
        """
        self._store = store
        self._mailer = mailer
        self._code_length = code_length
        self._ttl_minutes = ttl_minutes
        self._timeout = timeout_seconds
        self._clock = clock or utcnow
        self._generate = code_generator or numeric_code_generator(code_length)

    async def _bounded(self, operation: str, step: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(step, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Verification {operation} timed out after {self._timeout}s")
            raise VerificationTimeoutError(operation, self._timeout)

    async def issue(self, email: str, purpose: CodePurpose) -> CodeDispatch:
        target = normalize_email(email)
        now = self._clock()
        code = VerificationCode(
            target=target,
            purpose=purpose,
            code=self._generate(),
            issued_at=now,
            expires_at=now + timedelta(minutes=self._ttl_minutes),
        )

        try:
            revoked = await self._bounded("issue", self._store.revoke_outstanding(target, purpose))
            if revoked:
                logger.debug(f"Revoked {revoked} outstanding {purpose.value} code(s)")
            await self._bounded("issue", self._store.insert(code))
            await self._bounded(
                "issue",
                self._mailer.send_code(target, code.code, purpose, self._ttl_minutes),
            )
        except (VerificationTimeoutError, NetworkUnavailableError):
            raise
        except AuthError as e:
            raise RemoteServiceError(SERVICE_NAME, "Could not send a verification code") from e
        except (PlanoraError, httpx.HTTPError) as e:
            logger.warning(f"Verification code delivery failed: {e}")
            raise RemoteServiceError(SERVICE_NAME, "Could not send a verification code") from e

        logger.info(f"Issued {purpose.value} code")
        return CodeDispatch(expires_at=code.expires_at)

    async def verify(self, email: str, purpose: CodePurpose, code: str) -> VerificationReceipt:
        target = normalize_email(email)
        value = (code or "").strip()
        if len(value) != self._code_length or not value.isdigit():
            raise CodeInvalidError()

        stored = await self._bounded("verify", self._store.find_latest(target, purpose, value))
        if stored is None:
            raise CodeInvalidError()
        if stored.used:
            raise CodeAlreadyUsedError()
        if stored.is_expired(self._clock()):
            raise CodeExpiredError()

        consumed = await self._bounded("verify", self._store.mark_used(stored.id))
        if not consumed:
            # Another verification consumed it between our read and our update
            raise CodeAlreadyUsedError()

        logger.info(f"Consumed {purpose.value} code")
        return VerificationReceipt(target=target, purpose=purpose)


def build_code_mailer() -> ICodeMailer:
    """Resend when an API key is configured, otherwise the logging mailer."""
    settings = get_settings()
    if settings.resend_api_key:
        return ResendCodeMailer(settings.resend_api_key, settings.email_from)
    logger.warning("RESEND_API_KEY not set; verification codes will only be logged")
    return LoggingCodeMailer()


# Module-level instance getter
_service_instance: Optional[IVerificationCodeService] = None


def get_verification_service() -> IVerificationCodeService:
    """Get the verification service singleton."""
    global _service_instance
    if _service_instance is None:
        settings = get_settings()
        _service_instance = VerificationCodeService(
            store=VerificationCodeRepository(get_supabase_client()),
            mailer=build_code_mailer(),
            code_length=settings.verification_code_length,
            ttl_minutes=settings.verification_code_ttl_minutes,
            timeout_seconds=settings.verification_timeout_seconds,
        )
    return _service_instance


def reset_verification_service() -> None:
    """Reset the verification service singleton (for testing)."""
    global _service_instance
    _service_instance = None

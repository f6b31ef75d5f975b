"""
Verification module interfaces.

IVerificationCodeService is what the auth flows depend on. ICodeStore and
ICodeMailer are the two remote collaborators behind it.
"""

from typing import Optional, Protocol, runtime_checkable

from .models import CodeDispatch, CodePurpose, VerificationCode, VerificationReceipt


@runtime_checkable
class IVerificationCodeService(Protocol):
    """Interface for issuing and consuming verification codes."""

    async def issue(self, email: str, purpose: CodePurpose) -> CodeDispatch:
        """
        Issue a fresh code for (email, purpose) and deliver it.

        Outstanding codes for the same pair stop being accepted.

        Raises:
            RemoteServiceError: Storage or delivery failed
            VerificationTimeoutError: A remote step took too long
        """
        ...

    async def verify(self, email: str, purpose: CodePurpose, code: str) -> VerificationReceipt:
        """
        Check and consume a code.

        Raises:
            CodeInvalidError: No live code matches
            CodeExpiredError: The matching code is past expiry
            CodeAlreadyUsedError: The matching code was already consumed
            VerificationTimeoutError: A remote step took too long
        """
        ...


@runtime_checkable
class ICodeStore(Protocol):
    """Persistence for verification codes."""

    async def insert(self, code: VerificationCode) -> VerificationCode:
        """Store a new code and return it with its ID."""
        ...

    async def find_latest(
        self,
        target: str,
        purpose: CodePurpose,
        code: str,
    ) -> Optional[VerificationCode]:
        """Most recently issued code with this exact value for (target, purpose)."""
        ...

    async def mark_used(self, code_id: str) -> bool:
        """
        Flip a code from unused to used.

        Returns:
            True if this call consumed it, False if it was already used
        """
        ...

    async def revoke_outstanding(self, target: str, purpose: CodePurpose) -> int:
        """Delete every unused code for (target, purpose). Returns how many."""
        ...


@runtime_checkable
class ICodeMailer(Protocol):
    """Delivery of codes to the user's inbox."""

    async def send_code(self, email: str, code: str, purpose: CodePurpose, expires_minutes: int) -> None:
        """Send `code` to `email`."""
        ...

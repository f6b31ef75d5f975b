"""
Verification module.

Single-use email codes for two-phase signup and email changes.

Public API:
- IVerificationCodeService, ICodeStore, ICodeMailer: Interfaces
- VerificationCodeService: Issue / verify implementation
- VerificationCodeRepository, InMemoryVerificationCodeStore: Code stores
- ResendCodeMailer, LoggingCodeMailer: Code delivery
"""

from .interfaces import IVerificationCodeService, ICodeStore, ICodeMailer
from .models import CodePurpose, VerificationCode, CodeDispatch, VerificationReceipt
from .repository import VerificationCodeRepository, InMemoryVerificationCodeStore
from .mailer import ResendCodeMailer, LoggingCodeMailer
from .service import (
    VerificationCodeService,
    normalize_email,
    numeric_code_generator,
    get_verification_service,
    reset_verification_service,
)

__all__ = [
    # Interfaces
    "IVerificationCodeService",
    "ICodeStore",
    "ICodeMailer",
    # Models
    "CodePurpose",
    "VerificationCode",
    "CodeDispatch",
    "VerificationReceipt",
    # Implementations
    "VerificationCodeService",
    "VerificationCodeRepository",
    "InMemoryVerificationCodeStore",
    "ResendCodeMailer",
    "LoggingCodeMailer",
    "normalize_email",
    "numeric_code_generator",
    "get_verification_service",
    "reset_verification_service",
]

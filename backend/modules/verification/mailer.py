"""
Verification code delivery.

ResendCodeMailer sends the code through the Resend HTTP API.
LoggingCodeMailer writes it to the log instead, for local development
where no email provider is configured.
"""

import logging
from typing import Optional

import httpx

from shared.exceptions import ExternalServiceError

from .models import CodePurpose

logger = logging.getLogger(__name__)

SUBJECTS = {
    CodePurpose.SIGNUP: "Your Planora Verification Code",
    CodePurpose.EMAIL_CHANGE: "Confirm your new Planora email address",
}


def render_code_email(code: str, expires_minutes: int) -> str:
    """HTML body of the verification email."""
    return f"""
      <div style="font-family: Arial, sans-serif; color: #333;">
        <h2 style="color: #4A4A4A;">Welcome to Planora!</h2>
        <p>Your verification code is:</p>
        <p style="font-size: 24px; font-weight: bold; letter-spacing: 2px; color: #6A4CFF;">{code}</p>
        <p>This code will expire in {expires_minutes} minutes.</p>
        <p>If you did not request this, please ignore this email.</p>
      </div>
    """


class ResendCodeMailer:
    """Sends verification codes with the Resend email API."""

    RESEND_API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: str,
        sender: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the mailer.

        Args:
            api_key: Resend API key
            sender: From header, e.g. "Planora <noreply@getplanora.app>"
            client: Optional shared AsyncClient (a new one is opened per send otherwise)
            timeout: Request timeout in seconds
        """
        self._api_key = api_key
        self._sender = sender
        self._client = client
        self._timeout = timeout

    async def send_code(self, email: str, code: str, purpose: CodePurpose, expires_minutes: int) -> None:
        if not self._api_key:
            # Never tell the user a code was sent when it cannot be
            raise ExternalServiceError("Email service is not configured", service="resend")

        payload = {
            "from": self._sender,
            "to": [email],
            "subject": SUBJECTS[purpose],
            "html": render_code_email(code, expires_minutes),
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        if self._client is not None:
            response = await self._client.post(
                self.RESEND_API_URL, json=payload, headers=headers, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.RESEND_API_URL, json=payload, headers=headers, timeout=self._timeout
                )
        response.raise_for_status()
        logger.info(f"Verification email ({purpose.value}) sent")


class LoggingCodeMailer:
    """Development mailer that logs codes instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, str, CodePurpose]] = []

    async def send_code(self, email: str, code: str, purpose: CodePurpose, expires_minutes: int) -> None:
        self.sent.append((email, code, purpose))
        logger.warning(
            f"[dev mailer] {purpose.value} code for {email}: {code} (expires in {expires_minutes} min)"
        )

    def last_code_for(self, email: str) -> Optional[str]:
        for sent_to, code, _ in reversed(self.sent):
            if sent_to == email:
                return code
        return None

"""
Access token decoding.

Supabase access tokens are HS256 JWTs signed with the project's JWT
secret. The client only reads them; it never mints its own.
"""

from datetime import datetime
from typing import Optional

import jwt
from pydantic import BaseModel, Field

from shared.exceptions import SessionExpiredError

from .models import epoch_to_datetime


class AccessTokenClaims(BaseModel):
    """
    Decoded access token payload.

    This matches the structure of Supabase Auth JWTs.
    """

    sub: str = Field(..., description="Subject (identity ID)")
    email: Optional[str] = Field(None, description="Identity email")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    aud: str = Field(default="authenticated", description="Audience")
    role: str = Field(default="authenticated", description="Role")
    email_confirmed_at: Optional[str] = Field(None, description="When the email was confirmed")

    # Supabase-specific claims
    app_metadata: dict = Field(default_factory=dict)
    user_metadata: dict = Field(default_factory=dict)

    @property
    def expires_at(self) -> datetime:
        return epoch_to_datetime(self.exp)

    @property
    def issued_at(self) -> datetime:
        return epoch_to_datetime(self.iat)


def decode_access_token(token: str, secret: Optional[str] = None) -> AccessTokenClaims:
    """
    Decode an access token into its claims.

    With a secret the signature and the `authenticated` audience are
    verified. Without one the payload is read unverified, which is only
    used to learn the expiry of a token the provider just handed us.

    Raises:
        SessionExpiredError: If the token is expired or malformed
    """
    if not token:
        raise SessionExpiredError("Missing access token")

    try:
        if secret:
            payload = jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                audience="authenticated",
            )
        else:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
            )
    except jwt.ExpiredSignatureError:
        raise SessionExpiredError()
    except jwt.InvalidTokenError as e:
        raise SessionExpiredError(f"Invalid access token: {e}")

    return AccessTokenClaims(**payload)

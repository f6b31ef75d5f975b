"""
Sessions module.

Owns the one authenticated session of the client.

Public API:
- SessionManager: establish / refresh / invalidate / subscribe
- Session, SessionEvent, SessionChange: Models
- AccessTokenClaims, decode_access_token: Access token decoding
"""

from .models import Session, SessionEvent, SessionChange
from .tokens import AccessTokenClaims, decode_access_token
from .service import SessionManager, SessionObserver

__all__ = [
    "SessionManager",
    "SessionObserver",
    "Session",
    "SessionEvent",
    "SessionChange",
    "AccessTokenClaims",
    "decode_access_token",
]

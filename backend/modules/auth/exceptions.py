"""
Authentication module exceptions.

Errors raised only by the signup state machine. The shared taxonomy
(credentials, codes, sessions, remote failures) lives in shared.exceptions.
"""

from shared.exceptions import AuthError, AuthErrorCode


class InvalidSignupStateError(AuthError):
    """Raised when a signup operation is called from a state that does not allow it."""

    error_code = AuthErrorCode.INVALID_STATE

    def __init__(self, operation: str, state: str):
        super().__init__(
            f"Cannot {operation} while signup is in state {state}",
            details={"operation": operation, "state": state},
        )


class FlowSupersededError(AuthError):
    """Raised when a late result belongs to a signup flow that was abandoned or replaced."""

    error_code = AuthErrorCode.FLOW_SUPERSEDED

    def __init__(self):
        super().__init__("This signup attempt was replaced by a newer one")



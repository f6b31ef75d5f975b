"""
Session manager implementation.

Holds the client's one authenticated session, refreshes it silently when it
nears expiry and tells observers about every change.

Only three things ever write the cached session: establish(), the single
in-flight refresh task and invalidate(). Each of them bumps a generation
counter, so a refresh that started before an invalidation cannot bring the
old session back.
"""

import asyncio
import logging
from typing import Callable, Optional

from shared.clock import Clock, utcnow
from shared.exceptions import SessionExpiredError
from modules.identity.interfaces import IIdentityProvider
from modules.identity.models import ProviderSession

from .models import Session, SessionChange, SessionEvent, epoch_to_datetime
from .tokens import decode_access_token

logger = logging.getLogger(__name__)

SessionObserver = Callable[[SessionChange], None]


class SessionManager:
    """
    Owner of the cached Session.

    Refresh is single-flight: concurrent callers share one task and all
    receive its outcome. A rejected refresh token ends the session; a
    network failure propagates and leaves the session in place so the
    caller can retry.
    """

    def __init__(
        self,
        identity_provider: IIdentityProvider,
        refresh_leeway_seconds: int = 60,
        clock: Optional[Clock] = None,
        jwt_secret: Optional[str] = None,
    ):
        """
        Initialize the session manager.

        Args:
            identity_provider: Provider used to exchange refresh tokens
            refresh_leeway_seconds: Refresh when the token expires within this window
            clock: Time source (defaults to UTC wall clock)
            jwt_secret: If set, access tokens decoded for their expiry are verified
        """
        self._provider = identity_provider
        self._leeway = refresh_leeway_seconds
        self._clock = clock or utcnow
        self._jwt_secret = jwt_secret or None

        self._session: Optional[Session] = None
        self._generation = 0
        self._refresh_task: Optional[asyncio.Future] = None
        self._observers: list[SessionObserver] = []

    @property
    def current(self) -> Optional[Session]:
        """The cached session as-is, without any refresh."""
        return self._session

    def _build(self, provided: ProviderSession) -> Session:
        if provided.expires_at is not None:
            expires_at = epoch_to_datetime(provided.expires_at)
        else:
            expires_at = decode_access_token(provided.access_token, self._jwt_secret).expires_at
        return Session.from_provider(provided, expires_at)

    def establish(self, provided: ProviderSession) -> Session:
        """Install the session produced by a successful login."""
        session = self._build(provided)
        self._generation += 1
        self._refresh_task = None
        self._session = session
        logger.info(f"Session established for identity {session.identity_id}")
        self._notify(SessionChange(event=SessionEvent.SIGNED_IN, session=session))
        return session

    async def get_current_session(self) -> Optional[Session]:
        """
        Return a usable session, refreshing it first if it is about to expire.

        Returns None when there is no session or the refresh token was
        rejected. Network errors from the refresh propagate.
        """
        session = self._session
        if session is None:
            return None
        if not session.expires_within(self._clock(), self._leeway):
            return session
        try:
            return await self.refresh()
        except SessionExpiredError:
            return None

    async def refresh(self) -> Session:
        """
        Exchange the refresh token for a new session.

        Raises:
            SessionExpiredError: No session, or the refresh token was rejected
            NetworkUnavailableError: The identity service could not be reached
        """
        if self._refresh_task is None or self._refresh_task.done():
            session = self._session
            if session is None:
                raise SessionExpiredError("No active session to refresh")
            self._refresh_task = asyncio.ensure_future(
                self._run_refresh(session, self._generation)
            )
        return await asyncio.shield(self._refresh_task)

    async def _run_refresh(self, session: Session, generation: int) -> Session:
        logger.debug(f"Refreshing session for identity {session.identity_id}")
        try:
            provided = await self._provider.refresh_session(session.refresh_token)
        except SessionExpiredError:
            if generation == self._generation:
                self.invalidate("refresh_rejected")
            raise

        if generation != self._generation:
            logger.info("Discarding refresh result for a session that has since changed")
            if self._session is None:
                raise SessionExpiredError()
            return self._session

        refreshed = self._build(provided)
        self._session = refreshed
        self._notify(SessionChange(event=SessionEvent.TOKEN_REFRESHED, session=refreshed))
        return refreshed

    def invalidate(self, reason: str = "signed_out") -> bool:
        """
        Clear the session and notify observers.

        Returns:
            True if a session was cleared, False if there was none
        """
        if self._session is None:
            return False
        identity_id = self._session.identity_id
        self._session = None
        self._generation += 1
        self._refresh_task = None
        logger.info(f"Session for identity {identity_id} invalidated ({reason})")
        self._notify(SessionChange(event=SessionEvent.SIGNED_OUT, reason=reason))
        return True

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        """
        Register an observer for session changes.

        Observers are called synchronously, before the mutating call returns.

        Returns:
            A function that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, change: SessionChange) -> None:
        for observer in list(self._observers):
            try:
                observer(change)
            except Exception:
                logger.exception(f"Session observer failed handling {change.event.value}")

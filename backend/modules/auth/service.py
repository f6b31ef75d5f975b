"""
Authentication service implementation.

Drives the two-phase signup state machine, login / logout, registration
status and credential changes. Collaborators are passed in through the
constructor; get_auth_service() wires the Supabase-backed ones.

Every public operation returns an AuthResult. Members of the auth error
taxonomy become failures; anything else is a bug and propagates.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import EmailStr, SecretStr, TypeAdapter, ValidationError as PydanticValidationError

from shared.clock import Clock, utcnow
from shared.config import Settings, get_settings
from shared.database import get_supabase_client
from shared.exceptions import (
    AuthError,
    EmailUnverifiedError,
    IdentityExistsError,
    InvalidInputError,
    NetworkUnavailableError,
    SessionExpiredError,
)
from modules.identity.interfaces import IIdentityProvider
from modules.identity.models import Identity
from modules.identity.service import get_identity_provider
from modules.onboarding.local_store import JsonFileFlagStore
from modules.onboarding.models import OnboardingWriteReport, ReconcileReport
from modules.onboarding.service import OnboardingReconciler
from modules.profiles.interfaces import IProfileStore, ITravelPreferencesLookup
from modules.profiles.models import Profile
from modules.profiles.repository import ProfileRepository, TravelPreferencesRepository
from modules.sessions.models import Session, SessionChange, SessionEvent
from modules.sessions.service import SessionManager
from modules.verification.interfaces import IVerificationCodeService
from modules.verification.models import CodeDispatch, CodePurpose
from modules.verification.service import get_verification_service, normalize_email

from .exceptions import FlowSupersededError, InvalidSignupStateError
from .models import (
    AuthFailure,
    AuthResult,
    PasswordResetRequest,
    PendingSignup,
    ProfileFields,
    RegistrationReport,
    RegistrationStatus,
    SignupOutcome,
    SignupProgress,
    SignupState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_email_adapter = TypeAdapter(EmailStr)

# States from which a signup can be abandoned
_ABANDONABLE = {
    SignupState.DETAILS_COLLECTED,
    SignupState.CODE_ISSUED,
    SignupState.VERIFIED,
    SignupState.ACCOUNT_CREATED,
}


def classify_registration(
    profile: Optional[Profile],
    has_travel_preferences: bool,
) -> RegistrationStatus:
    """
    Conservative routing decision.

    Returning only when every completion signal agrees. New when no
    completion signal exists at all. Anything in between is incomplete.
    """
    onboarded = profile is not None and profile.has_completed_onboarding
    if onboarded and has_travel_preferences:
        return RegistrationStatus.RETURNING_USER
    if not onboarded and not has_travel_preferences:
        return RegistrationStatus.NEW_USER
    return RegistrationStatus.INCOMPLETE_ONBOARDING


class AuthService:
    """
    Implementation of the auth orchestrator.

    Owns the PendingSignup and the signup state. Each signup flow carries
    an identifier; continuations check it after every remote call and drop
    results that belong to a flow that has since been replaced or abandoned.
    """

    def __init__(
        self,
        identity_provider: IIdentityProvider,
        session_manager: SessionManager,
        verification_service: IVerificationCodeService,
        profile_store: IProfileStore,
        travel_preferences: ITravelPreferencesLookup,
        reconciler: OnboardingReconciler,
        password_min_length: int = 8,
        reconcile_on_login: bool = True,
        clock: Optional[Clock] = None,
    ):
        self._identity = identity_provider
        self._sessions = session_manager
        self._verification = verification_service
        self._profiles = profile_store
        self._travel = travel_preferences
        self._reconciler = reconciler
        self._password_min_length = password_min_length
        self._reconcile_on_login = reconcile_on_login
        self._clock = clock or utcnow

        self._state = SignupState.IDLE
        self._pending: Optional[PendingSignup] = None
        self._flow_id = 0

        self._sessions.subscribe(self._on_session_change)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SignupState:
        return self._state

    @property
    def pending_signup(self) -> Optional[PendingSignup]:
        return self._pending

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    def _on_session_change(self, change: SessionChange) -> None:
        if change.event == SessionEvent.SIGNED_OUT and self._state == SignupState.LOGGED_IN:
            self._state = SignupState.IDLE

    def _new_flow(self) -> int:
        self._flow_id += 1
        return self._flow_id

    def _ensure_current(self, flow_id: int) -> None:
        if flow_id != self._flow_id:
            logger.info(f"Discarding result of superseded signup flow {flow_id}")
            raise FlowSupersededError()

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> AuthResult[T]:
        """Run an operation, turning taxonomy errors into a failed AuthResult."""
        try:
            return AuthResult.success(await call())
        except AuthError as e:
            if isinstance(e, SessionExpiredError):
                self._sessions.invalidate("session_expired")
            logger.info(f"{operation} failed: {e.code}")
            return AuthResult.failure(e)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_email(self, email: str) -> str:
        normalized = normalize_email(email or "")
        try:
            _email_adapter.validate_python(normalized)
        except PydanticValidationError:
            raise InvalidInputError("Please enter a valid email address", field="email")
        return normalized

    def _validate_password(self, password: str, field: str = "password") -> None:
        if not password or len(password) < self._password_min_length:
            raise InvalidInputError(
                f"Password must be at least {self._password_min_length} characters",
                field=field,
            )

    async def _require_session(self) -> Session:
        session = await self._sessions.get_current_session()
        if session is None:
            raise SessionExpiredError()
        return session

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    async def collect_signup_details(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupProgress]:
        return await self._run(
            "collect_signup_details",
            lambda: self._collect_signup_details(email, password, profile_fields),
        )

    async def _collect_signup_details(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields],
    ) -> SignupProgress:
        if self._state == SignupState.LOGGED_IN:
            raise InvalidSignupStateError("start a signup", self._state.value)
        normalized = self._validate_email(email)
        self._validate_password(password)

        # Going back to the details step abandons any code already sent
        self._pending = PendingSignup(
            flow_id=self._new_flow(),
            email=normalized,
            password=password,
            profile_fields=profile_fields or ProfileFields(),
            created_at=self._clock(),
        )
        self._state = SignupState.DETAILS_COLLECTED
        return SignupProgress(state=self._state, email=normalized)

    async def initiate_signup(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupProgress]:
        return await self._run(
            "initiate_signup",
            lambda: self._initiate_signup(email, password, profile_fields),
        )

    async def _initiate_signup(
        self,
        email: str,
        password: str,
        profile_fields: Optional[ProfileFields],
    ) -> SignupProgress:
        if self._state == SignupState.LOGGED_IN:
            raise InvalidSignupStateError("start a signup", self._state.value)
        normalized = self._validate_email(email)
        self._validate_password(password)

        pending = self._pending
        continuing = (
            pending is not None
            and pending.email == normalized
            and self._state in (SignupState.DETAILS_COLLECTED, SignupState.CODE_ISSUED)
        )
        resend = continuing and self._state == SignupState.CODE_ISSUED

        if continuing:
            pending = pending.model_copy(
                update={
                    "password": SecretStr(password),
                    "profile_fields": pending.profile_fields.merged(profile_fields),
                }
            )
        else:
            pending = PendingSignup(
                flow_id=self._new_flow(),
                email=normalized,
                password=password,
                profile_fields=profile_fields or ProfileFields(),
                created_at=self._clock(),
            )
            self._state = SignupState.DETAILS_COLLECTED
        self._pending = pending
        flow_id = pending.flow_id

        dispatch = await self._verification.issue(normalized, CodePurpose.SIGNUP)
        self._ensure_current(flow_id)

        self._pending = self._pending.model_copy(update={"codes_issued": self._pending.codes_issued + 1})
        self._state = SignupState.CODE_ISSUED
        logger.info(f"Signup code {'re-sent' if resend else 'sent'} (flow {flow_id})")
        return SignupProgress(
            state=self._state,
            email=normalized,
            codes_issued=self._pending.codes_issued,
            code_expires_at=dispatch.expires_at,
            resent=resend,
        )

    async def resend_signup_code(self) -> AuthResult[SignupProgress]:
        async def resend() -> SignupProgress:
            if self._state != SignupState.CODE_ISSUED or self._pending is None:
                raise InvalidSignupStateError("resend a code", self._state.value)
            return await self._initiate_signup(
                self._pending.email,
                self._pending.password.get_secret_value(),
                None,
            )

        return await self._run("resend_signup_code", resend)

    async def complete_signup(
        self,
        code: str,
        profile_fields: Optional[ProfileFields] = None,
    ) -> AuthResult[SignupOutcome]:
        return await self._run("complete_signup", lambda: self._complete_signup(code, profile_fields))

    async def _complete_signup(self, code: str, profile_fields: Optional[ProfileFields]) -> SignupOutcome:
        if self._state not in (SignupState.CODE_ISSUED, SignupState.VERIFIED) or self._pending is None:
            raise InvalidSignupStateError("complete signup", self._state.value)

        pending = self._pending.model_copy(
            update={"profile_fields": self._pending.profile_fields.merged(profile_fields)}
        )
        self._pending = pending
        flow_id = pending.flow_id

        if self._state == SignupState.CODE_ISSUED:
            await self._verification.verify(pending.email, CodePurpose.SIGNUP, code)
            self._ensure_current(flow_id)
            self._state = SignupState.VERIFIED
            logger.info(f"Signup email verified (flow {flow_id})")

        # From VERIFIED a retry skips straight to identity creation
        metadata = {
            **pending.profile_fields.to_metadata(),
            "email_verified": True,
            "has_completed_onboarding": False,
        }
        password = pending.password.get_secret_value()
        try:
            identity = await self._identity.create_identity(pending.email, password, metadata)
        except IdentityExistsError:
            if flow_id == self._flow_id:
                self._pending = None
                self._state = SignupState.IDLE
                self._new_flow()
            raise
        if flow_id != self._flow_id:
            logger.warning(f"Identity {identity.id} created for a signup flow that was abandoned")
            raise FlowSupersededError()
        self._state = SignupState.ACCOUNT_CREATED

        profile_created = await self._create_profile(identity, pending)
        self._ensure_current(flow_id)
        self._pending = None

        try:
            session = await self._login(pending.email, password, flow_id)
        except FlowSupersededError:
            raise
        except AuthError as e:
            # No silent retry: the caller sends the user to manual login
            logger.warning(f"Automatic login after signup failed: {e.code}")
            return SignupOutcome(
                identity=identity,
                profile_created=profile_created,
                logged_in=False,
                login_error=AuthFailure.from_error(e),
                state=self._state,
            )

        return SignupOutcome(
            identity=identity,
            profile_created=profile_created,
            logged_in=True,
            session=session,
            state=self._state,
        )

    async def _create_profile(self, identity: Identity, pending: PendingSignup) -> bool:
        """Best-effort profile write; the identity is never rolled back."""
        fields: dict[str, Any] = {
            **pending.profile_fields.model_dump(exclude_none=True),
            "email": identity.email,
            "email_verified": True,
            "has_completed_onboarding": False,
        }
        try:
            await self._profiles.upsert_profile(identity.id, fields)
            return True
        except AuthError as e:
            logger.warning(f"Profile creation failed for identity {identity.id}: {e.code}; reconcile will repair it")
            return False

    async def abandon_signup(self) -> AuthResult[SignupState]:
        async def abandon() -> SignupState:
            if self._state == SignupState.LOGGED_IN:
                raise InvalidSignupStateError("abandon signup", self._state.value)
            if self._state in _ABANDONABLE:
                self._pending = None
                self._new_flow()
                self._state = SignupState.ABANDONED
                logger.info("Signup abandoned")
            return self._state

        return await self._run("abandon_signup", abandon)

    # ------------------------------------------------------------------
    # Login / logout / session
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResult[Session]:
        async def login() -> Session:
            normalized = self._validate_email(email)
            if not password:
                raise InvalidInputError("Password is required", field="password")
            return await self._login(normalized, password)

        return await self._run("login", login)

    async def _revoke_grant(self, access_token: str, reason: str) -> None:
        """Best-effort revocation of a grant this client will not keep."""
        try:
            await self._identity.sign_out(access_token, scope="local")
        except AuthError as e:
            logger.warning(f"Could not revoke {reason} grant: {e.code}")

    async def _login(self, email: str, password: str, flow_id: Optional[int] = None) -> Session:
        provided = await self._identity.authenticate(email, password)

        if not provided.identity.email_verified:
            # Hard gate: the grant is revoked and no session is created
            await self._revoke_grant(provided.access_token, "unverified identity")
            raise EmailUnverifiedError(email)

        if flow_id is not None and flow_id != self._flow_id:
            # The signup that started this login was abandoned meanwhile
            await self._revoke_grant(provided.access_token, "superseded signup")
            logger.info(f"Discarding login result of superseded signup flow {flow_id}")
            raise FlowSupersededError()

        session = self._sessions.establish(provided)
        if self._pending is not None:
            self._pending = None
            self._new_flow()
        self._state = SignupState.LOGGED_IN

        if self._reconcile_on_login:
            try:
                await self._reconciler.reconcile(session.identity_id)
            except AuthError as e:
                logger.warning(f"Onboarding reconcile on login failed: {e.code}")
        return session

    async def logout(self) -> AuthResult[None]:
        async def logout() -> None:
            session = self._sessions.current
            if session is not None:
                try:
                    await self._identity.sign_out(session.access_token)
                except AuthError as e:
                    logger.warning(f"Remote sign-out failed: {e.code}; clearing local session anyway")
            self._sessions.invalidate("logout")
            self._reconciler.clear_local_flag()
            if self._state == SignupState.LOGGED_IN:
                self._state = SignupState.IDLE

        return await self._run("logout", logout)

    async def refresh_session(self) -> AuthResult[Session]:
        return await self._run("refresh_session", self._sessions.refresh)

    async def get_current_user(self) -> AuthResult[Optional[Identity]]:
        async def current_user() -> Optional[Identity]:
            session = await self._sessions.get_current_session()
            if session is None:
                return None
            identity = await self._identity.get_identity(session.identity_id)
            return identity or session.identity

        return await self._run("get_current_user", current_user)

    # ------------------------------------------------------------------
    # Registration status and onboarding
    # ------------------------------------------------------------------

    async def check_user_registration_status(self, identity_id: str) -> AuthResult[RegistrationReport]:
        try:
            profile = await self._profiles.get_profile(identity_id)
            has_preferences = await self._travel.has_travel_preferences(identity_id)
        except AuthError as e:
            logger.warning(f"Registration status lookup failed for {identity_id}: {e.code}")
            return AuthResult.success(
                RegistrationReport(identity_id=identity_id, status=RegistrationStatus.ERROR)
            )

        status = classify_registration(profile, has_preferences)
        logger.debug(f"Registration status for {identity_id}: {status.value}")
        return AuthResult.success(
            RegistrationReport(
                identity_id=identity_id,
                status=status,
                profile_exists=profile is not None,
                onboarding_complete=profile.has_completed_onboarding if profile else False,
                has_travel_preferences=has_preferences,
            )
        )

    async def _resolve_identity_id(self, identity_id: Optional[str]) -> str:
        if identity_id:
            return identity_id
        session = await self._require_session()
        return session.identity_id

    async def mark_onboarding_complete(
        self,
        identity_id: Optional[str] = None,
    ) -> AuthResult[OnboardingWriteReport]:
        async def mark() -> OnboardingWriteReport:
            target = await self._resolve_identity_id(identity_id)
            return await self._reconciler.mark_onboarding_complete(target)

        return await self._run("mark_onboarding_complete", mark)

    async def reconcile_onboarding(self, identity_id: Optional[str] = None) -> AuthResult[ReconcileReport]:
        async def reconcile() -> ReconcileReport:
            target = await self._resolve_identity_id(identity_id)
            return await self._reconciler.reconcile(target)

        return await self._run("reconcile_onboarding", reconcile)

    # ------------------------------------------------------------------
    # Credential changes
    # ------------------------------------------------------------------

    async def send_password_reset(self, email: str) -> AuthResult[PasswordResetRequest]:
        async def send() -> PasswordResetRequest:
            normalized = self._validate_email(email)
            try:
                await self._identity.send_password_reset(normalized)
            except NetworkUnavailableError:
                raise
            except AuthError as e:
                # Same answer whether or not the address has an account
                logger.warning(f"Password reset request failed: {e.code}")
            return PasswordResetRequest(email=normalized)

        return await self._run("send_password_reset", send)

    async def apply_password_reset(self, new_password: str) -> AuthResult[None]:
        async def apply() -> None:
            self._validate_password(new_password, field="new_password")
            session = await self._require_session()
            await self._identity.apply_password_reset(session.identity_id, new_password)
            logger.info(f"Password reset applied for {session.identity_id}")

        return await self._run("apply_password_reset", apply)

    async def update_password(self, current_password: str, new_password: str) -> AuthResult[None]:
        async def update() -> None:
            self._validate_password(new_password, field="new_password")
            if new_password == current_password:
                raise InvalidInputError("New password must be different from the current one", field="new_password")
            session = await self._require_session()
            # Re-check the current password without keeping the grant it produces
            provided = await self._identity.authenticate(session.identity.email, current_password)
            await self._revoke_grant(provided.access_token, "password check")
            await self._identity.apply_password_reset(session.identity_id, new_password)
            logger.info(f"Password updated for {session.identity_id}")

        return await self._run("update_password", update)

    async def request_email_change(self, new_email: str) -> AuthResult[CodeDispatch]:
        async def request() -> CodeDispatch:
            normalized = self._validate_email(new_email)
            session = await self._require_session()
            if normalized == normalize_email(session.identity.email):
                raise InvalidInputError("New email must be different from the current one", field="email")

            try:
                await self._profiles.upsert_profile(
                    session.identity_id,
                    {"pending_email_change": normalized, "email_change_requested_at": self._clock()},
                )
            except AuthError as e:
                logger.warning(f"Could not record pending email change: {e.code}")
            return await self._verification.issue(normalized, CodePurpose.EMAIL_CHANGE)

        return await self._run("request_email_change", request)

    async def update_email(
        self,
        new_email: str,
        code: str,
        password: Optional[str] = None,
    ) -> AuthResult[Identity]:
        async def update() -> Identity:
            normalized = self._validate_email(new_email)
            if password is not None:
                self._validate_password(password)
            session = await self._require_session()

            await self._verification.verify(normalized, CodePurpose.EMAIL_CHANGE, code)
            identity = await self._identity.update_email(session.identity_id, normalized, password)

            try:
                await self._profiles.upsert_profile(
                    identity.id,
                    {
                        "email": normalized,
                        "pending_email_change": None,
                        "email_change_requested_at": None,
                    },
                )
            except AuthError as e:
                logger.warning(f"Profile email not updated for {identity.id}: {e.code}")
            logger.info(f"Email updated for {identity.id}")
            return identity

        return await self._run("update_email", update)


def build_auth_service(settings: Optional[Settings] = None) -> AuthService:
    """Wire an AuthService against Supabase using the given (or cached) settings."""
    settings = settings or get_settings()
    db = get_supabase_client()
    identity_provider = get_identity_provider()
    profiles = ProfileRepository(db)
    reconciler = OnboardingReconciler(
        identity_provider,
        profiles,
        JsonFileFlagStore(settings.local_storage_path),
        flag_key=settings.onboarding_flag_key,
    )
    return AuthService(
        identity_provider=identity_provider,
        session_manager=SessionManager(
            identity_provider,
            refresh_leeway_seconds=settings.session_refresh_leeway_seconds,
            jwt_secret=settings.supabase_jwt_secret,
        ),
        verification_service=get_verification_service(),
        profile_store=profiles,
        travel_preferences=TravelPreferencesRepository(db),
        reconciler=reconciler,
        password_min_length=settings.password_min_length,
        reconcile_on_login=settings.reconcile_on_login,
    )


# Module-level instance getter
_service_instance: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get the auth service singleton."""
    global _service_instance
    if _service_instance is None:
        _service_instance = build_auth_service()
    return _service_instance


def reset_auth_service() -> None:
    """Reset the auth service singleton (for testing)."""
    global _service_instance
    _service_instance = None

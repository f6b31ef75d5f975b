"""Tests for the auth service."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from shared.config import Settings
from shared.exceptions import AuthErrorCode, NetworkUnavailableError, RemoteServiceError
from modules.auth.models import ProfileFields, RegistrationStatus, SignupState
from modules.auth.service import AuthService, build_auth_service, get_auth_service
from modules.onboarding.service import DEFAULT_FLAG_KEY
from tests.conftest import SIGNUP_CODE, TEST_PASSWORD


EMAIL = "traveler@example.com"


async def start_signup(auth_service, email: str = EMAIL):
    result = await auth_service.initiate_signup(email, TEST_PASSWORD, ProfileFields(first_name="Ada"))
    assert result.ok, result.error
    return result


async def log_in(auth_service, email: str = EMAIL, password: str = TEST_PASSWORD):
    result = await auth_service.login(email, password)
    assert result.ok, result.error
    return result.data


class TestSignup:
    @pytest.mark.asyncio
    async def test_full_signup_logs_in_new_user(self, auth_service, identity_provider, profile_store):
        """Details, code, verification, account creation and login in one pass."""
        progress = await auth_service.initiate_signup(
            "Traveler@Example.com", TEST_PASSWORD, ProfileFields(first_name="Ada", last_name="Lovelace")
        )
        assert progress.ok
        assert progress.data.state is SignupState.CODE_ISSUED
        assert progress.data.email == EMAIL
        assert progress.data.codes_issued == 1
        assert identity_provider.identity_count == 0

        completed = await auth_service.complete_signup(SIGNUP_CODE)

        assert completed.ok, completed.error
        outcome = completed.data
        assert outcome.logged_in is True
        assert outcome.profile_created is True
        assert outcome.state is SignupState.LOGGED_IN
        assert auth_service.state is SignupState.LOGGED_IN
        assert auth_service.pending_signup is None
        assert auth_service.session_manager.current.identity_id == outcome.identity.id

        identity = identity_provider.find_by_email(EMAIL)
        assert identity.email_verified is True
        assert identity.metadata["first_name"] == "Ada"
        assert identity.metadata["has_completed_onboarding"] is False

        profile = await profile_store.get_profile(identity.id)
        assert profile.full_name == "Ada Lovelace"
        assert profile.has_completed_onboarding is False

        status = await auth_service.check_user_registration_status(identity.id)
        assert status.data.status is RegistrationStatus.NEW_USER

    @pytest.mark.asyncio
    async def test_collect_then_initiate_continues_flow(self, auth_service):
        collected = await auth_service.collect_signup_details(EMAIL, TEST_PASSWORD)
        flow_id = auth_service.pending_signup.flow_id
        assert collected.data.state is SignupState.DETAILS_COLLECTED

        progress = await auth_service.initiate_signup(EMAIL, TEST_PASSWORD)

        assert progress.data.resent is False
        assert auth_service.pending_signup.flow_id == flow_id

    @pytest.mark.asyncio
    async def test_initiate_again_is_resend(self, auth_service, mailer):
        await start_signup(auth_service)

        again = await auth_service.initiate_signup(EMAIL, TEST_PASSWORD)

        assert again.data.resent is True
        assert again.data.codes_issued == 2
        assert len(mailer.sent) == 2

    @pytest.mark.asyncio
    async def test_new_email_starts_new_flow(self, auth_service):
        await start_signup(auth_service)
        flow_id = auth_service.pending_signup.flow_id

        progress = await auth_service.initiate_signup("other@example.com", TEST_PASSWORD)

        assert progress.data.resent is False
        assert progress.data.codes_issued == 1
        assert auth_service.pending_signup.flow_id != flow_id

    @pytest.mark.asyncio
    async def test_expired_code_then_resend(self, auth_service, clock):
        """An expired code offers a resend; the new code completes signup."""
        await start_signup(auth_service)
        clock.advance(minutes=16)

        expired = await auth_service.complete_signup(SIGNUP_CODE)

        assert expired.error_code is AuthErrorCode.CODE_EXPIRED
        assert expired.error.can_resend is True
        assert auth_service.state is SignupState.CODE_ISSUED

        resent = await auth_service.resend_signup_code()
        assert resent.data.resent is True

        completed = await auth_service.complete_signup("739201")
        assert completed.ok

    @pytest.mark.asyncio
    async def test_resend_invalidates_previous_code(self, auth_service):
        await start_signup(auth_service)
        await auth_service.resend_signup_code()

        result = await auth_service.complete_signup(SIGNUP_CODE)

        assert result.error_code is AuthErrorCode.CODE_INVALID
        assert auth_service.state is SignupState.CODE_ISSUED

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_flow(self, auth_service, identity_provider):
        await start_signup(auth_service)

        result = await auth_service.complete_signup("000000")

        assert result.error_code is AuthErrorCode.CODE_INVALID
        assert identity_provider.identity_count == 0
        assert (await auth_service.complete_signup(SIGNUP_CODE)).ok

    @pytest.mark.asyncio
    async def test_retry_after_identity_creation_failure_skips_verification(self, auth_service, identity_provider):
        """A consumed code is not needed again once the email is verified."""
        await start_signup(auth_service)
        identity_provider.fail_next("create_identity", NetworkUnavailableError("identity"))

        failed = await auth_service.complete_signup(SIGNUP_CODE)

        assert failed.error_code is AuthErrorCode.NETWORK_UNAVAILABLE
        assert auth_service.state is SignupState.VERIFIED

        retried = await auth_service.complete_signup(SIGNUP_CODE)
        assert retried.ok
        assert identity_provider.identity_count == 1

    @pytest.mark.asyncio
    async def test_existing_identity(self, auth_service, verified_identity):
        await start_signup(auth_service)

        result = await auth_service.complete_signup(SIGNUP_CODE)

        assert result.error_code is AuthErrorCode.IDENTITY_EXISTS
        assert auth_service.state is SignupState.IDLE
        assert auth_service.pending_signup is None

    @pytest.mark.asyncio
    async def test_profile_failure_does_not_fail_signup(self, auth_service, profile_store, identity_provider):
        """The profile is repaired from identity data by the reconcile on login."""
        await start_signup(auth_service)
        profile_store.fail_next("upsert_profile", RemoteServiceError("profiles"))

        result = await auth_service.complete_signup(SIGNUP_CODE)

        assert result.ok
        assert result.data.profile_created is False
        assert result.data.logged_in is True
        identity = identity_provider.find_by_email(EMAIL)
        profile = await profile_store.get_profile(identity.id)
        assert profile is not None
        assert profile.first_name == "Ada"

    @pytest.mark.asyncio
    async def test_login_failure_after_signup(self, auth_service, identity_provider):
        """The account exists; the user is sent to manual login."""
        await start_signup(auth_service)
        identity_provider.fail_next("authenticate", NetworkUnavailableError("identity"))

        result = await auth_service.complete_signup(SIGNUP_CODE)

        assert result.ok
        assert result.data.logged_in is False
        assert result.data.session is None
        assert result.data.login_error.code is AuthErrorCode.NETWORK_UNAVAILABLE
        assert auth_service.state is SignupState.ACCOUNT_CREATED
        assert identity_provider.identity_count == 1

        await log_in(auth_service)
        assert auth_service.state is SignupState.LOGGED_IN

    @pytest.mark.asyncio
    async def test_abandon(self, auth_service):
        await start_signup(auth_service)

        abandoned = await auth_service.abandon_signup()

        assert abandoned.data is SignupState.ABANDONED
        assert auth_service.pending_signup is None
        result = await auth_service.complete_signup(SIGNUP_CODE)
        assert result.error_code is AuthErrorCode.INVALID_STATE

    @pytest.mark.asyncio
    async def test_abandon_during_issue_supersedes_flow(self, auth_service, code_store, mailer):
        """A code dispatch finishing after abandonment must not revive the flow."""
        code_store.delay_seconds = 0.05
        pending = asyncio.ensure_future(auth_service.initiate_signup(EMAIL, TEST_PASSWORD))
        await asyncio.sleep(0.01)

        await auth_service.abandon_signup()
        result = await pending

        assert result.error_code is AuthErrorCode.FLOW_SUPERSEDED
        assert auth_service.state is SignupState.ABANDONED
        assert auth_service.pending_signup is None

    @pytest.mark.asyncio
    async def test_abandon_during_auto_login_discards_session(self, auth_service, identity_provider, monkeypatch):
        """A login finishing after abandonment must not log the user in."""
        authenticate = identity_provider.authenticate

        async def slow_authenticate(email, password):
            await asyncio.sleep(0.05)
            return await authenticate(email, password)

        monkeypatch.setattr(identity_provider, "authenticate", slow_authenticate)
        await start_signup(auth_service)
        pending = asyncio.ensure_future(auth_service.complete_signup(SIGNUP_CODE))
        await asyncio.sleep(0.01)

        abandoned = await auth_service.abandon_signup()
        result = await pending

        assert abandoned.data is SignupState.ABANDONED
        assert result.error_code is AuthErrorCode.FLOW_SUPERSEDED
        assert auth_service.state is SignupState.ABANDONED
        assert auth_service.session_manager.current is None
        # The late grant is revoked, not left behind
        assert len(identity_provider.signed_out_tokens) == 1
        assert identity_provider.identity_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,password,field",
        [
            ("not-an-email", TEST_PASSWORD, "email"),
            ("", TEST_PASSWORD, "email"),
            (EMAIL, "short", "password"),
        ],
    )
    async def test_invalid_input(self, auth_service, mailer, email, password, field):
        result = await auth_service.initiate_signup(email, password)

        assert result.error_code is AuthErrorCode.INVALID_INPUT
        assert result.error.details == {"field": field}
        assert auth_service.state is SignupState.IDLE
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_cannot_sign_up_while_logged_in(self, auth_service, verified_identity):
        await log_in(auth_service)

        result = await auth_service.collect_signup_details("other@example.com", TEST_PASSWORD)

        assert result.error_code is AuthErrorCode.INVALID_STATE

    @pytest.mark.asyncio
    async def test_resend_requires_issued_code(self, auth_service):
        result = await auth_service.resend_signup_code()
        assert result.error_code is AuthErrorCode.INVALID_STATE


class TestLogin:
    @pytest.mark.asyncio
    async def test_login(self, auth_service, verified_identity, local_store):
        session = await log_in(auth_service, email=" Traveler@Example.com ")

        assert session.identity_id == verified_identity.id
        assert auth_service.state is SignupState.LOGGED_IN
        # Reconcile on login fills in the local hint from identity metadata
        assert local_store.values[DEFAULT_FLAG_KEY] == "false"

    @pytest.mark.asyncio
    async def test_unverified_email_is_blocked(self, auth_service, identity_provider):
        """No session is created for an identity whose email is unverified."""
        identity_provider.add_identity("pending@example.com", TEST_PASSWORD, email_verified=False)

        result = await auth_service.login("pending@example.com", TEST_PASSWORD)

        assert result.error_code is AuthErrorCode.EMAIL_UNVERIFIED
        assert auth_service.session_manager.current is None
        assert auth_service.state is SignupState.IDLE
        assert len(identity_provider.signed_out_tokens) == 1

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth_service, verified_identity):
        result = await auth_service.login(EMAIL, "not-the-password")
        assert result.error_code is AuthErrorCode.INVALID_CREDENTIALS
        assert auth_service.session_manager.current is None

    @pytest.mark.asyncio
    async def test_missing_password(self, auth_service):
        result = await auth_service.login(EMAIL, "")
        assert result.error_code is AuthErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_reconcile_failure_does_not_fail_login(self, auth_service, verified_identity, identity_provider):
        identity_provider.fail_next("get_identity", NetworkUnavailableError("identity"))
        await log_in(auth_service)
        assert auth_service.state is SignupState.LOGGED_IN

    @pytest.mark.asyncio
    async def test_login_discards_pending_signup(self, auth_service, verified_identity):
        await start_signup(auth_service, email="someone-else@example.com")

        await log_in(auth_service)

        assert auth_service.pending_signup is None


class TestLogoutAndSession:
    @pytest.mark.asyncio
    async def test_logout(self, auth_service, verified_identity, identity_provider, local_store):
        session = await log_in(auth_service)

        result = await auth_service.logout()

        assert result.ok
        assert auth_service.session_manager.current is None
        assert auth_service.state is SignupState.IDLE
        assert session.access_token in identity_provider.signed_out_tokens
        assert DEFAULT_FLAG_KEY not in local_store.values

        refreshed = await auth_service.refresh_session()
        assert refreshed.error_code is AuthErrorCode.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_logout_when_remote_fails(self, auth_service, verified_identity, identity_provider):
        """The local session is cleared even if remote sign-out fails."""
        await log_in(auth_service)
        identity_provider.fail_next("sign_out", NetworkUnavailableError("identity"))

        result = await auth_service.logout()

        assert result.ok
        assert auth_service.session_manager.current is None

    @pytest.mark.asyncio
    async def test_refresh_session(self, auth_service, verified_identity):
        session = await log_in(auth_service)

        result = await auth_service.refresh_session()

        assert result.ok
        assert result.data.refresh_token != session.refresh_token

    @pytest.mark.asyncio
    async def test_get_current_user(self, auth_service, verified_identity):
        assert (await auth_service.get_current_user()).data is None

        await log_in(auth_service)
        result = await auth_service.get_current_user()

        assert result.data.id == verified_identity.id

    @pytest.mark.asyncio
    async def test_revoked_session_ends_login(self, auth_service, verified_identity, identity_provider, clock):
        """A refresh token rejected mid-operation ends the session."""
        await log_in(auth_service)
        identity_provider.revoke_refresh_tokens(verified_identity.id)
        clock.advance(hours=2)

        result = await auth_service.mark_onboarding_complete()

        assert result.error_code is AuthErrorCode.SESSION_EXPIRED
        assert auth_service.session_manager.current is None
        assert auth_service.state is SignupState.IDLE


class TestRegistrationStatus:
    @pytest.mark.asyncio
    async def test_returning_user(self, auth_service, verified_identity, profile_store, travel_preferences):
        await profile_store.upsert_profile(verified_identity.id, {"has_completed_onboarding": True})
        travel_preferences.add(verified_identity.id)

        result = await auth_service.check_user_registration_status(verified_identity.id)

        assert result.data.status is RegistrationStatus.RETURNING_USER
        assert result.data.profile_exists is True
        assert result.data.has_travel_preferences is True

    @pytest.mark.asyncio
    async def test_incomplete_onboarding(self, auth_service, verified_identity, profile_store):
        await profile_store.upsert_profile(verified_identity.id, {"has_completed_onboarding": True})

        result = await auth_service.check_user_registration_status(verified_identity.id)

        assert result.data.status is RegistrationStatus.INCOMPLETE_ONBOARDING

    @pytest.mark.asyncio
    async def test_no_profile_is_new_user(self, auth_service, verified_identity):
        result = await auth_service.check_user_registration_status(verified_identity.id)

        assert result.data.status is RegistrationStatus.NEW_USER
        assert result.data.profile_exists is False

    @pytest.mark.asyncio
    async def test_lookup_failure_is_error_status(self, auth_service, verified_identity, travel_preferences):
        """A failed lookup routes to an error screen instead of guessing."""
        travel_preferences.fail_next(NetworkUnavailableError("travel_preferences"))

        result = await auth_service.check_user_registration_status(verified_identity.id)

        assert result.ok
        assert result.data.status is RegistrationStatus.ERROR
        assert result.data.profile_exists is None


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_mark_complete_for_current_user(self, auth_service, verified_identity, identity_provider, travel_preferences):
        await log_in(auth_service)
        travel_preferences.add(verified_identity.id)

        result = await auth_service.mark_onboarding_complete()

        assert result.ok
        assert result.data.degraded is False
        identity = await identity_provider.get_identity(verified_identity.id)
        assert identity.has_completed_onboarding is True
        status = await auth_service.check_user_registration_status(verified_identity.id)
        assert status.data.status is RegistrationStatus.RETURNING_USER

    @pytest.mark.asyncio
    async def test_mark_complete_requires_session(self, auth_service):
        result = await auth_service.mark_onboarding_complete()
        assert result.error_code is AuthErrorCode.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_mark_complete_identity_failure(self, auth_service, verified_identity, identity_provider):
        identity_provider.fail_next("update_metadata", RemoteServiceError("identity"))

        result = await auth_service.mark_onboarding_complete(verified_identity.id)

        assert result.error_code is AuthErrorCode.REMOTE_SERVICE_ERROR

    @pytest.mark.asyncio
    async def test_reconcile_never_regresses_identity(self, auth_service, verified_identity, identity_provider, profile_store):
        """Identity completion survives a stale profile; the profile is brought up to date."""
        await identity_provider.update_metadata(verified_identity.id, {"has_completed_onboarding": True})
        await profile_store.upsert_profile(verified_identity.id, {"has_completed_onboarding": False})

        result = await auth_service.reconcile_onboarding(verified_identity.id)

        assert result.ok
        assert result.data.converged is True
        identity = await identity_provider.get_identity(verified_identity.id)
        assert identity.has_completed_onboarding is True
        assert (await profile_store.get_profile(verified_identity.id)).has_completed_onboarding is True


class TestCredentials:
    @pytest.mark.asyncio
    async def test_password_reset_unknown_email(self, auth_service, identity_provider):
        """The answer never reveals whether the address has an account."""
        result = await auth_service.send_password_reset("nobody@example.com")

        assert result.ok
        assert result.data.sent is True
        assert identity_provider.password_resets_sent == ["nobody@example.com"]

    @pytest.mark.asyncio
    async def test_password_reset_backend_rejection_is_hidden(self, auth_service, identity_provider):
        identity_provider.fail_next("send_password_reset", RemoteServiceError("identity"))

        result = await auth_service.send_password_reset(EMAIL)

        assert result.ok

    @pytest.mark.asyncio
    async def test_password_reset_network_failure(self, auth_service, identity_provider):
        identity_provider.fail_next("send_password_reset", NetworkUnavailableError("identity"))

        result = await auth_service.send_password_reset(EMAIL)

        assert result.error_code is AuthErrorCode.NETWORK_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_apply_password_reset(self, auth_service, verified_identity):
        await log_in(auth_service)

        result = await auth_service.apply_password_reset("a-brand-new-password")

        assert result.ok
        await auth_service.logout()
        await log_in(auth_service, password="a-brand-new-password")

    @pytest.mark.asyncio
    async def test_apply_password_reset_requires_session(self, auth_service):
        result = await auth_service.apply_password_reset("a-brand-new-password")
        assert result.error_code is AuthErrorCode.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_update_password(self, auth_service, verified_identity):
        await log_in(auth_service)

        wrong = await auth_service.update_password("not-the-password", "a-brand-new-password")
        same = await auth_service.update_password(TEST_PASSWORD, TEST_PASSWORD)
        short = await auth_service.update_password(TEST_PASSWORD, "short")
        changed = await auth_service.update_password(TEST_PASSWORD, "a-brand-new-password")

        assert wrong.error_code is AuthErrorCode.INVALID_CREDENTIALS
        assert same.error_code is AuthErrorCode.INVALID_INPUT
        assert short.error_code is AuthErrorCode.INVALID_INPUT
        assert changed.ok
        assert auth_service.session_manager.current is not None

    @pytest.mark.asyncio
    async def test_update_password_revokes_check_grant(self, auth_service, verified_identity, identity_provider):
        """Re-checking the current password leaves no extra grant behind."""
        await log_in(auth_service)

        result = await auth_service.update_password(TEST_PASSWORD, "a-brand-new-password")

        assert result.ok
        assert len(identity_provider.signed_out_tokens) == 1
        assert auth_service.session_manager.current.access_token not in identity_provider.signed_out_tokens
        # Only the check's grant is revoked; the session still refreshes
        refreshed = await auth_service.refresh_session()
        assert refreshed.ok

    @pytest.mark.asyncio
    async def test_email_change(self, auth_service, verified_identity, identity_provider, profile_store, mailer):
        """A new address is confirmed with a code sent to it."""
        await log_in(auth_service)

        requested = await auth_service.request_email_change("New@Example.com")

        assert requested.ok
        assert mailer.last_code_for("new@example.com") == SIGNUP_CODE
        profile = await profile_store.get_profile(verified_identity.id)
        assert profile.pending_email_change == "new@example.com"

        updated = await auth_service.update_email("new@example.com", SIGNUP_CODE)

        assert updated.ok, updated.error
        assert updated.data.email == "new@example.com"
        assert identity_provider.find_by_email("new@example.com").id == verified_identity.id
        profile = await profile_store.get_profile(verified_identity.id)
        assert profile.email == "new@example.com"
        assert profile.pending_email_change is None

    @pytest.mark.asyncio
    async def test_email_change_to_same_address(self, auth_service, verified_identity, mailer):
        await log_in(auth_service)

        result = await auth_service.request_email_change(EMAIL.upper())

        assert result.error_code is AuthErrorCode.INVALID_INPUT
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_email_change_wrong_code(self, auth_service, verified_identity, identity_provider):
        await log_in(auth_service)
        await auth_service.request_email_change("new@example.com")

        result = await auth_service.update_email("new@example.com", "111111")

        assert result.error_code is AuthErrorCode.CODE_INVALID
        assert identity_provider.find_by_email("new@example.com") is None

    @pytest.mark.asyncio
    async def test_signup_code_cannot_change_email(self, auth_service, verified_identity, mailer):
        """Codes are bound to their purpose."""
        await start_signup(auth_service, email="new@example.com")
        assert mailer.last_code_for("new@example.com") == SIGNUP_CODE
        await log_in(auth_service)

        result = await auth_service.update_email("new@example.com", SIGNUP_CODE)

        assert result.error_code is AuthErrorCode.CODE_INVALID


class TestWiring:
    @patch("modules.auth.service.get_verification_service")
    @patch("modules.auth.service.get_identity_provider")
    @patch("modules.auth.service.get_supabase_client")
    def test_build_auth_service(self, mock_db, mock_provider, mock_verification, tmp_path):
        settings = Settings(
            _env_file=None,
            local_storage_path=str(tmp_path / "local.json"),
            password_min_length=12,
        )

        service = build_auth_service(settings)

        assert isinstance(service, AuthService)
        assert service.state is SignupState.IDLE
        mock_db.assert_called_once()
        mock_provider.assert_called_once()
        mock_verification.assert_called_once()

    @patch("modules.auth.service.build_auth_service")
    def test_get_auth_service_caches(self, mock_build):
        mock_build.return_value = MagicMock(spec=AuthService)

        assert get_auth_service() is get_auth_service()
        mock_build.assert_called_once()

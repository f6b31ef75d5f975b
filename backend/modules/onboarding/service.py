"""
Onboarding-status reconciler.

The "has completed onboarding" flag lives in three places: identity
metadata, the profile record and local storage. Identity metadata is
authoritative. Writes go to all three independently; reconcile() repairs
whichever copies drifted from the identity.

Local storage is a hint for fast routing only. Its value is never used
to decide what the other stores should hold.
"""

import logging
from typing import Any, Optional

from shared.clock import Clock, utcnow
from shared.exceptions import AuthError, PartialWriteFailureError
from modules.identity.interfaces import IIdentityProvider
from modules.identity.models import Identity
from modules.profiles.interfaces import IProfileStore

from .interfaces import ILocalFlagStore
from .models import (
    OnboardingSnapshot,
    OnboardingSource,
    OnboardingWriteReport,
    ReconcileReport,
    StoreWrite,
)

logger = logging.getLogger(__name__)

ONBOARDING_VERSION = "2.0"
DEFAULT_FLAG_KEY = "hasCompletedInitialFlow"

# Errors a local store raises when the backing file is unusable
LOCAL_STORE_ERRORS = (OSError, ValueError)


def parse_flag(value: Optional[str]) -> Optional[bool]:
    """Local storage holds "true" / "false"; anything else counts as unknown."""
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def profile_fields_from_identity(identity: Identity) -> dict[str, Any]:
    """Fields for (re)creating a profile from identity data."""
    metadata = identity.metadata
    fields: dict[str, Any] = {
        "email": identity.email,
        "email_verified": identity.email_verified,
        "has_completed_onboarding": bool(identity.has_completed_onboarding),
    }
    for key in ("first_name", "last_name", "avatar_url", "birthdate"):
        if metadata.get(key):
            fields[key] = metadata[key]
    return fields


class OnboardingReconciler:
    """
    Replicates the onboarding flag and repairs disagreement.

    Example:
        reconciler = OnboardingReconciler(provider, profiles, InMemoryFlagStore())
        await reconciler.mark_onboarding_complete(identity_id)
        report = await reconciler.reconcile(identity_id)
    """

    def __init__(
        self,
        identity_provider: IIdentityProvider,
        profile_store: IProfileStore,
        local_store: ILocalFlagStore,
        flag_key: str = DEFAULT_FLAG_KEY,
        clock: Optional[Clock] = None,
    ):
        self._identity = identity_provider
        self._profiles = profile_store
        self._local = local_store
        self._flag_key = flag_key
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def mark_onboarding_complete(self, identity_id: str) -> OnboardingWriteReport:
        """
        Write completion to identity metadata, profile and local storage.

        Every step is attempted even if an earlier one failed.

        Raises:
            AuthError: The identity write failed (the other stores may
                       still have been updated; reconcile() repairs them)
        """
        completed_at = self._clock().isoformat()
        writes: list[StoreWrite] = []
        identity_error: Optional[AuthError] = None

        try:
            await self._identity.update_metadata(
                identity_id,
                {
                    "has_completed_onboarding": True,
                    "onboarding_completed_at": completed_at,
                    "onboarding_version": ONBOARDING_VERSION,
                },
            )
            writes.append(StoreWrite(source=OnboardingSource.IDENTITY, ok=True))
        except AuthError as e:
            identity_error = e
            writes.append(StoreWrite(source=OnboardingSource.IDENTITY, ok=False, error=e.code))

        writes.append(await self._write_profile(identity_id, {"has_completed_onboarding": True}))
        writes.append(self._write_local(True))

        report = OnboardingWriteReport(identity_id=identity_id, writes=writes)
        if identity_error is not None:
            logger.error(f"Onboarding completion not recorded for {identity_id}: {identity_error.code}")
            raise identity_error

        if report.degraded:
            degraded = PartialWriteFailureError(report.failed_stores)
            logger.warning(f"Onboarding completion degraded for {identity_id}: {degraded.message}")
        else:
            logger.info(f"Onboarding marked complete for {identity_id}")
        return report

    async def _write_profile(self, identity_id: str, fields: dict[str, Any]) -> StoreWrite:
        try:
            await self._profiles.upsert_profile(identity_id, fields)
            return StoreWrite(source=OnboardingSource.PROFILE, ok=True)
        except AuthError as e:
            logger.warning(f"Profile write failed for {identity_id}: {e.code}")
            return StoreWrite(source=OnboardingSource.PROFILE, ok=False, error=e.code)

    def _write_local(self, value: bool) -> StoreWrite:
        try:
            self._local.set(self._flag_key, "true" if value else "false")
            return StoreWrite(source=OnboardingSource.LOCAL, ok=True)
        except LOCAL_STORE_ERRORS as e:
            logger.warning(f"Local flag write failed: {e}")
            return StoreWrite(source=OnboardingSource.LOCAL, ok=False, error=type(e).__name__)

    def clear_local_flag(self) -> None:
        """Forget the local hint (on logout). Failures are logged."""
        try:
            self._local.remove(self._flag_key)
        except LOCAL_STORE_ERRORS as e:
            logger.warning(f"Could not clear local onboarding flag: {e}")

    def read_local_flag(self) -> Optional[bool]:
        try:
            return parse_flag(self._local.get(self._flag_key))
        except LOCAL_STORE_ERRORS as e:
            logger.warning(f"Local flag unreadable: {e}")
            return None

    # ------------------------------------------------------------------
    # Reads and repair
    # ------------------------------------------------------------------

    async def _read(self, identity_id: str) -> tuple[OnboardingSnapshot, Optional[Identity]]:
        identity: Optional[Identity] = None
        identity_value: Optional[bool] = None
        try:
            identity = await self._identity.get_identity(identity_id)
            if identity is not None:
                identity_value = identity.has_completed_onboarding
        except AuthError as e:
            logger.warning(f"Identity unreadable during onboarding check for {identity_id}: {e.code}")

        profile_value: Optional[bool] = None
        profile_exists: Optional[bool] = None
        try:
            profile = await self._profiles.get_profile(identity_id)
            profile_exists = profile is not None
            if profile is not None:
                profile_value = profile.has_completed_onboarding
        except AuthError as e:
            logger.warning(f"Profile unreadable during onboarding check for {identity_id}: {e.code}")

        snapshot = OnboardingSnapshot(
            identity=identity_value,
            profile=profile_value,
            local=self.read_local_flag(),
            profile_exists=profile_exists,
        )
        return snapshot, identity

    async def read_snapshot(self, identity_id: str) -> OnboardingSnapshot:
        """Read all three copies of the flag."""
        snapshot, _ = await self._read(identity_id)
        return snapshot

    async def reconcile(self, identity_id: str) -> ReconcileReport:
        """
        Make profile and local storage agree with identity metadata.

        Writes nothing when the identity value is unknown or everything
        already agrees, so repeated calls are harmless.
        """
        snapshot, identity = await self._read(identity_id)
        report = ReconcileReport(identity_id=identity_id, before=snapshot)

        if snapshot.identity is None or identity is None:
            logger.debug(f"Onboarding status for {identity_id} unknown at identity; nothing to reconcile")
            return report

        value = snapshot.identity
        for source in snapshot.disagreeing():
            if source is OnboardingSource.PROFILE:
                if snapshot.profile_exists is None:
                    # Profile store unreadable: repairing blind could clobber other fields
                    continue
                if snapshot.profile_exists:
                    write = await self._write_profile(identity_id, {"has_completed_onboarding": value})
                else:
                    write = await self._write_profile(identity_id, profile_fields_from_identity(identity))
                    report.profile_created = write.ok
                    if write.ok:
                        logger.info(f"Recreated missing profile for {identity_id}")
                report.writes.append(write)
            else:
                report.writes.append(self._write_local(value))

        if report.writes:
            logger.info(
                f"Reconciled onboarding status for {identity_id} to {value} "
                f"({', '.join(w.source.value for w in report.writes if w.ok) or 'no repairs succeeded'})"
            )
        return report

"""
Onboarding module.

Keeps the replicated "has completed onboarding" flag consistent across
identity metadata, the profile record and local storage.

Public API:
- OnboardingReconciler: mark_onboarding_complete / read_snapshot / reconcile
- ILocalFlagStore, JsonFileFlagStore, InMemoryFlagStore: Local storage
- OnboardingSnapshot, OnboardingWriteReport, ReconcileReport: Reports
"""

from .interfaces import ILocalFlagStore
from .local_store import JsonFileFlagStore, InMemoryFlagStore
from .models import (
    OnboardingSource,
    StoreWrite,
    OnboardingWriteReport,
    OnboardingSnapshot,
    ReconcileReport,
)
from .service import OnboardingReconciler, ONBOARDING_VERSION, parse_flag

__all__ = [
    "OnboardingReconciler",
    "ONBOARDING_VERSION",
    "parse_flag",
    "ILocalFlagStore",
    "JsonFileFlagStore",
    "InMemoryFlagStore",
    "OnboardingSource",
    "StoreWrite",
    "OnboardingWriteReport",
    "OnboardingSnapshot",
    "ReconcileReport",
]

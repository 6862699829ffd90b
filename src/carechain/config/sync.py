"""Refresh cadence defaults for the reconciliation loop."""

from __future__ import annotations

from dataclasses import dataclass

from .env import float_env_var

DEFAULT_RECORDS_INTERVAL_SECONDS = 30.0
DEFAULT_CLAIMS_INTERVAL_SECONDS = 30.0
DEFAULT_PERMISSIONS_INTERVAL_SECONDS = 45.0
DEFAULT_BOOKINGS_INTERVAL_SECONDS = 60.0
DEFAULT_NOTIFICATION_HISTORY = 200


@dataclass(frozen=True, slots=True)
class SyncConfig:
    records_interval_seconds: float = DEFAULT_RECORDS_INTERVAL_SECONDS
    claims_interval_seconds: float = DEFAULT_CLAIMS_INTERVAL_SECONDS
    permissions_interval_seconds: float = DEFAULT_PERMISSIONS_INTERVAL_SECONDS
    bookings_interval_seconds: float = DEFAULT_BOOKINGS_INTERVAL_SECONDS
    notification_history: int = DEFAULT_NOTIFICATION_HISTORY


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        records_interval_seconds=float_env_var(
            "CARECHAIN_RECORDS_REFRESH_SECONDS", DEFAULT_RECORDS_INTERVAL_SECONDS
        ),
        claims_interval_seconds=float_env_var(
            "CARECHAIN_CLAIMS_REFRESH_SECONDS", DEFAULT_CLAIMS_INTERVAL_SECONDS
        ),
        permissions_interval_seconds=float_env_var(
            "CARECHAIN_PERMISSIONS_REFRESH_SECONDS", DEFAULT_PERMISSIONS_INTERVAL_SECONDS
        ),
        bookings_interval_seconds=float_env_var(
            "CARECHAIN_BOOKINGS_REFRESH_SECONDS", DEFAULT_BOOKINGS_INTERVAL_SECONDS
        ),
    )

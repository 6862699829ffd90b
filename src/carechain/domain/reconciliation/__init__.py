"""Reconciliation of Ledger collections into local snapshots.

Per cycle and per collection: fetch -> normalize -> diff -> swap snapshot ->
notify, strictly sequential. Different collections reconcile independently.
"""

from __future__ import annotations

from .contracts import (
    EMERGENCY_COUNTER,
    Arrival,
    CollectionDiff,
    CountIncrease,
    StatusTransition,
)
from .diff import compute_diff, identity_of, next_counters
from .engine import CollectionReconciler, RefreshResult, StateReconciler
from .schedule import RefreshScheduler, ScheduleHandle, VisibilitySignal, intervals_from_config

__all__ = [
    "EMERGENCY_COUNTER",
    "Arrival",
    "CollectionDiff",
    "CollectionReconciler",
    "CountIncrease",
    "RefreshResult",
    "RefreshScheduler",
    "ScheduleHandle",
    "StateReconciler",
    "StatusTransition",
    "VisibilitySignal",
    "compute_diff",
    "identity_of",
    "intervals_from_config",
    "next_counters",
]

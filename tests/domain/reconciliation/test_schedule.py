from __future__ import annotations

import asyncio

import pytest

from carechain.config import SyncConfig
from carechain.domain.model import CollectionKind
from carechain.domain.reconciliation import (
    RefreshScheduler,
    StateReconciler,
    VisibilitySignal,
    intervals_from_config,
)
from tests.helpers.ledger import ScriptedGateway

SLOW = 3600.0


def _intervals(**overrides: float) -> dict[CollectionKind, float]:
    intervals = dict.fromkeys(CollectionKind, SLOW)
    for name, seconds in overrides.items():
        intervals[CollectionKind(name)] = seconds
    return intervals


def test_intervals_from_config() -> None:
    config = SyncConfig(records_interval_seconds=5, claims_interval_seconds=6)

    intervals = intervals_from_config(config)

    assert intervals[CollectionKind.RECORDS] == 5
    assert intervals[CollectionKind.CLAIMS] == 6
    assert intervals[CollectionKind.PERMISSION_REQUESTS] == config.permissions_interval_seconds
    assert intervals[CollectionKind.BOOKINGS] == config.bookings_interval_seconds


def test_non_positive_interval_is_rejected(reconciler: StateReconciler) -> None:
    with pytest.raises(ValueError, match="must be positive"):
        RefreshScheduler(reconciler, intervals=_intervals(claims=0))


def test_mount_refreshes_every_collection_once(
    reconciler: StateReconciler, gateway: ScriptedGateway
) -> None:
    scheduler = RefreshScheduler(reconciler, intervals=_intervals())

    async def scenario() -> None:
        async with scheduler:
            assert scheduler.running
            await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert sorted(gateway.read_calls) == sorted(CollectionKind)
    assert not scheduler.running
    assert scheduler.visibility.listener_count == 0


def test_timer_triggers_periodic_refresh(
    reconciler: StateReconciler, gateway: ScriptedGateway
) -> None:
    scheduler = RefreshScheduler(reconciler, intervals=_intervals(claims=0.01))

    async def scenario() -> None:
        async with scheduler:
            await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert gateway.read_calls.count(CollectionKind.CLAIMS) >= 3
    assert gateway.read_calls.count(CollectionKind.RECORDS) == 1


def test_hidden_view_skips_ticks_and_refreshes_when_visible_again(
    reconciler: StateReconciler, gateway: ScriptedGateway
) -> None:
    visibility = VisibilitySignal(visible=False)
    scheduler = RefreshScheduler(
        reconciler, intervals=_intervals(claims=0.01), visibility=visibility
    )

    async def scenario() -> tuple[int, int]:
        async with scheduler:
            await asyncio.sleep(0.05)
            hidden = gateway.read_calls.count(CollectionKind.RECORDS)
            hidden_claims = gateway.read_calls.count(CollectionKind.CLAIMS)
            visibility.set_visible(True)
            await asyncio.sleep(0.01)
        return hidden, hidden_claims

    hidden, hidden_claims = asyncio.run(scenario())

    # the mount refresh runs even while hidden
    assert hidden == 1
    assert hidden_claims == 1
    assert gateway.read_calls.count(CollectionKind.RECORDS) == 2


def test_handle_close_is_idempotent(reconciler: StateReconciler) -> None:
    scheduler = RefreshScheduler(reconciler, intervals=_intervals())

    async def scenario() -> None:
        handle = scheduler.start()
        assert scheduler.start() is handle
        handle.close()
        handle.close()
        assert handle.closed
        await scheduler.aclose()

    asyncio.run(scenario())

    assert not scheduler.running


def test_visibility_signal_notifies_only_on_change() -> None:
    signal = VisibilitySignal()
    seen: list[bool] = []
    unsubscribe = signal.subscribe(seen.append)

    signal.set_visible(True)
    signal.set_visible(False)
    signal.set_visible(False)
    unsubscribe()
    signal.set_visible(True)

    assert seen == [False]
    assert signal.visible

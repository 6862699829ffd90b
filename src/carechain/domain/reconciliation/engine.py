"""Fetch-normalize-diff loop keeping one snapshot per Ledger collection.

Each ``CollectionReconciler`` owns exactly one snapshot and at most one in-flight
cycle. ``refresh`` joins a running cycle instead of starting a second fetch;
``request_refresh`` (used by timers and visibility events) drops the trigger
instead. Either way two fetches for the same collection never overlap, so
responses cannot land out of order.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.capabilities import LedgerCapabilities
from carechain.domain.errors import ErrorKind, classify_error
from carechain.domain.model import (
    CollectionKind,
    HealthRecord,
    PermissionRequest,
    Severity,
    Snapshot,
)
from carechain.domain.normalization import normalize
from carechain.domain.notifications import NotificationEmitter, utcnow

from .diff import compute_diff

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from carechain.domain.model import Address, Booking, Claim, Entity
    from carechain.domain.notifications import Clock, Notification, NotificationFeed
    from carechain.domain.ports import LedgerGateway

    from .contracts import CollectionDiff

log = getLogger(__name__)

NEWEST_FIRST_KINDS = frozenset({CollectionKind.RECORDS, CollectionKind.BOOKINGS})

_LABELS: dict[CollectionKind, str] = {
    CollectionKind.RECORDS: "health records",
    CollectionKind.PERMISSION_REQUESTS: "permission requests",
    CollectionKind.CLAIMS: "insurance claims",
    CollectionKind.BOOKINGS: "appointments",
}


@dataclass(frozen=True, slots=True)
class RefreshResult:
    kind: CollectionKind
    snapshot: Snapshot[Entity]
    diff: CollectionDiff | None = None
    notifications: tuple[Notification, ...] = ()
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CollectionReconciler:
    """Owns the snapshot of one collection for one identity."""

    def __init__(
        self,
        kind: CollectionKind,
        *,
        owner: Address,
        gateway: LedgerGateway,
        capabilities: LedgerCapabilities,
        emitter: NotificationEmitter,
        feed: NotificationFeed,
        clock: Clock = utcnow,
    ) -> None:
        self.kind = kind
        self._owner = owner
        self._gateway = gateway
        self._capabilities = capabilities
        self._emitter = emitter
        self._feed = feed
        self._clock = clock
        self._snapshot: Snapshot[Entity] = Snapshot(kind=kind, owner=owner)
        self._inflight: asyncio.Task[RefreshResult] | None = None

    @property
    def snapshot(self) -> Snapshot[Entity]:
        return self._snapshot

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def refresh(self) -> RefreshResult:
        """Run a cycle, or wait for the one already running."""

        task = self._inflight or self._start()
        return await asyncio.shield(task)

    async def refresh_after_write(self) -> RefreshResult:
        """Read again once a write has confirmed.

        A cycle already in flight issued its read before the write landed, so it is
        awaited first and a fresh cycle is started after it.
        """

        stale = self._inflight
        if stale is not None:
            await asyncio.wait((stale,))
        task = self._inflight
        if task is None or task is stale:
            task = self._start()
        return await asyncio.shield(task)

    def request_refresh(self) -> bool:
        """Start a cycle unless one is running; return whether one was started."""

        if self._inflight is not None:
            log.debug("Coalesced %s refresh trigger: cycle already in flight", self.kind)
            return False
        self._start()
        return True

    async def cancel(self) -> None:
        task = self._inflight
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    def _start(self) -> asyncio.Task[RefreshResult]:
        task = asyncio.get_running_loop().create_task(
            self._cycle(), name=f"reconcile-{self.kind}"
        )
        self._inflight = task
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[RefreshResult]) -> None:
        if self._inflight is task:
            self._inflight = None
        if task.cancelled():
            log.debug("Reconciliation cycle for %s cancelled", self.kind)
            return
        exc = task.exception()
        if exc is not None:
            log.error("Reconciliation cycle for %s crashed", self.kind, exc_info=exc)

    async def _cycle(self) -> RefreshResult:
        previous = self._snapshot
        try:
            await self._capabilities.ensure(self.kind.operation)
            raw = await self._gateway.read_collection(self.kind, self._owner)
        except Exception as exc:  # noqa: BLE001
            return self._failed(previous, exc)

        items = normalize(
            self.kind,
            raw,
            owner=self._owner,
            newest_first=self.kind in NEWEST_FIRST_KINDS,
        )
        diff, counters = compute_diff(previous, items)
        current = previous.successor(items, refreshed_at=self._clock(), counters=counters)
        # single assignment: readers see either the old or the new snapshot
        self._snapshot = current

        notifications = tuple(self._emitter.emit(diff))
        self._feed.publish(notifications)
        log.debug(
            "Reconciled %s for %s: %s items, %s transitions, %s arrivals",
            self.kind,
            self._owner,
            len(items),
            len(diff.transitions),
            len(diff.arrivals),
        )
        return RefreshResult(
            kind=self.kind, snapshot=current, diff=diff, notifications=notifications
        )

    def _failed(self, previous: Snapshot[Entity], exc: Exception) -> RefreshResult:
        kind = classify_error(exc)
        self._capabilities.observe_failure(exc)
        label = _LABELS[self.kind]
        if kind is ErrorKind.UNSUPPORTED_OPERATION:
            log.warning("Ledger cannot serve %s: %s", label, exc)
            event = self._emitter.event(
                Severity.WARNING,
                f"Feature not available: {label}",
                dedupe_key=f"unsupported:{self.kind.operation}",
                kind=self.kind,
            )
        else:
            if kind is ErrorKind.UNEXPECTED:
                log.error(
                    "Unexpected failure fetching %s for %s", label, self._owner, exc_info=exc
                )
            else:
                log.warning("Error fetching %s for %s: %s", label, self._owner, exc)
            event = self._emitter.event(
                Severity.ERROR,
                f"Error fetching {label}. Please try again.",
                dedupe_key=f"refresh-failed:{self.kind}",
                kind=self.kind,
            )
        self._feed.publish((event,))
        return RefreshResult(
            kind=self.kind, snapshot=previous, notifications=(event,), error=exc
        )


class StateReconciler:
    """Snapshots of every tracked collection for one signed-in identity.

    Consumers get immutable tuples; nothing outside this class replaces a snapshot.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        *,
        owner: Address,
        feed: NotificationFeed,
        emitter: NotificationEmitter | None = None,
        capabilities: LedgerCapabilities | None = None,
        kinds: Iterable[CollectionKind] = tuple(CollectionKind),
        clock: Clock = utcnow,
    ) -> None:
        self._owner = owner
        self._feed = feed
        self.capabilities = capabilities or LedgerCapabilities(gateway)
        effective_emitter = emitter or NotificationEmitter(clock=clock)
        self._collections = {
            kind: CollectionReconciler(
                kind,
                owner=owner,
                gateway=gateway,
                capabilities=self.capabilities,
                emitter=effective_emitter,
                feed=feed,
                clock=clock,
            )
            for kind in kinds
        }

    @property
    def owner(self) -> Address:
        return self._owner

    @property
    def kinds(self) -> tuple[CollectionKind, ...]:
        return tuple(self._collections)

    def collection(self, kind: CollectionKind) -> CollectionReconciler:
        try:
            return self._collections[kind]
        except KeyError:
            raise ValueError(f"{kind} is not tracked by this reconciler") from None

    async def refresh(self, kind: CollectionKind) -> RefreshResult:
        return await self.collection(kind).refresh()

    async def refresh_after_write(self, kind: CollectionKind) -> RefreshResult:
        return await self.collection(kind).refresh_after_write()

    def request_refresh(self, kind: CollectionKind) -> bool:
        return self.collection(kind).request_refresh()

    async def refresh_all(self) -> dict[CollectionKind, RefreshResult]:
        results = await asyncio.gather(
            *(collection.refresh() for collection in self._collections.values())
        )
        return {result.kind: result for result in results}

    async def aclose(self) -> None:
        for collection in self._collections.values():
            await collection.cancel()

    # read API

    def snapshot(self, kind: CollectionKind) -> Snapshot[Entity]:
        return self.collection(kind).snapshot

    def last_refreshed_at(self, kind: CollectionKind) -> datetime | None:
        return self.snapshot(kind).refreshed_at

    @property
    def records(self) -> tuple[HealthRecord, ...]:
        return self.snapshot(CollectionKind.RECORDS).items  # type: ignore[return-value]

    @property
    def permission_requests(self) -> tuple[PermissionRequest, ...]:
        return self.snapshot(CollectionKind.PERMISSION_REQUESTS).items  # type: ignore[return-value]

    @property
    def claims(self) -> tuple[Claim, ...]:
        return self.snapshot(CollectionKind.CLAIMS).items  # type: ignore[return-value]

    @property
    def bookings(self) -> tuple[Booking, ...]:
        return self.snapshot(CollectionKind.BOOKINGS).items  # type: ignore[return-value]

    @property
    def emergency_records(self) -> tuple[HealthRecord, ...]:
        return tuple(
            record
            for record in self.records
            if isinstance(record, HealthRecord) and record.is_emergency
        )

    @property
    def pending_insurance_requests(self) -> tuple[PermissionRequest, ...]:
        return tuple(
            request
            for request in self.permission_requests
            if isinstance(request, PermissionRequest)
            and request.is_insurance_request
            and request.is_pending
        )

"""User-facing notification events derived from diffs and workflow outcomes."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.model import (
    EMERGENCY_COUNTER,
    Claim,
    ClaimStatus,
    CollectionKind,
    PermissionRequest,
    RequestStatus,
    Severity,
    format_amount,
    short_address,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from carechain.domain.reconciliation.contracts import (
        Arrival,
        CollectionDiff,
        CountIncrease,
        StatusTransition,
    )

log = getLogger(__name__)

type Clock = Callable[[], datetime]
type Listener = Callable[[Notification], None]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class Notification:
    severity: Severity
    message: str
    dedupe_key: str
    timestamp: datetime
    kind: CollectionKind | None = None


def merge_duplicates(events: Iterable[Notification]) -> list[Notification]:
    """Collapse events sharing a ``dedupe_key``: first position, last message."""

    merged: dict[str, Notification] = {}
    for event in events:
        merged[event.dedupe_key] = event
    return list(merged.values())


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


class NotificationEmitter:
    """Pure mapping from a ``CollectionDiff`` to deduplicated notifications."""

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock

    def event(
        self,
        severity: Severity,
        message: str,
        *,
        dedupe_key: str,
        kind: CollectionKind | None = None,
    ) -> Notification:
        return Notification(
            severity=severity,
            message=message,
            dedupe_key=dedupe_key,
            timestamp=self._clock(),
            kind=kind,
        )

    def emit(self, diff: CollectionDiff) -> list[Notification]:
        if diff.baseline:
            return []
        events: list[Notification] = []
        for transition in diff.transitions:
            event = self._transition_event(diff.kind, transition)
            if event is not None:
                events.append(event)
        arrivals = self._arrivals_event(diff.kind, diff.arrivals)
        if arrivals is not None:
            events.append(arrivals)
        for increase in diff.count_increases:
            event = self._count_event(diff.kind, increase)
            if event is not None:
                events.append(event)
        return merge_duplicates(events)

    def _transition_event(
        self, kind: CollectionKind, transition: StatusTransition
    ) -> Notification | None:
        subject = transition.subject
        if isinstance(subject, PermissionRequest):
            return self._request_transition(kind, subject)
        if isinstance(subject, Claim):
            return self._claim_transition(kind, subject)
        return None

    def _request_transition(
        self, kind: CollectionKind, request: PermissionRequest
    ) -> Notification | None:
        party = "Insurance provider" if request.is_insurance_request else "Healthcare provider"
        detail = f"(request {request.request_id}, provider {short_address(request.requester)})"
        key = f"request:{request.request_id}:{request.status}"
        if request.status is RequestStatus.APPROVED:
            return self.event(
                Severity.SUCCESS,
                f"{party} approved your permission request {detail}",
                dedupe_key=key,
                kind=kind,
            )
        if request.status is RequestStatus.REJECTED:
            return self.event(
                Severity.WARNING,
                f"{party} rejected your permission request {detail}",
                dedupe_key=key,
                kind=kind,
            )
        return None

    def _claim_transition(self, kind: CollectionKind, claim: Claim) -> Notification | None:
        key = f"claim:{claim.claim_id}:{claim.status}"
        amount = format_amount(claim.claim_amount)
        if claim.status is ClaimStatus.APPROVED:
            return self.event(
                Severity.SUCCESS,
                f"Insurance claim {claim.claim_id} for {amount} was approved",
                dedupe_key=key,
                kind=kind,
            )
        if claim.status is ClaimStatus.REJECTED:
            reason = f": {claim.rejection_reason}" if claim.rejection_reason else ""
            return self.event(
                Severity.WARNING,
                f"Insurance claim {claim.claim_id} was rejected{reason}",
                dedupe_key=key,
                kind=kind,
            )
        return None

    def _arrivals_event(
        self, kind: CollectionKind, arrivals: tuple[Arrival, ...]
    ) -> Notification | None:
        if kind is not CollectionKind.PERMISSION_REQUESTS:
            return None
        pending = [
            arrival
            for arrival in arrivals
            if isinstance(arrival.subject, PermissionRequest) and arrival.subject.is_pending
        ]
        if not pending:
            return None
        return self.event(
            Severity.INFO,
            f"You have {_plural(len(pending), 'new request')} requiring your attention",
            dedupe_key=f"arrivals:{kind}",
            kind=kind,
        )

    def _count_event(self, kind: CollectionKind, increase: CountIncrease) -> Notification | None:
        if increase.counter != EMERGENCY_COUNTER:
            return None
        return self.event(
            Severity.SUCCESS,
            f"{_plural(increase.delta, 'new ambulance service record')} "
            "added to your health records",
            dedupe_key="emergency-arrival",
            kind=kind,
        )


@dataclass(eq=False)
class Subscription:
    """Teardown handle for one listener; closing twice is a no-op."""

    _remove: Callable[[], None]
    closed: bool = field(default=False, init=False)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._remove()


class NotificationFeed:
    """Fan-out of notification events to presentation listeners, with bounded history."""

    def __init__(self, *, history: int = 200) -> None:
        self._history: deque[Notification] = deque(maxlen=history)
        self._listeners: list[Listener] = []

    @property
    def history(self) -> tuple[Notification, ...]:
        return tuple(self._history)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Subscription:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(remove)

    def publish(self, events: Iterable[Notification]) -> None:
        for event in events:
            self._history.append(event)
            log.debug("Notification [%s] %s", event.severity, event.message)
            for listener in tuple(self._listeners):
                try:
                    listener(event)
                except Exception:
                    log.exception("Notification listener failed for %s", event.dedupe_key)

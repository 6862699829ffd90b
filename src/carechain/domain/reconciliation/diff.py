"""Pure diff computation between a snapshot and freshly normalized items.

Emergency arrivals are detected by comparing counts, not identities. Removing and
re-adding emergency records inside one refresh interval can hide or inflate the
change; ``CollectionDiff.arrivals`` carries the identity-based view for callers
that need exactness.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from carechain.domain.model import (
    Booking,
    Claim,
    CollectionKind,
    HealthRecord,
    PermissionRequest,
)

from .contracts import EMERGENCY_COUNTER, Arrival, CollectionDiff, CountIncrease, StatusTransition

UNKNOWN_STATUS = "Unknown"

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping
    from enum import StrEnum

    from carechain.domain.model import Entity, Snapshot


def identity_of(entity: Entity) -> Hashable:
    match entity:
        case PermissionRequest():
            return entity.request_id
        case Claim():
            return entity.claim_id
        case HealthRecord() | Booking():
            return entity.identity
        case _:
            raise TypeError(f"Not a ledger entity: {entity!r}")


def status_of(entity: Entity) -> StrEnum | None:
    match entity:
        case PermissionRequest() | Claim():
            return entity.status
        case _:
            return None


def _is_transition(old: StrEnum | None, new: StrEnum | None) -> bool:
    if old is None or new is None or old == new:
        return False
    # an unparseable status is not evidence of a change
    return UNKNOWN_STATUS not in (old, new)


def next_counters(
    kind: CollectionKind,
    previous: Mapping[str, int],
    items: tuple[Entity, ...],
) -> dict[str, int]:
    """Carry count baselines forward; only a non-empty observation moves them."""

    counters = dict(previous)
    if kind is CollectionKind.RECORDS and items:
        counters[EMERGENCY_COUNTER] = sum(
            1 for item in items if isinstance(item, HealthRecord) and item.is_emergency
        )
    return counters


def compute_diff(
    previous: Snapshot[Entity],
    items: tuple[Entity, ...],
) -> tuple[CollectionDiff, dict[str, int]]:
    """Return the diff against ``previous`` and the counters for the next snapshot."""

    counters = next_counters(previous.kind, previous.counters, items)
    if not previous.observed:
        return CollectionDiff(kind=previous.kind, owner=previous.owner, baseline=True), counters

    before = {identity_of(item): item for item in previous.items}
    transitions: list[StatusTransition] = []
    arrivals: list[Arrival] = []
    seen: set[Hashable] = set()
    for item in items:
        key = identity_of(item)
        if key in seen:
            continue
        seen.add(key)
        old = before.get(key)
        if old is None:
            arrivals.append(Arrival(entity_id=key, subject=item))
            continue
        old_status, new_status = status_of(old), status_of(item)
        if _is_transition(old_status, new_status):
            transitions.append(
                StatusTransition(
                    entity_id=key, previous=old_status, current=new_status, subject=item
                )
            )

    increases = [
        CountIncrease(counter=name, previous=previous.counters[name], current=value)
        for name, value in counters.items()
        if name in previous.counters and value > previous.counters[name]
    ]
    return (
        CollectionDiff(
            kind=previous.kind,
            owner=previous.owner,
            transitions=tuple(transitions),
            arrivals=tuple(arrivals),
            count_increases=tuple(increases),
        ),
        counters,
    )

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from carechain.domain.model import (
    EMERGENCY_COUNTER,
    Booking,
    Claim,
    ClaimStatus,
    CollectionKind,
    DataType,
    HealthRecord,
    PermissionRequest,
    RequestStatus,
    Snapshot,
)
from carechain.domain.reconciliation import compute_diff, identity_of, next_counters
from tests.helpers.ledger import PATIENT

AT = datetime(2024, 1, 1, tzinfo=UTC)


def _observed(kind: CollectionKind, items: tuple[object, ...], **counters: int) -> Snapshot:
    empty: Snapshot = Snapshot(kind=kind, owner=PATIENT)
    return empty.successor(items, refreshed_at=AT, counters=counters)  # type: ignore[arg-type]


def _record(cid: str, *, emergency: bool = False) -> HealthRecord:
    data_type = DataType.EMERGENCY_RECORD if emergency else DataType.EHR
    return HealthRecord(owner=PATIENT, ipfs_cid=cid, data_type=data_type)


def _request(request_id: int, status: RequestStatus) -> PermissionRequest:
    return PermissionRequest(request_id=request_id, status=status)


def test_identity_per_entity_type() -> None:
    assert identity_of(_request(4, RequestStatus.PENDING)) == 4
    assert identity_of(Claim(claim_id=9)) == 9
    assert identity_of(_record("Qm1")) == (PATIENT, "Qm1")
    assert identity_of(Booking(hospital_name="City", booking_date=5)) == ("City", 5)
    with pytest.raises(TypeError):
        identity_of("not an entity")  # type: ignore[arg-type]


def test_first_observation_is_a_silent_baseline() -> None:
    empty: Snapshot = Snapshot(kind=CollectionKind.RECORDS, owner=PATIENT)
    items = (_record("Qm1", emergency=True), _record("Qm2"))

    diff, counters = compute_diff(empty, items)

    assert diff.baseline
    assert diff.is_empty
    assert counters == {EMERGENCY_COUNTER: 1}


def test_status_change_is_a_transition_and_new_id_an_arrival() -> None:
    previous = _observed(
        CollectionKind.PERMISSION_REQUESTS,
        (_request(1, RequestStatus.PENDING), _request(2, RequestStatus.PENDING)),
    )
    items = (
        _request(1, RequestStatus.APPROVED),
        _request(2, RequestStatus.PENDING),
        _request(3, RequestStatus.PENDING),
    )

    diff, _ = compute_diff(previous, items)

    assert not diff.baseline
    (transition,) = diff.transitions
    assert transition.entity_id == 1
    assert transition.previous is RequestStatus.PENDING
    assert transition.current is RequestStatus.APPROVED
    assert [arrival.entity_id for arrival in diff.arrivals] == [3]


def test_unknown_status_is_not_a_transition() -> None:
    previous = _observed(CollectionKind.CLAIMS, (Claim(claim_id=1, status=ClaimStatus.PENDING),))

    diff, _ = compute_diff(previous, (Claim(claim_id=1, status=ClaimStatus.UNKNOWN),))

    assert diff.is_empty


def test_duplicate_ids_in_one_fetch_count_once() -> None:
    previous = _observed(CollectionKind.PERMISSION_REQUESTS, ())
    items = (_request(5, RequestStatus.PENDING), _request(5, RequestStatus.PENDING))

    diff, _ = compute_diff(previous, items)

    assert len(diff.arrivals) == 1


def test_emergency_count_increase_against_last_non_empty_observation() -> None:
    previous = _observed(
        CollectionKind.RECORDS, (_record("Qm1", emergency=True),), **{EMERGENCY_COUNTER: 1}
    )
    items = (
        _record("Qm1", emergency=True),
        _record("Qm2", emergency=True),
        _record("Qm3", emergency=True),
        _record("Qm4"),
    )

    diff, counters = compute_diff(previous, items)

    (increase,) = diff.count_increases
    assert (increase.previous, increase.current, increase.delta) == (1, 3, 2)
    assert counters == {EMERGENCY_COUNTER: 3}
    assert len(diff.arrivals) == 3


def test_empty_fetch_keeps_the_count_baseline() -> None:
    counters = next_counters(CollectionKind.RECORDS, {EMERGENCY_COUNTER: 2}, ())

    assert counters == {EMERGENCY_COUNTER: 2}


def test_count_decrease_is_not_an_event() -> None:
    previous = _observed(
        CollectionKind.RECORDS,
        (_record("Qm1", emergency=True), _record("Qm2", emergency=True)),
        **{EMERGENCY_COUNTER: 2},
    )

    diff, counters = compute_diff(previous, (_record("Qm1", emergency=True),))

    assert diff.count_increases == ()
    assert counters == {EMERGENCY_COUNTER: 1}


def test_other_collections_carry_no_counters() -> None:
    assert next_counters(CollectionKind.CLAIMS, {}, (Claim(claim_id=1),)) == {}


def test_first_emergency_record_counts_against_zero_baseline() -> None:
    previous = _observed(CollectionKind.RECORDS, (_record("Qm1"),), **{EMERGENCY_COUNTER: 0})

    diff, counters = compute_diff(previous, (_record("Qm1"), _record("Qm2", emergency=True)))

    (increase,) = diff.count_increases
    assert (increase.previous, increase.current) == (0, 1)
    assert counters == {EMERGENCY_COUNTER: 1}

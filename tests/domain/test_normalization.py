from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from carechain.domain.model import (
    UNKNOWN_PROVIDER,
    ClaimStatus,
    CollectionKind,
    DataType,
    HealthRecord,
    PermissionType,
    RequestStatus,
)
from carechain.domain.normalization import (
    narrow_int,
    normalize,
    normalize_bookings,
    normalize_claims,
    normalize_permission_requests,
    normalize_records,
)
from tests.helpers.ledger import INSURER, PATIENT, PROVIDER, raw_claim, raw_record, raw_request


@pytest.mark.parametrize("raw", [None, "records", b"raw", {"ipfsCid": "Qm1"}, 42, 3.5])
def test_non_sequence_input_normalizes_to_empty(raw: object) -> None:
    assert normalize_records(raw) == ()
    assert normalize_permission_requests(raw) == ()
    assert normalize_claims(raw) == ()
    assert normalize_bookings(raw) == ()


def test_record_without_cid_is_dropped_and_rest_survive() -> None:
    raw = [
        raw_record("Qm1"),
        {"owner": PATIENT, "dataType": 0},
        {"owner": PATIENT, "ipfsCid": "   "},
        None,
        "garbage",
        raw_record("Qm2"),
    ]

    records = normalize_records(raw)

    assert [record.ipfs_cid for record in records] == ["Qm1", "Qm2"]


def test_malformed_element_is_dropped_individually() -> None:
    raw = [raw_record("Qm1"), {"ipfsCid": "QmBad", "timestamp": "soon"}, raw_record("Qm3")]

    records = normalize_records(raw)

    assert [record.ipfs_cid for record in records] == ["Qm1", "Qm3"]


def test_record_defaults_are_explicit() -> None:
    (record,) = normalize_records([{"ipfsCid": "Qm1"}], owner=PATIENT)

    assert record == HealthRecord(
        owner=PATIENT,
        ipfs_cid="Qm1",
        data_type=DataType.UNKNOWN,
        provider=UNKNOWN_PROVIDER,
        timestamp=0,
        is_valid=False,
        encrypted_symmetric_key="",
    )


def test_record_accepts_camel_snake_positional_and_attribute_shapes() -> None:
    raw = [
        raw_record("QmCamel", data_type=6),
        {"owner": PATIENT, "ipfs_cid": "QmSnake", "data_type": "LabResult", "is_valid": True},
        (PATIENT, "QmTuple", 3, PROVIDER, "1700000000", True, "k"),
        SimpleNamespace(owner=PATIENT, ipfs_cid="QmAttr", data_type="EMERGENCY_RECORD"),
    ]

    records = normalize_records(raw)

    assert [record.ipfs_cid for record in records] == ["QmCamel", "QmSnake", "QmTuple", "QmAttr"]
    assert records[0].data_type is DataType.EMERGENCY_RECORD
    assert records[1].data_type is DataType.LAB_RESULT
    assert records[1].is_valid is True
    assert records[2].data_type is DataType.PRESCRIPTION
    assert records[2].timestamp == 1_700_000_000
    assert records[3].data_type is DataType.EMERGENCY_RECORD


def test_unknown_enum_values_fall_back_to_unknown() -> None:
    records = normalize_records(
        [raw_record("Qm1", data_type=42), {"ipfsCid": "Qm2", "dataType": "Dental"}]
    )

    assert [record.data_type for record in records] == [DataType.UNKNOWN, DataType.UNKNOWN]


def test_big_number_objects_are_narrowed() -> None:
    (record,) = normalize_records([{"ipfsCid": "Qm1", "timestamp": {"_hex": "0x65"}}])

    assert record.timestamp == 101


def test_normalizing_twice_is_a_no_op() -> None:
    once = normalize_records([raw_record("Qm1"), raw_record("Qm2", data_type=6)])

    assert normalize_records(once) == once


def test_newest_first_reverses_ledger_order() -> None:
    raw = [raw_record("Qm1"), raw_record("Qm2"), raw_record("Qm3")]

    records = normalize_records(raw, newest_first=True)

    assert [record.ipfs_cid for record in records] == ["Qm3", "Qm2", "Qm1"]


def test_permission_requests_from_raw_and_attribute_objects() -> None:
    raw = [
        raw_request(1, permission_type=3, ipfs_cid=""),
        {"requester": PROVIDER},
        SimpleNamespace(request_id=5, status=1),
    ]

    requests = normalize_permission_requests(raw)

    assert [request.request_id for request in requests] == [1, 5]
    first, second = requests
    assert first.permission_type is PermissionType.INSURANCE_PROCESSING
    assert first.is_insurance_request
    assert first.is_batch_request
    assert first.is_pending
    assert second.status is RequestStatus.APPROVED
    assert second.requester == ""


def test_claim_rejection_reason_only_kept_for_rejected_claims() -> None:
    raw = [
        raw_claim(1, status=2, reason="Policy expired"),
        raw_claim(2, status=2, reason="  "),
        raw_claim(3, status=1, reason="stale"),
    ]

    claims = normalize_claims(raw)

    assert [claim.rejection_reason for claim in claims] == ["Policy expired", None, None]
    assert claims[2].status is ClaimStatus.APPROVED
    assert claims[0].insurance_provider == INSURER
    assert claims[0].claim_amount == 10**18


def test_claim_patient_defaults_to_owner() -> None:
    (claim,) = normalize_claims([{"claimId": "0x2"}], owner=PATIENT)

    assert claim.claim_id == 2
    assert claim.patient == PATIENT
    assert claim.status is ClaimStatus.UNKNOWN


def test_bookings_require_hospital_name() -> None:
    raw = [
        {"hospitalName": "City General", "roomType": "ICU", "bookingDate": 10},
        {"roomType": "General"},
        ("St. Mary", "Private", "20"),
    ]

    bookings = normalize_bookings(raw)

    assert [booking.hospital_name for booking in bookings] == ["City General", "St. Mary"]
    assert bookings[1].booking_date == 20


def test_normalize_dispatches_by_kind() -> None:
    items = normalize(CollectionKind.CLAIMS, [raw_claim(7)], owner=PATIENT)

    assert [claim.claim_id for claim in items] == [7]  # type: ignore[union-attr]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, None),
        ("", None),
        (7, 7),
        (True, 1),
        (4.0, 4),
        (Decimal(12), 12),
        ("42", 42),
        ("0x1f", 31),
        ({"hex": "0x10"}, 16),
        ({"_hex": "0x0"}, 0),
    ],
)
def test_narrow_int_accepts_ledger_integer_shapes(value: object, expected: int | None) -> None:
    assert narrow_int(value) == expected


@pytest.mark.parametrize("value", [3.5, "soon", Decimal("1.5"), [1], {"value": 1}])
def test_narrow_int_rejects_non_integers(value: object) -> None:
    with pytest.raises(ValueError):  # noqa: PT011
        narrow_int(value)

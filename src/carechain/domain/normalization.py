"""Turn raw Ledger tuples into canonical, safely-defaulted domain entities.

Contract:
- any input that is not a sequence of elements (``None``, a string, a mapping,
  a number) normalizes to an empty tuple; these functions never raise
- an element lacking its identity field is dropped, never coerced into a valid entity
- an element that fails conversion (e.g. a non-numeric timestamp) is dropped on
  its own; the rest of the collection survives
- every optional field gets an explicit default (see the entity dataclasses)
- already-normalized entities pass through unchanged, so re-normalizing is a no-op

Elements may be mappings keyed by the Ledger's camelCase names or by snake_case,
positional sequences in Ledger struct order, or attribute-style result objects.

``newest_first`` reverses the Ledger's return order. The Ledger appends, so this
is most-recent-first in practice, but it is a display convention only: nothing
guarantees the Ledger's order is chronological.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING

from carechain.domain.model import (
    UNKNOWN_PROVIDER,
    Booking,
    Claim,
    ClaimStatus,
    CollectionKind,
    DataType,
    HealthRecord,
    PermissionRequest,
    PermissionType,
    RequestStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from carechain.domain.model import Address, Entity
    from carechain.domain.model.enums import _LedgerEnum


log = logging.getLogger(__name__)

RECORD_FIELDS = (
    "owner",
    "ipfsCid",
    "dataType",
    "provider",
    "timestamp",
    "isValid",
    "encryptedSymmetricKey",
)
REQUEST_FIELDS = (
    "requestId",
    "requester",
    "ipfsCid",
    "permissionType",
    "status",
    "requestDate",
    "expiryDate",
    "incentiveAmount",
    "isIncentiveBased",
)
CLAIM_FIELDS = (
    "claimId",
    "patient",
    "ipfsHash",
    "claimAmount",
    "diagnosis",
    "hospitalName",
    "timestamp",
    "status",
    "rejectionReason",
    "insuranceProvider",
)
BOOKING_FIELDS = ("hospitalName", "roomType", "bookingDate")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


# --------------------------------------------------------------------------- element access


def _as_fields(element: object, fields: tuple[str, ...]) -> Mapping[str, object] | None:
    if element is None or isinstance(element, (str, bytes, bytearray)):
        return None
    if isinstance(element, Mapping):
        return element  # type: ignore[return-value]
    if isinstance(element, (list, tuple)):
        return dict(zip(fields, element, strict=False))
    values: dict[str, object] = {}
    for name in fields:
        for attribute in (name, _snake(name)):
            if hasattr(element, attribute):
                values[name] = getattr(element, attribute)
                break
    return values or None


def _lookup(data: Mapping[str, object], name: str) -> object:
    if name in data:
        return data[name]
    return data.get(_snake(name))


# --------------------------------------------------------------------------- coercion


def narrow_int(value: object) -> int | None:
    """Narrow a Ledger wide integer to ``int``; ``None`` when absent.

    Accepts ints, integral floats/Decimals, decimal or ``0x`` strings and
    ``{"hex": ...}`` / ``{"_hex": ...}`` big-number objects. Raises ``ValueError``
    for anything else.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise ValueError(f"Not an integral value: {value!r}")
        return int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Not an integral value: {value!r}")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lower().startswith(("0x", "-0x")):
            return int(text, 16)
        return int(text)
    if isinstance(value, Mapping):
        for key in ("hex", "_hex"):
            if key in value:
                return narrow_int(value[key])
    raise ValueError(f"Not an integer: {value!r}")


def _int_or(value: object, default: int) -> int:
    narrowed = narrow_int(value)
    return default if narrowed is None else narrowed


def _text_or(value: object, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, bytes):
        value = "0x" + value.hex()
    text = str(value)
    return text if text.strip() else default


def _flag(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    if isinstance(value, int):
        return value != 0
    raise ValueError(f"Not a boolean: {value!r}")


def _enum[E: _LedgerEnum](value: object, enum_type: type[E]) -> E:
    unknown = enum_type("Unknown")
    if value is None:
        return unknown
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return unknown
        if not text.lstrip("-").isdigit() and not text.lower().startswith("0x"):
            compact = text.replace(" ", "")
            for member in enum_type:
                if compact in (member.value, member.name) or compact.upper() == member.name:
                    return member
            return unknown
    try:
        ordinal = narrow_int(value)
    except ValueError:
        return unknown
    if ordinal is None:
        return unknown
    return enum_type.from_ordinal(ordinal)


# --------------------------------------------------------------------------- builders


def _build_record(element: object, owner: Address) -> HealthRecord | None:
    if isinstance(element, HealthRecord):
        return element if element.ipfs_cid else None
    data = _as_fields(element, RECORD_FIELDS)
    if data is None:
        return None
    ipfs_cid = _text_or(_lookup(data, "ipfsCid"), "")
    if not ipfs_cid:
        return None
    return HealthRecord(
        owner=_text_or(_lookup(data, "owner"), owner),
        ipfs_cid=ipfs_cid,
        data_type=_enum(_lookup(data, "dataType"), DataType),
        provider=_text_or(_lookup(data, "provider"), UNKNOWN_PROVIDER),
        timestamp=_int_or(_lookup(data, "timestamp"), 0),
        is_valid=_flag(_lookup(data, "isValid")),
        encrypted_symmetric_key=_text_or(_lookup(data, "encryptedSymmetricKey"), ""),
    )


def _build_request(element: object, _owner: Address) -> PermissionRequest | None:
    if isinstance(element, PermissionRequest):
        return element
    data = _as_fields(element, REQUEST_FIELDS)
    if data is None:
        return None
    request_id = narrow_int(_lookup(data, "requestId"))
    if request_id is None:
        return None
    return PermissionRequest(
        request_id=request_id,
        requester=_text_or(_lookup(data, "requester"), ""),
        ipfs_cid=_text_or(_lookup(data, "ipfsCid"), ""),
        permission_type=_enum(_lookup(data, "permissionType"), PermissionType),
        status=_enum(_lookup(data, "status"), RequestStatus),
        request_date=_int_or(_lookup(data, "requestDate"), 0),
        expiry_date=_int_or(_lookup(data, "expiryDate"), 0),
        incentive_amount=_int_or(_lookup(data, "incentiveAmount"), 0),
        is_incentive_based=_flag(_lookup(data, "isIncentiveBased")),
    )


def _build_claim(element: object, owner: Address) -> Claim | None:
    if isinstance(element, Claim):
        return element
    data = _as_fields(element, CLAIM_FIELDS)
    if data is None:
        return None
    claim_id = narrow_int(_lookup(data, "claimId"))
    if claim_id is None:
        return None
    status = _enum(_lookup(data, "status"), ClaimStatus)
    rejection_reason = (
        _text_or(_lookup(data, "rejectionReason"), "") or None
        if status is ClaimStatus.REJECTED
        else None
    )
    return Claim(
        claim_id=claim_id,
        patient=_text_or(_lookup(data, "patient"), owner),
        ipfs_hash=_text_or(_lookup(data, "ipfsHash"), ""),
        claim_amount=_int_or(_lookup(data, "claimAmount"), 0),
        diagnosis=_text_or(_lookup(data, "diagnosis"), ""),
        hospital_name=_text_or(_lookup(data, "hospitalName"), ""),
        timestamp=_int_or(_lookup(data, "timestamp"), 0),
        status=status,
        rejection_reason=rejection_reason,
        insurance_provider=_text_or(_lookup(data, "insuranceProvider"), ""),
    )


def _build_booking(element: object, _owner: Address) -> Booking | None:
    if isinstance(element, Booking):
        return element if element.hospital_name else None
    data = _as_fields(element, BOOKING_FIELDS)
    if data is None:
        return None
    hospital_name = _text_or(_lookup(data, "hospitalName"), "")
    if not hospital_name:
        return None
    return Booking(
        hospital_name=hospital_name,
        room_type=_text_or(_lookup(data, "roomType"), ""),
        booking_date=_int_or(_lookup(data, "bookingDate"), 0),
    )


def _normalize_many[T](
    raw: object,
    build: Callable[[object, Address], T | None],
    *,
    owner: Address,
    newest_first: bool,
    label: str,
) -> tuple[T, ...]:
    if raw is None or isinstance(raw, (str, bytes, bytearray, Mapping)):
        return ()
    if not isinstance(raw, Iterable):
        return ()

    entities: list[T] = []
    dropped = 0
    for index, element in enumerate(raw):
        try:
            entity = build(element, owner)
        except (ValueError, TypeError, OverflowError) as exc:
            log.debug("Dropping malformed %s at index %s: %s", label, index, exc)
            dropped += 1
            continue
        if entity is None:
            dropped += 1
            continue
        entities.append(entity)

    if dropped:
        log.debug("Dropped %s of %s raw %s elements", dropped, dropped + len(entities), label)
    if newest_first:
        entities.reverse()
    return tuple(entities)


def normalize_records(
    raw: object, *, owner: Address = "", newest_first: bool = False
) -> tuple[HealthRecord, ...]:
    return _normalize_many(
        raw, _build_record, owner=owner, newest_first=newest_first, label="record"
    )


def normalize_permission_requests(
    raw: object, *, owner: Address = "", newest_first: bool = False
) -> tuple[PermissionRequest, ...]:
    return _normalize_many(
        raw, _build_request, owner=owner, newest_first=newest_first, label="permission request"
    )


def normalize_claims(
    raw: object, *, owner: Address = "", newest_first: bool = False
) -> tuple[Claim, ...]:
    return _normalize_many(raw, _build_claim, owner=owner, newest_first=newest_first, label="claim")


def normalize_bookings(
    raw: object, *, owner: Address = "", newest_first: bool = False
) -> tuple[Booking, ...]:
    return _normalize_many(
        raw, _build_booking, owner=owner, newest_first=newest_first, label="booking"
    )


_NORMALIZERS: dict[CollectionKind, Callable[..., tuple[Entity, ...]]] = {
    CollectionKind.RECORDS: normalize_records,
    CollectionKind.PERMISSION_REQUESTS: normalize_permission_requests,
    CollectionKind.CLAIMS: normalize_claims,
    CollectionKind.BOOKINGS: normalize_bookings,
}


def normalize(
    kind: CollectionKind, raw: object, *, owner: Address = "", newest_first: bool = False
) -> tuple[Entity, ...]:
    """Dispatch to the normalizer for ``kind``."""

    return _NORMALIZERS[kind](raw, owner=owner, newest_first=newest_first)

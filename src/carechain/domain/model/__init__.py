"""Public domain model surface."""

from __future__ import annotations

from carechain.domain.model.enums import (
    ACCESS_CHECK_OPERATION,
    ClaimStatus,
    CollectionKind,
    DataType,
    LedgerAction,
    PermissionType,
    RequestStatus,
    Severity,
)
from carechain.domain.model.primitives import (
    VALUE_DECIMALS,
    Address,
    BaseUnits,
    ContentId,
    UnixSeconds,
    format_amount,
    is_address,
    short_address,
    to_base_units,
)
from carechain.domain.model.records import (
    UNKNOWN_PROVIDER,
    Booking,
    Claim,
    CompletedService,
    Entity,
    HealthRecord,
    PermissionRequest,
)
from carechain.domain.model.snapshot import EMERGENCY_COUNTER, Snapshot

__all__ = [  # noqa: RUF022
    # entities
    "HealthRecord",
    "PermissionRequest",
    "Claim",
    "Booking",
    "CompletedService",
    "Entity",
    "Snapshot",
    "EMERGENCY_COUNTER",
    "UNKNOWN_PROVIDER",
    # enums
    "ACCESS_CHECK_OPERATION",
    "ClaimStatus",
    "CollectionKind",
    "DataType",
    "LedgerAction",
    "PermissionType",
    "RequestStatus",
    "Severity",
    # primitives
    "VALUE_DECIMALS",
    "Address",
    "BaseUnits",
    "ContentId",
    "UnixSeconds",
    "format_amount",
    "is_address",
    "short_address",
    "to_base_units",
]

"""Ledger-backed entities as the client observes them.

Instances are immutable views: they change only by being replaced on re-fetch.
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import ClaimStatus, DataType, PermissionType, RequestStatus
from .primitives import Address, BaseUnits, ContentId, UnixSeconds  # noqa: TC001

UNKNOWN_PROVIDER = "Unknown Provider"


@dataclass(frozen=True, slots=True, kw_only=True)
class HealthRecord:
    owner: Address
    ipfs_cid: ContentId
    data_type: DataType = DataType.UNKNOWN
    provider: Address = UNKNOWN_PROVIDER
    timestamp: UnixSeconds = 0
    is_valid: bool = False
    encrypted_symmetric_key: str = ""

    @property
    def identity(self) -> tuple[Address, ContentId]:
        return (self.owner, self.ipfs_cid)

    @property
    def is_emergency(self) -> bool:
        return self.data_type is DataType.EMERGENCY_RECORD


@dataclass(frozen=True, slots=True, kw_only=True)
class PermissionRequest:
    request_id: int
    requester: Address = ""
    # empty cid marks a batch request covering all of the owner's records
    ipfs_cid: ContentId = ""
    permission_type: PermissionType = PermissionType.UNKNOWN
    status: RequestStatus = RequestStatus.UNKNOWN
    request_date: UnixSeconds = 0
    expiry_date: UnixSeconds = 0
    incentive_amount: BaseUnits = 0
    is_incentive_based: bool = False

    @property
    def is_insurance_request(self) -> bool:
        return self.permission_type is PermissionType.INSURANCE_PROCESSING

    @property
    def is_batch_request(self) -> bool:
        return not self.ipfs_cid

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING


@dataclass(frozen=True, slots=True, kw_only=True)
class Claim:
    claim_id: int
    patient: Address = ""
    ipfs_hash: ContentId = ""
    claim_amount: BaseUnits = 0
    diagnosis: str = ""
    hospital_name: str = ""
    timestamp: UnixSeconds = 0
    status: ClaimStatus = ClaimStatus.UNKNOWN
    rejection_reason: str | None = None
    insurance_provider: Address = ""


@dataclass(frozen=True, slots=True, kw_only=True)
class Booking:
    hospital_name: str
    room_type: str = ""
    booking_date: UnixSeconds = 0

    @property
    def identity(self) -> tuple[str, UnixSeconds]:
        return (self.hospital_name, self.booking_date)


@dataclass(frozen=True, slots=True, kw_only=True)
class CompletedService:
    """Local bookkeeping for an emergency service the caller closed out."""

    patient: Address
    source_record: HealthRecord
    service_cid: ContentId
    service_provider: Address
    completed_at: UnixSeconds
    service_type: str = "Ambulance Emergency Service"


type Entity = HealthRecord | PermissionRequest | Claim | Booking

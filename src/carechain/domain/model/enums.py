"""Domain enums (pure, dependency-light).

Member order matches the Ledger's ordinal encoding; ``from_ordinal`` relies on it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Self


class _LedgerEnum(StrEnum):
    @classmethod
    def ledger_members(cls) -> tuple[Self, ...]:
        return tuple(member for member in cls if member.value != "Unknown")

    @classmethod
    def from_ordinal(cls, ordinal: int) -> Self:
        members = cls.ledger_members()
        if 0 <= ordinal < len(members):
            return members[ordinal]
        return cls("Unknown")

    @property
    def ordinal(self) -> int:
        return self.ledger_members().index(self)


class DataType(_LedgerEnum):
    EHR = "EHR"
    PHR = "PHR"
    LAB_RESULT = "LabResult"
    PRESCRIPTION = "Prescription"
    IMAGING = "Imaging"
    INSURANCE_CLAIM = "InsuranceClaim"
    EMERGENCY_RECORD = "EmergencyRecord"
    UNKNOWN = "Unknown"


class PermissionType(_LedgerEnum):
    VIEW = "View"
    EDIT = "Edit"
    EMERGENCY = "Emergency"
    INSURANCE_PROCESSING = "InsuranceProcessing"
    LAB_PROCESSING = "LabProcessing"
    PRESCRIPTION_PROCESSING = "PrescriptionProcessing"
    UNKNOWN = "Unknown"


class RequestStatus(_LedgerEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"
    UNKNOWN = "Unknown"


class ClaimStatus(_LedgerEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    UNKNOWN = "Unknown"


class CollectionKind(StrEnum):
    """Tracked Ledger collections, each paired with the read operation serving it."""

    RECORDS = "records"
    PERMISSION_REQUESTS = "permission_requests"
    CLAIMS = "claims"
    BOOKINGS = "bookings"

    @property
    def operation(self) -> str:
        return _READ_OPERATIONS[self]


_READ_OPERATIONS: dict[CollectionKind, str] = {
    CollectionKind.RECORDS: "getHealthRecordsByOwner",
    CollectionKind.PERMISSION_REQUESTS: "getPendingRequestsForPatient",
    CollectionKind.CLAIMS: "getPatientClaims",
    CollectionKind.BOOKINGS: "getAppointmentsByPatient",
}

ACCESS_CHECK_OPERATION = "checkEmergencyAccess"


class LedgerAction(StrEnum):
    """Ledger-mutating operations, valued by their contract method name."""

    GRANT_EMERGENCY_ACCESS = "emergencyAccess"
    ADD_HEALTH_RECORD = "addEHRData"
    APPROVE_PERMISSION = "approvePermissionRequest"
    DECLINE_PERMISSION = "declinePermissionRequest"
    APPROVE_BATCH_ACCESS = "approveBatchAccess"
    SUBMIT_INSURANCE_CLAIM = "submitInsuranceClaim"


class Severity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

"""Error taxonomy shared by adapters, the orchestrator and workflows.

Adapters translate transport and Ledger failures into these types; the
orchestrator classifies them into an ``ErrorKind`` that drives severity and
user-facing wording.
"""

from __future__ import annotations

from enum import StrEnum

from carechain.domain.model import Severity


class CareChainError(Exception):
    """Root of every error raised deliberately by this package."""


class ValidationError(CareChainError):
    """Local, field-level input problem detected before any Ledger call."""

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing or invalid field: {field}")
        self.field = field


class LedgerError(CareChainError):
    """Base class for failures reported by or while talking to the Ledger."""


class LedgerRejected(LedgerError):
    """The Ledger refused a call for a business reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class LedgerUnreachable(LedgerError):
    """Network or provider failure; the Ledger never answered."""


class UnsupportedOperation(LedgerError):
    """The Ledger does not declare an operation this client needs."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Ledger does not support {operation}")
        self.operation = operation


class UserCancelled(CareChainError):
    """The signer declined to authorise a write."""


class VerificationMismatch(CareChainError):
    """A write was confirmed but its postcondition does not hold."""


class StorageFailure(CareChainError):
    """The blob store could not store a payload."""


class OperationInProgress(CareChainError):
    """The same logical action is already running for this target."""

    def __init__(self, key: tuple[str, str]) -> None:
        super().__init__(f"{key[0]} already in progress for {key[1]}")
        self.key = key


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    LEDGER_REJECTED = "ledger_rejected"
    LEDGER_UNREACHABLE = "ledger_unreachable"
    USER_CANCELLED = "user_cancelled"
    VERIFICATION_MISMATCH = "verification_mismatch"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    STORAGE_FAILURE = "storage_failure"
    IN_PROGRESS = "in_progress"
    UNEXPECTED = "unexpected"

    @property
    def severity(self) -> Severity:
        if self in _SOFT_KINDS:
            return Severity.WARNING
        return Severity.ERROR


_SOFT_KINDS = frozenset(
    {
        ErrorKind.VALIDATION,
        ErrorKind.USER_CANCELLED,
        ErrorKind.UNSUPPORTED_OPERATION,
        ErrorKind.IN_PROGRESS,
    }
)

_KIND_BY_TYPE: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (ValidationError, ErrorKind.VALIDATION),
    (LedgerRejected, ErrorKind.LEDGER_REJECTED),
    (LedgerUnreachable, ErrorKind.LEDGER_UNREACHABLE),
    (UnsupportedOperation, ErrorKind.UNSUPPORTED_OPERATION),
    (UserCancelled, ErrorKind.USER_CANCELLED),
    (VerificationMismatch, ErrorKind.VERIFICATION_MISMATCH),
    (StorageFailure, ErrorKind.STORAGE_FAILURE),
    (OperationInProgress, ErrorKind.IN_PROGRESS),
)

# Ledger revert reasons that deserve friendlier wording than the raw string.
_REJECTION_MESSAGES: tuple[tuple[str, str], ...] = (
    ("Invalid patient address", "Invalid patient address provided"),
    ("Only ambulance services", "Only authorized ambulance services can request this access"),
    ("Record already exists", "This record already exists for the patient"),
)


def classify_error(exc: BaseException) -> ErrorKind:
    for error_type, kind in _KIND_BY_TYPE:
        if isinstance(exc, error_type):
            return kind
    return ErrorKind.UNEXPECTED


def describe_failure(kind: ErrorKind, exc: BaseException, *, action: str) -> str:
    """Return the user-facing sentence for a failed ``action`` (e.g. "get emergency access")."""

    match kind:
        case ErrorKind.LEDGER_REJECTED:
            reason = exc.reason if isinstance(exc, LedgerRejected) else str(exc)
            for needle, friendly in _REJECTION_MESSAGES:
                if needle in reason:
                    return friendly
            return f"Failed to {action}: {reason}"
        case ErrorKind.LEDGER_UNREACHABLE:
            return f"Failed to {action}: the ledger could not be reached. Please try again."
        case ErrorKind.USER_CANCELLED:
            return "Transaction was rejected by user"
        case ErrorKind.VERIFICATION_MISMATCH:
            return f"Failed to {action}: the transaction was confirmed but verification failed"
        case ErrorKind.UNSUPPORTED_OPERATION:
            operation = exc.operation if isinstance(exc, UnsupportedOperation) else str(exc)
            return f"Feature not available: {operation}"
        case ErrorKind.STORAGE_FAILURE:
            return f"Failed to {action}: the document could not be stored"
        case ErrorKind.IN_PROGRESS:
            return f"Please wait: {action} is already in progress"
        case ErrorKind.VALIDATION:
            return str(exc)
        case ErrorKind.UNEXPECTED:
            return f"Failed to {action}: {exc}"

"""Public interface for the Ledger HTTP adapter."""

from __future__ import annotations

from .client import HttpLedgerGateway, signing_payload
from .schema import (
    AccessResponse,
    CapabilitiesResponse,
    CollectionResponse,
    ErrorResponse,
    WriteAccepted,
    WriteStatus,
    WriteSubmission,
)

__all__ = [
    "AccessResponse",
    "CapabilitiesResponse",
    "CollectionResponse",
    "ErrorResponse",
    "HttpLedgerGateway",
    "WriteAccepted",
    "WriteStatus",
    "WriteSubmission",
    "signing_payload",
]

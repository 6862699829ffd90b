"""Domain port definitions for adapters."""

from __future__ import annotations

from .blobstore import BlobStore
from .ledger import LedgerGateway, PendingWrite, Receipt
from .signing import Signer

__all__ = [
    "BlobStore",
    "LedgerGateway",
    "PendingWrite",
    "Receipt",
    "Signer",
]

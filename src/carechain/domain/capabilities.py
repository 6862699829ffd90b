"""Capability negotiation against the Ledger.

The Ledger declares its operations once; callers ask before invoking an
optional one and get ``UnsupportedOperation`` instead of a late, opaque failure.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.errors import UnsupportedOperation

if TYPE_CHECKING:
    from carechain.domain.ports import LedgerGateway

log = getLogger(__name__)


class LedgerCapabilities:
    def __init__(self, gateway: LedgerGateway) -> None:
        self._gateway = gateway
        self._operations: frozenset[str] | None = None
        self._lock = asyncio.Lock()

    @property
    def known(self) -> frozenset[str] | None:
        return self._operations

    async def operations(self) -> frozenset[str]:
        if self._operations is not None:
            return self._operations
        async with self._lock:
            if self._operations is None:
                # failures propagate and are retried on the next call
                self._operations = await self._gateway.capabilities()
                log.debug("Ledger declares %s operations", len(self._operations))
        return self._operations

    async def supports(self, operation: str) -> bool:
        return operation in await self.operations()

    async def ensure(self, operation: str) -> None:
        if not await self.supports(operation):
            raise UnsupportedOperation(operation)

    def forget(self) -> None:
        self._operations = None

    def observe_failure(self, exc: BaseException) -> None:
        """Renegotiate when the Ledger refuses an operation it declared."""

        if (
            isinstance(exc, UnsupportedOperation)
            and self._operations is not None
            and exc.operation in self._operations
        ):
            log.info("Ledger refused declared operation %s; renegotiating", exc.operation)
            self.forget()

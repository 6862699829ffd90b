"""Port for the external Ledger read/write API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from carechain.domain.model import Address, CollectionKind, LedgerAction

    from .signing import Signer


@dataclass(frozen=True, slots=True)
class PendingWrite:
    """Handle for a submitted but not yet confirmed write."""

    handle: str
    action: LedgerAction
    sender: Address


@dataclass(frozen=True, slots=True)
class Receipt:
    """Confirmation that a write was included by the Ledger."""

    handle: str
    block: int | None = None
    events: Mapping[str, object] = field(default_factory=dict)


@runtime_checkable
class LedgerGateway(Protocol):
    """Typed read/write calls against the Ledger.

    Every call may raise ``LedgerUnreachable`` or ``LedgerRejected``; callers do not
    retry. ``read_collection`` returns raw, unvalidated tuples for the normalizer.
    """

    async def capabilities(self) -> frozenset[str]: ...

    async def read_collection(self, kind: CollectionKind, owner: Address) -> Sequence[object]: ...

    async def submit_write(
        self,
        action: LedgerAction,
        args: Mapping[str, object],
        *,
        signer: Signer,
    ) -> PendingWrite: ...

    async def await_confirmation(self, pending: PendingWrite) -> Receipt: ...

    async def check_access(self, caller: Address, target: Address) -> bool: ...


__all__ = ["LedgerGateway", "PendingWrite", "Receipt"]

"""Port for the caller-provided signing capability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from carechain.domain.model import Address


@runtime_checkable
class Signer(Protocol):
    """An already-authenticated identity able to authorise writes.

    ``sign`` raises ``UserCancelled`` when the holder declines.
    """

    @property
    def address(self) -> Address: ...

    async def sign(self, payload: bytes) -> str: ...


__all__ = ["Signer"]

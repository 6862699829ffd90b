"""Port for content-addressed document storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from carechain.domain.model import ContentId


@runtime_checkable
class BlobStore(Protocol):
    """Stores a payload and returns its content identifier.

    Implementations raise ``StorageFailure`` for any failure.
    """

    async def store(self, data: bytes) -> ContentId: ...


__all__ = ["BlobStore"]

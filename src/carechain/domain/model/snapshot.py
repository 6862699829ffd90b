"""In-memory snapshots of Ledger collections, used purely for diffing."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from .enums import CollectionKind
    from .primitives import Address


EMERGENCY_COUNTER = "emergency"


def _empty_counters() -> Mapping[str, int]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True, kw_only=True)
class Snapshot[T]:
    """One collection as of the last successful fetch.

    ``revision`` counts successful fetches; zero means no baseline exists yet.
    ``counters`` holds count-based baselines carried between cycles.
    """

    kind: CollectionKind
    owner: Address
    items: tuple[T, ...] = ()
    refreshed_at: datetime | None = None
    revision: int = 0
    counters: Mapping[str, int] = field(default_factory=_empty_counters)

    @property
    def observed(self) -> bool:
        return self.revision > 0

    def __len__(self) -> int:
        return len(self.items)

    def successor(
        self,
        items: tuple[T, ...],
        *,
        refreshed_at: datetime,
        counters: Mapping[str, int] | None = None,
    ) -> Snapshot[T]:
        return Snapshot(
            kind=self.kind,
            owner=self.owner,
            items=items,
            refreshed_at=refreshed_at,
            revision=self.revision + 1,
            counters=MappingProxyType(dict(counters if counters is not None else self.counters)),
        )
